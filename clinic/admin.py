"""
Django admin registrations.

Superusers can inspect and correct data through ``/admin/``.  Workflow
state (stock, order status, payments) should still be changed through
the API so the audit trail stays complete.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AuditEvent,
    ClinicalReference,
    Department,
    InventoryItem,
    InventoryTransaction,
    Invoice,
    LabCategory,
    LabOrder,
    LabTestCatalog,
    MedicalRecord,
    Patient,
    PaymentRefund,
    PaymentTransaction,
    PaymentWebhookEvent,
    PhysioExercise,
    PhysioTechnique,
    PhysioTreatmentPlan,
    PhysioTreatmentType,
    POSTransaction,
    Prescription,
    Room,
    User,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'location', 'is_active')
    search_fields = ('code', 'name')


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('room_number', 'department', 'room_type', 'status')
    list_filter = ('department', 'status')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'is_active', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('medical_record_number', 'dni', 'first_name', 'last_name', 'is_active')
    search_fields = ('medical_record_number', 'dni', 'first_name', 'last_name', 'phone')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'department', 'start_time', 'status')
    list_filter = ('status', 'department')


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'record_type', 'created_at')
    list_filter = ('record_type',)


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ('sku', 'name', 'category', 'quantity', 'min_stock', 'expiration_date', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('sku', 'name')


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ('item', 'transaction_type', 'quantity', 'previous_quantity', 'new_quantity', 'created_at')
    list_filter = ('transaction_type',)
    readonly_fields = ('previous_quantity', 'new_quantity')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'medication_name', 'quantity_prescribed', 'quantity_dispensed', 'status')
    list_filter = ('status',)


admin.site.register(POSTransaction)
admin.site.register(LabCategory)
admin.site.register(LabTestCatalog)
admin.site.register(PaymentRefund)
admin.site.register(PaymentWebhookEvent)
admin.site.register(PhysioTreatmentType)
admin.site.register(PhysioTechnique)
admin.site.register(PhysioExercise)


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'patient', 'status', 'priority', 'total_amount', 'is_paid')
    list_filter = ('status', 'priority')
    search_fields = ('order_number',)


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'patient', 'status', 'total', 'amount_paid', 'due_date')
    list_filter = ('status',)


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'provider', 'provider_payment_id', 'amount', 'currency', 'status', 'created_at')
    list_filter = ('status', 'provider', 'payment_method')


@admin.register(ClinicalReference)
class ClinicalReferenceAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'target_department', 'priority', 'status')
    list_filter = ('status', 'priority')


@admin.register(PhysioTreatmentPlan)
class PhysioTreatmentPlanAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'plan_type', 'sessions_completed', 'total_sessions_prescribed', 'status')
    list_filter = ('status', 'plan_type')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
