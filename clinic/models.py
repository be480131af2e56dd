"""
Database models for the hospital management backend.

The models cover staff and departments, patients and their clinical
history, the pharmacy (inventory, movements, prescriptions and point of
sale), the laboratory, billing and payments, referrals between
departments and physiotherapy treatment plans.  Field names follow the
JSON payloads used by the front-end so that serialisation stays a thin
mapping.
"""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


# ---------------------------------------------------------------------------
# Staff & departments
# ---------------------------------------------------------------------------

class Department(models.Model):
    """A hospital department (cardiology, laboratory, physiotherapy...)."""
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    phone_extension = models.CharField(max_length=20, blank=True)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class Room(models.Model):
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('occupied', 'Occupied'),
        ('maintenance', 'Maintenance'),
    ]
    room_number = models.CharField(max_length=20)
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name='rooms')
    room_type = models.CharField(max_length=50, blank=True)
    capacity = models.PositiveIntegerField(default=1)
    current_occupancy = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='available')

    class Meta:
        unique_together = [('department', 'room_number')]

    def __str__(self) -> str:
        return f"{self.room_number} ({self.department_id})"


class User(AbstractUser):
    """Staff account with a role and an optional department.

    The role drives route gating (see :mod:`clinic.permissions`).  New
    accounts default to the reception role.
    """
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('doctor', 'Doctor'),
        ('nurse', 'Nurse'),
        ('reception', 'Reception'),
        ('pharmacy', 'Pharmacy'),
        ('lab', 'Laboratory'),
        ('lab_admin', 'Laboratory administrator'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='reception', db_index=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff'
    )
    specialty = models.CharField(max_length=100, blank=True)
    license_number = models.CharField(max_length=50, blank=True)
    phone = models.CharField(max_length=32, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------

class Patient(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
        ('prefer_not_to_say', 'Prefer not to say'),
    ]
    medical_record_number = models.CharField(max_length=32, unique=True)
    dni = models.CharField(max_length=32, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=20, choices=GENDER_CHOICES, blank=True)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    emergency_contact_name = models.CharField(max_length=255, blank=True)
    emergency_contact_phone = models.CharField(max_length=32, blank=True)
    blood_type = models.CharField(max_length=5, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    insurance_provider = models.CharField(max_length=255, blank=True)
    insurance_number = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='patients_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['last_name', 'first_name']),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def age(self, today=None) -> int:
        today = today or timezone.localdate()
        dob = self.date_of_birth
        return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))

    def __str__(self) -> str:
        return f"{self.full_name} ({self.medical_record_number})"


class PatientNote(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='patient_notes')
    author = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, on_delete=models.SET_NULL)
    author_name = models.CharField(max_length=255, blank=True)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"note {self.id} patient={self.patient_id}"


# ---------------------------------------------------------------------------
# Appointments & clinical records
# ---------------------------------------------------------------------------

class Appointment(models.Model):
    TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('follow_up', 'Follow up'),
        ('emergency', 'Emergency'),
        ('procedure', 'Procedure'),
        ('imaging', 'Imaging'),
        ('laboratory', 'Laboratory'),
        ('surgery', 'Surgery'),
        ('physiotherapy', 'Physiotherapy'),
    ]
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('no_show', 'No show'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    room = models.ForeignKey(Room, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='consultation')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled', db_index=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    reminder_sent = models.BooleanField(default=False)
    clinical_reference = models.ForeignKey(
        'ClinicalReference', null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'start_time']),
            models.Index(fields=['department', 'start_time']),
        ]

    def __str__(self) -> str:
        return f"appt {self.id} p={self.patient_id} @ {self.start_time:%F %H:%M}"


class MedicalRecord(models.Model):
    RECORD_TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('progress_note', 'Progress note'),
        ('procedure', 'Procedure'),
        ('discharge', 'Discharge'),
        ('referral', 'Referral'),
        ('lab_result', 'Lab result'),
        ('imaging_result', 'Imaging result'),
        ('physiotherapy', 'Physiotherapy'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_records')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records'
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records'
    )
    department = models.ForeignKey(Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    record_type = models.CharField(max_length=20, choices=RECORD_TYPE_CHOICES, default='consultation')
    chief_complaint = models.TextField(blank=True)
    history_of_present_illness = models.TextField(blank=True)
    physical_examination = models.TextField(blank=True)
    vital_signs = models.JSONField(default=dict, blank=True)
    diagnosis = models.JSONField(default=list, blank=True)
    icd_codes = models.JSONField(default=list, blank=True)
    treatment_plan = models.TextField(blank=True)
    prescriptions = models.JSONField(default=list, blank=True)
    recommendations = models.TextField(blank=True)
    follow_up_required = models.BooleanField(default=False)
    follow_up_date = models.DateField(null=True, blank=True)
    private_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'created_at'])]

    def __str__(self) -> str:
        return f"record {self.id} ({self.record_type}) p={self.patient_id}"


# ---------------------------------------------------------------------------
# Pharmacy
# ---------------------------------------------------------------------------

class InventoryItem(models.Model):
    CATEGORY_CHOICES = [
        ('medication', 'Medication'),
        ('equipment', 'Equipment'),
        ('supplies', 'Supplies'),
        ('consumables', 'Consumables'),
        ('lab_supplies', 'Lab supplies'),
        ('office', 'Office'),
    ]
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='medication', db_index=True)
    subcategory = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=30, default='unit')
    quantity = models.IntegerField(default=0)
    min_stock = models.IntegerField(default=0)
    max_stock = models.IntegerField(null=True, blank=True)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    supplier = models.CharField(max_length=255, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True)
    expiration_date = models.DateField(null=True, blank=True, db_index=True)
    batch_number = models.CharField(max_length=64, blank=True)
    storage_location = models.CharField(max_length=100, blank=True)
    requires_prescription = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    def __str__(self) -> str:
        return f"{self.name} [{self.sku}]"


class InventoryTransaction(models.Model):
    """A single stock movement with the before/after quantities."""
    TYPE_CHOICES = [
        ('in', 'In'),
        ('out', 'Out'),
        ('adjustment', 'Adjustment'),
        ('transfer', 'Transfer'),
        ('return', 'Return'),
        ('disposal', 'Disposal'),
        ('prescription_dispense', 'Prescription dispense'),
        ('sale', 'Sale'),
    ]
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='movements')
    transaction_type = models.CharField(max_length=30, choices=TYPE_CHOICES, db_index=True)
    quantity = models.IntegerField()
    previous_quantity = models.IntegerField()
    new_quantity = models.IntegerField()
    reference_type = models.CharField(max_length=50, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)
    performed_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        indexes = [models.Index(fields=['reference_type', 'reference_id'])]

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.quantity} of {self.item_id}: {self.previous_quantity} → {self.new_quantity}"


class InventoryDocument(models.Model):
    movement = models.ForeignKey(InventoryTransaction, on_delete=models.CASCADE, related_name='documents')
    file_name = models.CharField(max_length=255)
    file_url = models.CharField(max_length=1024)
    document_type = models.CharField(max_length=30, default='entry_voucher')
    uploaded_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)


class Prescription(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partially_dispensed', 'Partially dispensed'),
        ('dispensed', 'Dispensed'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]
    medical_record = models.ForeignKey(
        MedicalRecord, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescription_items'
    )
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    medication = models.ForeignKey(
        InventoryItem, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    medication_name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=100, blank=True)
    frequency = models.CharField(max_length=100, blank=True)
    duration = models.CharField(max_length=100, blank=True)
    quantity_prescribed = models.PositiveIntegerField(default=1)
    quantity_dispensed = models.PositiveIntegerField(default=0)
    refills_allowed = models.PositiveIntegerField(default=0)
    refills_used = models.PositiveIntegerField(default=0)
    instructions = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    prescribed_date = models.DateTimeField(default=timezone.now)
    dispensed_date = models.DateTimeField(null=True, blank=True)
    dispensed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )

    @property
    def remaining(self) -> int:
        return max(0, self.quantity_prescribed - self.quantity_dispensed)

    def __str__(self) -> str:
        return f"rx {self.id} {self.medication_name} ({self.status})"


class POSTransaction(models.Model):
    PAYMENT_CHOICES = [
        ('CASH', 'Cash'),
        ('CARD', 'Card'),
        ('TRANSFER', 'Transfer'),
        ('INSURANCE', 'Insurance'),
    ]
    STATUS_CHOICES = [
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
        ('REFUNDED', 'Refunded'),
    ]
    transaction_number = models.CharField(max_length=32, unique=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_CHOICES)
    customer_name = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    items_count = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='COMPLETED', db_index=True)
    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, on_delete=models.SET_NULL)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self) -> str:
        return self.transaction_number


class POSTransactionItem(models.Model):
    transaction = models.ForeignKey(POSTransaction, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='pos_lines')
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)


# ---------------------------------------------------------------------------
# Laboratory
# ---------------------------------------------------------------------------

class LabCategory(models.Model):
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=20, unique=True)

    def __str__(self) -> str:
        return self.name


class LabTestCatalog(models.Model):
    SAMPLE_CHOICES = [
        ('blood', 'Blood'),
        ('urine', 'Urine'),
        ('stool', 'Stool'),
        ('sputum', 'Sputum'),
        ('tissue', 'Tissue'),
        ('cerebrospinal', 'Cerebrospinal fluid'),
        ('other', 'Other'),
    ]
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.ForeignKey(LabCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='tests')
    sample_type = models.CharField(max_length=20, choices=SAMPLE_CHOICES, default='blood')
    instructions = models.TextField(blank=True)
    preparation_required = models.BooleanField(default=False)
    duration_hours = models.PositiveIntegerField(default=24)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    inventory_item = models.ForeignKey(
        InventoryItem, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_tests'
    )
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.code} {self.name}"


class LabParameter(models.Model):
    TYPE_CHOICES = [
        ('number', 'Number'),
        ('text', 'Text'),
        ('select', 'Select'),
        ('boolean', 'Boolean'),
    ]
    test = models.ForeignKey(LabTestCatalog, on_delete=models.CASCADE, related_name='parameters')
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=30, blank=True)
    unit = models.CharField(max_length=30, blank=True)
    parameter_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='number')
    options = models.JSONField(default=list, blank=True)
    reference_min = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    reference_max = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    reference_text = models.CharField(max_length=255, blank=True)
    method = models.CharField(max_length=100, blank=True)
    critical_below = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    critical_above = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    decimal_places = models.PositiveSmallIntegerField(default=2)
    sort_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['sort_order', 'id']

    def __str__(self) -> str:
        return f"{self.test_id}:{self.name}"


class LabOrder(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SAMPLES = 'samples_collected'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SAMPLES, 'Samples collected'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('normal', 'Normal'),
        ('urgent', 'Urgent'),
    ]
    order_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_orders')
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_orders'
    )
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_orders'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal', db_index=True)
    notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_paid = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class LabOrderDetail(models.Model):
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name='details')
    test = models.ForeignKey(LabTestCatalog, null=True, blank=True, on_delete=models.PROTECT, related_name='+')
    is_custom = models.BooleanField(default=False)
    custom_name = models.CharField(max_length=255, blank=True)
    custom_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    sample_collected = models.BooleanField(default=False)
    sample_collected_at = models.DateTimeField(null=True, blank=True)
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    notes = models.TextField(blank=True)

    @property
    def display_name(self) -> str:
        if self.is_custom or not self.test_id:
            return self.custom_name
        return self.test.name

    @property
    def price(self):
        if self.is_custom or not self.test_id:
            return self.custom_price or 0
        return self.test.price


class LabResult(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('entered', 'Entered'),
        ('reviewed', 'Reviewed'),
    ]
    order_detail = models.ForeignKey(LabOrderDetail, on_delete=models.CASCADE, related_name='results')
    parameter = models.ForeignKey(LabParameter, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    value_text = models.CharField(max_length=255, blank=True)
    value_numeric = models.DecimalField(max_digits=14, decimal_places=4, null=True, blank=True)
    is_abnormal = models.BooleanField(default=False)
    is_critical = models.BooleanField(default=False)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    entered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class LabOrderTransition(models.Model):
    """Records a status change of a lab order."""
    order = models.ForeignKey(LabOrder, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=20, null=True, blank=True)
    to_status = models.CharField(max_length=20)
    operator = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    timestamp = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.order_id}: {self.from_status} → {self.to_status}"


# ---------------------------------------------------------------------------
# Billing & payments
# ---------------------------------------------------------------------------

class Invoice(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
        ('cancelled', 'Cancelled'),
    ]
    invoice_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='invoices')
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    items = models.JSONField(default=list, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=20, blank=True)
    issued_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)
    paid_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.invoice_number} ({self.status})"


class PaymentTransaction(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('PROCESSING', 'Processing'),
        ('SUCCEEDED', 'Succeeded'),
        ('FAILED', 'Failed'),
        ('REFUNDED', 'Refunded'),
        ('PARTIALLY_REFUNDED', 'Partially refunded'),
        ('CANCELLED', 'Cancelled'),
    ]
    METHOD_CHOICES = [
        ('CARD', 'Card'),
        ('BIZUM', 'Bizum'),
        ('SEPA_DEBIT', 'SEPA debit'),
        ('PAYPAL', 'PayPal'),
        ('CASH', 'Cash'),
        ('TRANSFER', 'Transfer'),
    ]
    PROVIDER_CHOICES = [
        ('STRIPE', 'Stripe'),
        ('MANUAL', 'Manual'),
    ]
    REFERENCE_CHOICES = [
        ('LAB_ORDER', 'Lab order'),
        ('CONSULTATION', 'Consultation'),
        ('INVOICE', 'Invoice'),
        ('POS_SALE', 'POS sale'),
    ]
    amount = models.PositiveIntegerField(help_text="Amount in cents")
    currency = models.CharField(max_length=3, default='EUR')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='CARD')
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, default='STRIPE')
    provider_payment_id = models.CharField(max_length=255, blank=True, db_index=True)
    provider_customer_id = models.CharField(max_length=255, blank=True)
    client_secret = models.CharField(max_length=255, blank=True)
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments')
    customer_email = models.EmailField(blank=True)
    customer_name = models.CharField(max_length=255, blank=True)
    reference_type = models.CharField(max_length=20, choices=REFERENCE_CHOICES, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    description = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    refunded_amount = models.PositiveIntegerField(default=0)
    refund_reason = models.CharField(max_length=255, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['reference_type', 'reference_id'])]

    @property
    def refundable(self) -> int:
        return max(0, self.amount - self.refunded_amount)

    def __str__(self) -> str:
        return f"pay {self.id} {self.amount}{self.currency} ({self.status})"


class PaymentRefund(models.Model):
    transaction = models.ForeignKey(PaymentTransaction, on_delete=models.CASCADE, related_name='refunds')
    amount = models.PositiveIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    provider_refund_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, default='SUCCEEDED')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)


class PaymentWebhookEvent(models.Model):
    provider_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.event_type} ({self.provider_event_id})"


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------

class ClinicalReference(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('routine', 'Routine'),
        ('urgent', 'Urgent'),
        ('emergency', 'Emergency'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='referrals')
    referring_doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='referrals_sent'
    )
    referring_department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='referrals_sent'
    )
    target_department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='referrals_received')
    reference_type = models.CharField(max_length=30, default='evaluation')
    clinical_diagnosis = models.TextField()
    icd10_codes = models.JSONField(default=list, blank=True)
    reason = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='routine')
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    responded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    responded_at = models.DateTimeField(null=True, blank=True)
    response_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"referral {self.id} p={self.patient_id} → {self.target_department_id} ({self.status})"


# ---------------------------------------------------------------------------
# Physiotherapy
# ---------------------------------------------------------------------------

class PhysioTreatmentPlan(models.Model):
    PLAN_TYPE_CHOICES = [
        ('rehabilitation', 'Rehabilitation'),
        ('pain_management', 'Pain management'),
        ('post_surgical', 'Post surgical'),
        ('sports', 'Sports'),
        ('preventive', 'Preventive'),
    ]
    STATUS_CHOICES = [
        ('indicated', 'Indicated'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('suspended', 'Suspended'),
        ('cancelled', 'Cancelled'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='physio_plans')
    physiotherapist = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='physio_plans'
    )
    medical_record = models.ForeignKey(MedicalRecord, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    referral = models.ForeignKey(ClinicalReference, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    diagnosis = models.TextField()
    plan_type = models.CharField(max_length=20, choices=PLAN_TYPE_CHOICES, default='rehabilitation')
    objectives = models.JSONField(default=list, blank=True)
    sessions_per_week = models.PositiveSmallIntegerField(default=2)
    total_sessions_prescribed = models.PositiveIntegerField(default=10)
    sessions_completed = models.PositiveIntegerField(default=0)
    initial_vas = models.PositiveSmallIntegerField(null=True, blank=True)
    baseline_rom = models.JSONField(default=dict, blank=True)
    baseline_strength = models.JSONField(default=dict, blank=True)
    baseline_functional = models.TextField(blank=True)
    start_date = models.DateField(default=timezone.localdate)
    expected_end_date = models.DateField(null=True, blank=True)
    actual_end_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='indicated', db_index=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"physio plan {self.id} p={self.patient_id} ({self.status})"


class PhysioSession(models.Model):
    plan = models.ForeignKey(PhysioTreatmentPlan, on_delete=models.CASCADE, related_name='sessions')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='physio_sessions')
    therapist = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    session_number = models.PositiveIntegerField()
    session_date = models.DateField(default=timezone.localdate)
    session_time = models.TimeField(null=True, blank=True)
    duration_minutes = models.PositiveIntegerField(default=45)
    subjective = models.TextField(blank=True)
    objective = models.TextField(blank=True)
    assessment = models.TextField(blank=True)
    plan_notes = models.TextField(blank=True)
    pain_level = models.PositiveSmallIntegerField(null=True, blank=True)
    techniques = models.JSONField(default=list, blank=True)
    exercises = models.JSONField(default=list, blank=True)
    equipment_used = models.JSONField(default=list, blank=True)
    observations = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('plan', 'session_number')]


class PhysioDischargeSummary(models.Model):
    plan = models.OneToOneField(PhysioTreatmentPlan, on_delete=models.CASCADE, related_name='discharge')
    final_vas = models.PositiveSmallIntegerField()
    pain_improvement = models.IntegerField(null=True, blank=True)
    sessions_completed = models.PositiveIntegerField(default=0)
    final_rom = models.JSONField(default=dict, blank=True)
    final_strength = models.JSONField(default=dict, blank=True)
    outcome_summary = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)
    home_program = models.TextField(blank=True)
    discharged_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)


class PhysioTreatmentType(models.Model):
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class PhysioTechnique(models.Model):
    treatment_type = models.ForeignKey(PhysioTreatmentType, on_delete=models.CASCADE, related_name='techniques')
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    parameters_schema = models.JSONField(default=dict, blank=True)
    default_duration_minutes = models.PositiveIntegerField(null=True, blank=True)
    contraindications = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)


class PhysioExercise(models.Model):
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    target_muscle_group = models.JSONField(default=list, blank=True)
    body_region = models.CharField(max_length=100, blank=True)
    difficulty_level = models.CharField(max_length=30, blank=True)
    instructions = models.TextField(blank=True)
    video_url = models.URLField(blank=True)
    contraindications = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)


class PhysioEquipment(models.Model):
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('in_use', 'In use'),
        ('maintenance', 'Maintenance'),
        ('retired', 'Retired'),
    ]
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    brand = models.CharField(max_length=100, blank=True)
    model = models.CharField(max_length=100, blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    treatment_type = models.ForeignKey(
        PhysioTreatmentType, null=True, blank=True, on_delete=models.SET_NULL, related_name='equipment'
    )
    parameters_template = models.JSONField(default=dict, blank=True)
    location = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='available')
    last_maintenance_date = models.DateField(null=True, blank=True)
    next_maintenance_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class AuditEvent(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]
