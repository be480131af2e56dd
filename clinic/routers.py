"""
URL mappings for the MedSuite API.

Paths carry no trailing slash.  Role checks live in
``clinic.permissions.ROUTE_ROLES``, keyed on these prefixes.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import (
    appointments,
    billing,
    clinical,
    dashboard,
    departments,
    health,
    lab,
    patients,
    pharmacy,
    physio,
    referrals,
    users,
)

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view),

    # Dashboard and audit
    path('api/dashboard/stats', dashboard.stats),
    path('api/audit', dashboard.audit_events),

    # Users and departments
    path('api/users', users.users),
    path('api/users/<int:pk>', users.user_detail),
    path('api/users/<int:pk>/toggle-status', users.user_toggle_status),
    path('api/users/<int:pk>/password', users.user_set_password),
    path('api/departments', departments.departments),
    path('api/departments/<int:pk>', departments.department_detail),
    path('api/departments/<int:pk>/rooms', departments.department_rooms),

    # Patients
    path('api/patients', patients.patients),
    path('api/patients/search', patients.patient_search),
    path('api/patients/dni/<str:dni>', patients.patient_by_dni),
    path('api/patients/<int:pk>', patients.patient_detail),
    path('api/patients/<int:pk>/notes', patients.patient_notes),
    path('api/patients/<int:patient_id>/appointments', appointments.patient_appointments),

    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/<int:pk>', appointments.appointment_detail),

    # Clinical records
    path('api/clinical-records', clinical.records),
    path('api/clinical-records/icd10', clinical.icd10_search),
    path('api/clinical-records/finalize', clinical.finalize_consultation),
    path('api/clinical-records/<int:pk>', clinical.record_detail),
    path('api/clinical-records/patient/<int:patient_id>', clinical.patient_records),
    path('api/clinical-records/appointment/<int:appointment_id>', clinical.appointment_record),

    # Pharmacy inventory
    path('api/pharmacy/products', pharmacy.products),
    path('api/pharmacy/products/<int:pk>', pharmacy.product_detail),
    path('api/pharmacy/search', pharmacy.product_search),
    path('api/pharmacy/categories', pharmacy.product_categories),
    path('api/pharmacy/inventory/low-stock', pharmacy.low_stock),
    path('api/pharmacy/inventory/expiring', pharmacy.expiring),
    path('api/pharmacy/inventory/entry', pharmacy.stock_entry),
    path('api/pharmacy/movements', pharmacy.movements),
    path('api/pharmacy/stats', pharmacy.pharmacy_stats),

    # Prescriptions
    path('api/pharmacy/prescriptions', pharmacy.prescription_list),
    path('api/pharmacy/prescriptions/<int:pk>', pharmacy.prescription_detail),
    path('api/pharmacy/prescriptions/<int:pk>/dispense', pharmacy.prescription_dispense),
    path('api/pharmacy/prescriptions/<int:pk>/cancel', pharmacy.prescription_cancel),

    # Point of sale
    path('api/pharmacy/pos/products', pharmacy.pos_products),
    path('api/pharmacy/pos/sales', pharmacy.pos_sales),
    path('api/pharmacy/pos/sales/<int:pk>', pharmacy.pos_sale_detail),
    path('api/pharmacy/pos/sales/<int:pk>/cancel', pharmacy.pos_sale_cancel),
    path('api/pharmacy/pos/stats', pharmacy.pos_stats),

    # Laboratory
    path('api/lab/catalog', lab.catalog),
    path('api/lab/catalog/<int:pk>/parameters', lab.catalog_parameters),
    path('api/lab/categories', lab.categories),
    path('api/lab/orders', lab.orders),
    path('api/lab/orders/<int:pk>', lab.order_detail),
    path('api/lab/orders/<int:pk>/verify', lab.order_verify),
    path('api/lab/orders/<int:pk>/print', lab.order_print),
    path('api/lab/order-details/<int:detail_id>/sample', lab.detail_sample),
    path('api/lab/results', lab.results),
    path('api/lab/results/<int:pk>/review', lab.result_review),
    path('api/lab/patients/<int:patient_id>/orders', lab.patient_orders),
    path('api/lab/stats', lab.stats),

    # Billing and payments
    path('api/billing/invoices', billing.invoices),
    path('api/billing/invoices/<int:pk>', billing.invoice_detail),
    path('api/billing/invoices/<int:pk>/cancel', billing.invoice_cancel),
    path('api/payments/create-intent', billing.create_intent),
    path('api/payments/confirm', billing.confirm),
    path('api/payments/refund', billing.refund),
    path('api/payments/manual', billing.manual),
    path('api/payments/history', billing.history),
    path('api/payments/stats', billing.stats),
    path('api/payments/webhook', billing.webhook),
    path('api/payments/<int:pk>/cancel', billing.cancel),

    # Referrals
    path('api/referrals', referrals.referrals),
    path('api/referrals/<int:pk>', referrals.referral_detail),

    # Physiotherapy
    path('api/physio/plans', physio.plans),
    path('api/physio/plans/<int:pk>', physio.plan_detail),
    path('api/physio/plans/<int:pk>/finalize', physio.plan_finalize),
    path('api/physio/sessions', physio.sessions),
    path('api/physio-catalogs/<str:kind>', physio.catalog),
]
