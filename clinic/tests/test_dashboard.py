"""
Dashboard counters, the audit listing and the maintenance commands.
"""
from datetime import date, timedelta
from io import StringIO

import pytest
from django.core.cache import cache
from django.core.management import call_command
from django.utils import timezone

from clinic.models import (
    Appointment,
    InventoryItem,
    LabTestCatalog,
    Patient,
    Prescription,
    User,
)
from clinic.services import dashboard
from clinic.services.audit import log_action

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db


def test_stats_counts_today(client_for, patient, item):
    now = timezone.now()
    Appointment.objects.create(patient=patient, start_time=now, end_time=now + timedelta(minutes=20))
    Appointment.objects.create(patient=patient, start_time=now + timedelta(days=2),
                               end_time=now + timedelta(days=2, minutes=20))
    Prescription.objects.create(patient=patient, medication_name='Omeprazol 20 mg')
    InventoryItem.objects.create(sku='LOW', name='Suero', quantity=3)

    data = client_for('reception').get('/api/dashboard/stats').data['data']
    assert data['totalPatients'] == 1
    assert data['todayAppointments'] == 1
    assert data['pendingPrescriptions'] == 1
    assert data['lowStockItems'] == 1
    assert len(data['appointments']) == 1
    assert data['recentPatients'][0]['id'] == patient.id


def test_stats_are_cached(client_for, patient):
    client = client_for('nurse')
    assert client.get('/api/dashboard/stats').data['data']['totalPatients'] == 1
    Patient.objects.create(medical_record_number='MRN-2', dni='22222222J', first_name='Eva', last_name='Sanz',
                           phone='600333444', date_of_birth=date(1992, 3, 3))
    assert client.get('/api/dashboard/stats').data['data']['totalPatients'] == 1
    assert dashboard.dashboard_stats(use_cache=False)['totalPatients'] == 2


def test_recent_patients_are_capped(db):
    for i in range(dashboard.PREVIEW_LIMIT + 2):
        Patient.objects.create(medical_record_number=f'MRN-{i}', dni=f'3000000{i}X', first_name='P', last_name=str(i),
                               phone='600000000', date_of_birth=date(1980, 1, 1))
    assert len(dashboard.dashboard_stats(use_cache=False)['recentPatients']) == dashboard.PREVIEW_LIMIT


def test_audit_listing_filters(client_for, patient):
    admin = client_for('admin')
    log_action(user=admin.user, action='patient_update', object_type='patient', object_id=patient.id)
    log_action(user=None, action='payment_webhook', object_type='payment', object_id=1)

    data = admin.get('/api/audit', {'objectType': 'patient'}).data['data']
    assert [(e['action'], e['username']) for e in data] == [('patient_update', 'admin_user')]
    assert admin.get('/api/audit', {'limit': 1}).data['data'][0]['action'] == 'payment_webhook'
    assert admin.get('/api/audit', {'limit': 0}).status_code == 400


def test_ensure_test_users_is_idempotent(db):
    out = StringIO()
    call_command('ensure_test_users', stdout=out)
    User.objects.filter(username='nurse1').update(role='reception', is_active=False)
    call_command('ensure_test_users', '--password', PASSWORD, stdout=out)

    nurse = User.objects.get(username='nurse1')
    assert (nurse.role, nurse.is_active) == ('nurse', True)
    assert nurse.check_password(PASSWORD)
    assert User.objects.get(username='admin1').is_staff
    assert User.objects.filter(username__endswith='1').count() == 7


def test_populate_data_and_refresh_caches(db):
    call_command('populate_data', '--patients', '3', stdout=StringIO())
    call_command('populate_data', '--patients', '3', stdout=StringIO())
    assert Patient.objects.count() == 3
    assert LabTestCatalog.objects.get(code='HEMO').parameters.count() == 3
    assert InventoryItem.objects.get(sku='MED-PARA-500').quantity == 200

    out = StringIO()
    call_command('refresh_caches', stdout=out)
    assert 'Refreshed 4 keys' in out.getvalue()
    assert cache.get(dashboard.STATS_CACHE_KEY)['totalPatients'] == 3
