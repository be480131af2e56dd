from datetime import timedelta

import pytest
from django.utils import timezone

from clinic.models import Appointment, AuditEvent, Patient
from clinic.services.appointments import _can_transition

pytestmark = pytest.mark.django_db

NEW_PATIENT = {
    'first_name': 'Carlos', 'last_name': 'Gómez', 'dni': '87654321x', 'phone': '600222333',
    'date_of_birth': '1990-02-14', 'gender': 'male', 'allergies': 'penicilina, látex',
    'notes': '<b>Hipertenso</b>',
}


def test_register_patient_generates_mrn(client_for):
    r = client_for('reception').post('/api/patients', NEW_PATIENT, format='json')
    assert r.status_code == 201
    data = r.data['data']
    today = timezone.localdate()
    assert data['medicalRecordNumber'] == f'MRN-{today:%Y%m%d}-0001'
    assert data['dni'] == '87654321X'
    assert data['allergies'] == ['penicilina', 'látex']
    assert data['notes'] == 'Hipertenso'
    assert AuditEvent.objects.filter(action='patient_create', object_id=data['id']).exists()


def test_duplicate_dni_is_rejected(client_for, patient):
    r = client_for('reception').post('/api/patients', {**NEW_PATIENT, 'dni': patient.dni}, format='json')
    assert r.status_code == 400
    assert r.data['ok'] is False


def test_list_search_and_lookup(client_for, patient):
    client = client_for('nurse')
    r = client.get('/api/patients', {'q': 'ana ruiz'})
    assert r.data['pagination'] == {'total': 1, 'page': 1, 'pageSize': 20}
    assert r.data['data'][0]['fullName'] == 'Ana Ruiz'

    assert client.get('/api/patients/search', {'q': '600111'}).data['data'][0]['id'] == patient.id
    assert client.get('/api/patients/search').data['data'] == []

    r = client.get(f'/api/patients/dni/{patient.dni.lower()}')
    assert r.status_code == 200
    assert client.get('/api/patients/dni/00000000A').status_code == 404


def test_delete_only_deactivates(client_for, patient):
    client = client_for('admin')
    assert client.delete(f'/api/patients/{patient.id}').status_code == 200
    patient.refresh_from_db()
    assert patient.is_active is False
    assert client.get('/api/patients').data['pagination']['total'] == 0
    assert client.get('/api/patients', {'includeInactive': 'true'}).data['pagination']['total'] == 1


def test_update_and_notes(client_for, patient):
    client = client_for('reception')
    r = client.patch(f'/api/patients/{patient.id}', {'city': 'Sevilla'}, format='json')
    assert r.data['data']['city'] == 'Sevilla'

    r = client.post(f'/api/patients/{patient.id}/notes', {'content': 'Llamar mañana'}, format='json')
    assert r.status_code == 201
    notes = client.get(f'/api/patients/{patient.id}/notes').data['data']
    assert [n['content'] for n in notes] == ['Llamar mañana']


def _slot(hours=1):
    start = timezone.now().replace(microsecond=0) + timedelta(hours=hours)
    return start, start + timedelta(minutes=30)


def test_book_and_list_appointments(client_for, patient, department, make_user):
    doctor = make_user('doctor', username='dr1', department=department)
    start, end = _slot()
    client = client_for('reception')
    r = client.post('/api/appointments', {
        'patient': patient.id, 'doctor': doctor.id,
        'start_time': start.isoformat(), 'end_time': end.isoformat(), 'reason': 'Control',
    }, format='json')
    assert r.status_code == 201
    appt = r.data['data']
    assert appt['status'] == 'scheduled'
    # the doctor's department is used when none is given
    assert appt['departmentId'] == department.id

    listed = client.get('/api/appointments', {'doctorId': doctor.id}).data['data']
    assert [a['id'] for a in listed] == [appt['id']]
    assert len(client.get(f'/api/patients/{patient.id}/appointments').data['data']) == 1


def test_appointment_end_must_follow_start(client_for, patient):
    start, _ = _slot()
    r = client_for('reception').post('/api/appointments', {
        'patient': patient.id, 'start_time': start.isoformat(), 'end_time': start.isoformat(),
    }, format='json')
    assert r.status_code == 400


def test_appointment_status_transitions(client_for, patient):
    start, end = _slot()
    appt = Appointment.objects.create(patient=patient, start_time=start, end_time=end)
    client = client_for('doctor')
    r = client.patch(f'/api/appointments/{appt.id}', {'status': 'completed'}, format='json')
    assert r.data['data']['status'] == 'completed'
    r = client.patch(f'/api/appointments/{appt.id}', {'status': 'scheduled'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid'


def test_transition_table():
    assert _can_transition('scheduled', 'in_progress')
    assert _can_transition('in_progress', 'completed')
    assert not _can_transition('in_progress', 'no_show')
    assert not _can_transition('cancelled', 'scheduled')


def test_patient_model_age():
    p = Patient(date_of_birth=timezone.localdate().replace(year=2000))
    assert p.age() == timezone.localdate().year - 2000
