from datetime import date, timedelta

import pytest
from django.utils import timezone

from clinic.models import Appointment, MedicalRecord, Patient
from clinic.services import icd10

pytestmark = pytest.mark.django_db


@pytest.fixture
def appointment(patient, department):
    start = timezone.now() + timedelta(hours=2)
    return Appointment.objects.create(patient=patient, department=department, start_time=start,
                                      end_time=start + timedelta(minutes=30))


def test_record_from_appointment_defaults(client_for, appointment):
    client = client_for('doctor')
    r = client.post('/api/clinical-records', {
        'appointment': appointment.id,
        'chief_complaint': 'Cefalea',
        'vital_signs': {'ta': '120/80', 'fc': 72},
        'diagnosis': 'Migraña',
        'icd_codes': ['G43.9'],
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['patientId'] == appointment.patient_id
    assert data['departmentId'] == appointment.department_id
    assert data['doctorId'] == client.user.id
    assert data['diagnosis'] == ['Migraña']
    assert data['vitalSigns'] == {'ta': '120/80', 'fc': 72}


def test_record_update_keeps_identity(client_for, patient):
    client = client_for('doctor')
    created = client.post('/api/clinical-records', {'patient': patient.id, 'chief_complaint': 'Tos'},
                          format='json').data['data']
    r = client.post('/api/clinical-records', {'id': created['id'], 'treatment_plan': 'Reposo'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['chiefComplaint'] == 'Tos'
    assert r.data['data']['treatmentPlan'] == 'Reposo'
    assert MedicalRecord.objects.count() == 1


def test_record_needs_patient_or_appointment(client_for):
    r = client_for('doctor').post('/api/clinical-records', {'chief_complaint': 'x'}, format='json')
    assert r.status_code == 400


def test_patient_and_appointment_lookups(client_for, patient, appointment):
    MedicalRecord.objects.create(patient=patient, appointment=appointment, chief_complaint='Fiebre')
    client = client_for('nurse')
    assert len(client.get(f'/api/clinical-records/patient/{patient.id}').data['data']) == 1
    r = client.get(f'/api/clinical-records/appointment/{appointment.id}')
    assert r.data['data']['chiefComplaint'] == 'Fiebre'
    assert client.get('/api/clinical-records/patient/9999').status_code == 404


def test_finalize_consultation_completes_appointment(client_for, patient, appointment):
    record = MedicalRecord.objects.create(patient=patient)
    r = client_for('doctor').post('/api/clinical-records/finalize',
                                  {'appointment_id': appointment.id, 'record_id': record.id}, format='json')
    assert r.status_code == 200
    assert r.data['data']['appointment']['status'] == 'completed'
    record.refresh_from_db()
    assert record.appointment_id == appointment.id


def test_finalize_rejects_foreign_record(client_for, appointment):
    other = Patient.objects.create(medical_record_number='MRN-X', dni='99999999R', first_name='Luis',
                                   last_name='Mora', phone='600999888', date_of_birth=date(1970, 1, 1))
    record = MedicalRecord.objects.create(patient=other)
    r = client_for('doctor').post('/api/clinical-records/finalize',
                                  {'appointment_id': appointment.id, 'record_id': record.id}, format='json')
    assert r.status_code == 400
    appointment.refresh_from_db()
    assert appointment.status == 'scheduled'


def test_icd10_search():
    assert icd10.search('i') == []
    hits = icd10.search('hipertens')
    assert {'code': 'I10', 'description': 'Hipertensión esencial', 'category': 'I'} in hits
    assert icd10.search('e11')[0]['code'].startswith('E11')
    assert len(icd10.search('de', limit=3)) == 3


def test_icd10_endpoint(client_for):
    r = client_for('doctor').get('/api/clinical-records/icd10', {'q': 'asma'})
    assert r.status_code == 200
    assert any(h['code'] == 'J45.9' for h in r.data['data'])
