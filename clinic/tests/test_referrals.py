import pytest

from clinic.models import Appointment, ClinicalReference, Department

pytestmark = pytest.mark.django_db


@pytest.fixture
def physio_dept(db):
    return Department.objects.create(name='Fisioterapia', code='FIS')


def _refer(client, patient, target, **extra):
    return client.post('/api/referrals', {
        'patient_id': patient.id, 'target_department_id': target.id,
        'clinical_diagnosis': 'Lumbalgia mecánica', 'icd10_codes': 'M54.5', **extra,
    }, format='json')


def test_create_defaults_to_requesting_doctor(client_for, patient, department, physio_dept):
    client = client_for('doctor', department=department)
    r = _refer(client, patient, physio_dept, priority='urgent')
    assert r.status_code == 201
    data = r.data['data']
    assert data['referringDoctorId'] == client.user.id
    assert data['referringDepartmentId'] == department.id
    assert data['icd10Codes'] == ['M54.5']
    assert (data['status'], data['priority'], data['referenceType']) == ('pending', 'urgent', 'evaluation')


def test_target_must_differ_from_origin(client_for, patient, department):
    r = _refer(client_for('doctor'), patient, department, referring_department_id=department.id)
    assert r.status_code == 400


def test_target_must_differ_from_doctor_department(client_for, patient, department):
    r = _refer(client_for('doctor', department=department), patient, department)
    assert r.status_code == 400
    assert not ClinicalReference.objects.exists()


def test_accept_books_evaluation(client_for, patient, department, physio_dept, make_user):
    referral = _refer(client_for('doctor', department=department), patient, physio_dept).data['data']
    therapist = make_user('doctor', username='fisio1', department=physio_dept)

    r = client_for('nurse').patch(f"/api/referrals/{referral['id']}",
                                  {'action': 'accept', 'doctor_id': therapist.id, 'notes': 'Valorar'},
                                  format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert data['status'] == 'accepted'
    assert data['responseNotes'] == 'Valorar'
    appt = Appointment.objects.get(pk=data['appointmentId'])
    assert (appt.department_id, appt.doctor_id, appt.clinical_reference_id) == \
        (physio_dept.id, therapist.id, referral['id'])
    assert appt.reason == 'Evaluación derivada: Lumbalgia mecánica'


def test_lifecycle_guards(client_for, patient, physio_dept):
    client = client_for('doctor')
    pk = _refer(client, patient, physio_dept).data['data']['id']
    url = f'/api/referrals/{pk}'

    assert client.patch(url, {'action': 'complete'}, format='json').status_code == 400
    assert client.patch(url, {'action': 'accept'}, format='json').data['data']['status'] == 'accepted'
    assert client.patch(url, {'action': 'reject'}, format='json').status_code == 400
    assert client.patch(url, {'action': 'complete'}, format='json').data['data']['status'] == 'completed'


def test_reject_and_filters(client_for, patient, physio_dept, department):
    client = client_for('reception')
    first = _refer(client, patient, physio_dept).data['data']['id']
    _refer(client, patient, department)
    client.patch(f'/api/referrals/{first}', {'action': 'reject', 'notes': 'Sin indicación'}, format='json')

    assert [r['id'] for r in client.get('/api/referrals', {'status': 'cancelled'}).data['data']] == [first]
    assert len(client.get('/api/referrals', {'targetDepartmentId': department.id}).data['data']) == 1
    assert len(client.get('/api/referrals', {'patientId': patient.id}).data['data']) == 2
    assert client.get('/api/referrals/999').status_code == 404
