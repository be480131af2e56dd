import pytest

from clinic.models import PhysioSession, PhysioTreatmentType
from clinic.services.physio import pain_improvement

pytestmark = pytest.mark.django_db


@pytest.fixture
def physio(client_for):
    return client_for('nurse')


@pytest.fixture
def plan(physio, patient):
    r = physio.post('/api/physio/plans', {
        'patient_id': patient.id, 'diagnosis': 'Tendinopatía del supraespinoso',
        'objectives': 'reducir dolor, recuperar movilidad', 'total_sessions_prescribed': 2, 'initial_vas': 8,
        'baseline_rom': {'abduccion': 90},
    }, format='json')
    assert r.status_code == 201
    return r.data['data']


def test_pain_improvement():
    assert pain_improvement(8, 2) == 75
    assert pain_improvement(5, 5) == 0
    assert pain_improvement(4, 6) == -50
    assert pain_improvement(None, 3) is None
    assert pain_improvement(0, 0) is None


def test_create_plan(physio, plan):
    assert plan['status'] == 'indicated'
    assert plan['planType'] == 'rehabilitation'
    assert plan['objectives'] == ['reducir dolor', 'recuperar movilidad']
    assert plan['physiotherapistId'] == physio.user.id
    assert plan['sessionsCompleted'] == 0


def test_sessions_advance_and_close_the_plan(physio, plan):
    r = physio.post('/api/physio/sessions', {
        'plan_id': plan['id'], 'subjective': 'Dolor nocturno', 'pain_level': 6,
        'techniques': ['TENS'], 'exercises': ['pendular'],
    }, format='json')
    assert r.status_code == 201
    assert r.data['data']['sessionNumber'] == 1
    detail = physio.get(f"/api/physio/plans/{plan['id']}").data['data']
    assert (detail['status'], detail['sessionsCompleted']) == ('in_progress', 1)

    physio.post('/api/physio/sessions', {'plan_id': plan['id'], 'pain_level': 3}, format='json')
    detail = physio.get(f"/api/physio/plans/{plan['id']}").data['data']
    assert detail['status'] == 'completed'
    assert detail['actualEndDate'] is not None
    assert [s['sessionNumber'] for s in detail['sessions']] == [1, 2]

    r = physio.post('/api/physio/sessions', {'plan_id': plan['id']}, format='json')
    assert r.status_code == 400
    assert PhysioSession.objects.count() == 2


def test_session_for_missing_plan(physio):
    assert physio.post('/api/physio/sessions', {'plan_id': 999}, format='json').status_code == 404


def test_session_pain_level_is_bounded(physio, plan):
    r = physio.post('/api/physio/sessions', {'plan_id': plan['id'], 'pain_level': 11}, format='json')
    assert r.status_code == 400


def test_update_plan(physio, plan):
    url = f"/api/physio/plans/{plan['id']}"
    r = physio.patch(url, {'sessions_per_week': 3, 'status': 'suspended'}, format='json')
    assert (r.data['data']['sessionsPerWeek'], r.data['data']['status']) == (3, 'suspended')
    assert physio.patch(url, {'status': 'completed'}, format='json').status_code == 400
    assert physio.post('/api/physio/sessions', {'plan_id': plan['id']}, format='json').status_code == 400


def test_finalize_writes_discharge_once(physio, plan):
    physio.post('/api/physio/sessions', {'plan_id': plan['id']}, format='json')
    url = f"/api/physio/plans/{plan['id']}/finalize"
    r = physio.post(url, {'final_vas': 2, 'outcome_summary': 'Buena evolución',
                          'home_program': 'Ejercicios de Codman'}, format='json')
    assert r.status_code == 201
    assert (r.data['data']['painImprovement'], r.data['data']['sessionsCompleted']) == (75, 1)

    detail = physio.get(f"/api/physio/plans/{plan['id']}").data['data']
    assert detail['status'] == 'completed'
    assert detail['discharge']['finalVas'] == 2

    assert physio.post(url, {'final_vas': 1}, format='json').status_code == 400
    assert physio.patch(f"/api/physio/plans/{plan['id']}", {'notes': 'x'}, format='json').status_code == 400


def test_list_filters(physio, plan, patient):
    assert len(physio.get('/api/physio/plans', {'patientId': patient.id}).data['data']) == 1
    assert physio.get('/api/physio/plans', {'status': 'completed'}).data['data'] == []
    physio.post('/api/physio/sessions', {'plan_id': plan['id']}, format='json')
    assert len(physio.get('/api/physio/sessions', {'planId': plan['id']}).data['data']) == 1


def test_catalogs(client_for):
    client = client_for('doctor')
    r = client.post('/api/physio-catalogs/treatment-types', {'code': 'elec', 'name': 'Electroterapia'},
                    format='json')
    assert r.status_code == 201
    assert r.data['data']['code'] == 'ELEC'
    tt = PhysioTreatmentType.objects.get(code='ELEC')

    r = client.post('/api/physio-catalogs/techniques', {
        'code': 'tens', 'name': 'TENS', 'treatment_type': tt.id, 'contraindications': 'marcapasos, embarazo',
    }, format='json')
    assert r.data['data']['treatmentTypeId'] == tt.id
    assert r.data['data']['contraindications'] == ['marcapasos', 'embarazo']

    client.post('/api/physio-catalogs/exercises', {'code': 'pend', 'name': 'Pendular de Codman'}, format='json')
    dup = client.post('/api/physio-catalogs/exercises', {'code': 'PEND', 'name': 'Otro'}, format='json')
    assert dup.status_code == 400

    assert len(client.get('/api/physio-catalogs/techniques', {'treatmentTypeId': tt.id}).data['data']) == 1
    assert client.get('/api/physio-catalogs/techniques', {'treatmentTypeId': tt.id + 1}).data['data'] == []
    assert client.get('/api/physio-catalogs/unknown').status_code == 404
