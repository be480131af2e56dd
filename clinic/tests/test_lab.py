import re
from decimal import Decimal

import pytest

from clinic.models import LabOrder, LabParameter, LabResult, LabTestCatalog
from clinic.services import lab
from clinic.services.lab_report import reference_range, result_flag

pytestmark = pytest.mark.django_db


@pytest.fixture
def hemogram(db):
    test = LabTestCatalog.objects.create(code='HEMO', name='Hemograma', price=Decimal('25.00'))
    LabParameter.objects.create(test=test, name='Hemoglobina', unit='g/dL', reference_min=Decimal('12'),
                                reference_max=Decimal('16'), critical_below=Decimal('7'), sort_order=0)
    LabParameter.objects.create(test=test, name='Leucocitos', unit='10^3/uL', reference_min=Decimal('4'),
                                reference_max=Decimal('11'), sort_order=1)
    return test


@pytest.fixture
def lab_client(client_for):
    return client_for('lab')


def _order(client, patient, *test_ids, **extra):
    r = client.post('/api/lab/orders', {'patient_id': patient.id, 'test_ids': list(test_ids), **extra},
                    format='json')
    assert r.status_code == 201, r.data
    return r.data['data']


def _result(client, detail, parameter, value):
    return client.post('/api/lab/results', {
        'order_detail_id': detail['id'], 'parameter_id': parameter['id'] if parameter else None, 'value': value,
    }, format='json')


def test_priority_and_order_number():
    assert lab.normalize_priority('STAT') == 'urgent'
    assert lab.normalize_priority('emergency') == 'urgent'
    assert lab.normalize_priority('') == 'normal'
    assert lab.normalize_priority('whenever') == 'normal'
    assert re.fullmatch(r'LAB-\d{8}-[A-Z0-9]{4}', lab.next_order_number())


def test_evaluate_flags(hemogram):
    hb = hemogram.parameters.get(name='Hemoglobina')
    assert lab.evaluate(hb, Decimal('14')) == (False, False)
    assert lab.evaluate(hb, Decimal('17')) == (True, False)
    assert lab.evaluate(hb, Decimal('6.5')) == (True, True)
    assert lab.evaluate(hb, None) == (False, False)
    assert lab.evaluate(None, Decimal('1')) == (False, False)


def test_report_helpers(hemogram):
    hb = hemogram.parameters.get(name='Hemoglobina')
    assert reference_range(hb) == '12.00 - 16.00'
    assert reference_range(None) == ''
    assert result_flag(LabResult(value_numeric=Decimal('17'), is_abnormal=True), hb) == 'H'
    assert result_flag(LabResult(value_numeric=Decimal('11'), is_abnormal=True), hb) == 'L'
    assert result_flag(LabResult(value_numeric=Decimal('5'), is_abnormal=True, is_critical=True), hb) == 'CRIT'
    assert result_flag(LabResult(value_numeric=Decimal('14')), hb) == ''


def test_catalog_write_needs_lab_admin(client_for, hemogram):
    payload = {
        'code': 'glu', 'name': 'Glucosa', 'price': '8.00',
        'parameters': [{'name': 'Glucosa', 'unit': 'mg/dL', 'reference_min': '70', 'reference_max': '100'}],
    }
    assert client_for('lab').post('/api/lab/catalog', payload, format='json').status_code == 403

    admin = client_for('lab_admin')
    r = admin.post('/api/lab/catalog', payload, format='json')
    assert r.status_code == 201
    assert r.data['data']['code'] == 'GLU'
    assert [p['name'] for p in r.data['data']['parameters']] == ['Glucosa']
    assert admin.post('/api/lab/catalog', payload, format='json').status_code == 400

    r = admin.post(f'/api/lab/catalog/{hemogram.id}/parameters',
                   {'name': 'Plaquetas', 'reference_min': '450', 'reference_max': '150'}, format='json')
    assert r.status_code == 400

    codes = [t['code'] for t in client_for('doctor').get('/api/lab/catalog').data['data']]
    assert codes == ['GLU', 'HEMO']


def test_categories(client_for):
    admin = client_for('lab_admin')
    r = admin.post('/api/lab/categories', {'name': 'Hematología', 'code': 'hem'}, format='json')
    assert r.data['data']['code'] == 'HEM'
    assert admin.post('/api/lab/categories', {'name': 'Otra', 'code': 'HEM'}, format='json').status_code == 400
    assert [c['code'] for c in admin.get('/api/lab/categories').data['data']] == ['HEM']


def test_create_order_totals_and_priority(lab_client, patient, hemogram):
    order = _order(lab_client, patient, hemogram.id, priority='stat',
                   custom_tests=[{'name': 'Prueba externa', 'price': '10.00'}])
    assert order['priority'] == 'urgent'
    assert order['status'] == 'pending'
    assert order['totalAmount'] == '35.00'
    assert order['doctorId'] == lab_client.user.id
    assert [d['name'] for d in order['details']] == ['Hemograma', 'Prueba externa']
    assert order['transitions'][0]['from'] is None


def test_order_rejects_unknown_or_empty_tests(lab_client, patient, hemogram):
    r = lab_client.post('/api/lab/orders', {'patient_id': patient.id, 'test_ids': [hemogram.id, 999]},
                        format='json')
    assert r.status_code == 400
    r = lab_client.post('/api/lab/orders', {'patient_id': patient.id}, format='json')
    assert r.status_code == 400
    assert LabOrder.objects.count() == 0


def test_full_workflow(lab_client, patient, hemogram):
    order = _order(lab_client, patient, hemogram.id)
    detail = order['details'][0]
    hb, wbc = detail['parameters']

    r = lab_client.post(f"/api/lab/order-details/{detail['id']}/sample", {}, format='json')
    assert r.data['data']['status'] == 'samples_collected'

    r = _result(lab_client, detail, hb, '6,5')
    assert r.status_code == 200
    assert (r.data['data']['isAbnormal'], r.data['data']['isCritical']) == (True, True)
    assert r.data['data']['valueNumeric'] == '6.5'
    assert LabOrder.objects.get(pk=order['id']).status == 'processing'

    verify = lab_client.get(f"/api/lab/orders/{order['id']}/verify").data['data']
    assert verify == {'complete': False, 'missing': 1}
    r = lab_client.patch(f"/api/lab/orders/{order['id']}", {'action': 'complete'}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Faltan 1 resultado(s) por registrar'

    # entering the same parameter again updates the stored result
    _result(lab_client, detail, hb, '13.1')
    _result(lab_client, detail, wbc, '7')
    assert LabResult.objects.filter(order_detail_id=detail['id']).count() == 2

    r = lab_client.patch(f"/api/lab/orders/{order['id']}", {'action': 'complete'}, format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert data['status'] == 'completed'
    assert [t['to'] for t in data['transitions']] == ['pending', 'samples_collected', 'processing', 'completed']

    assert _result(lab_client, detail, hb, '14').status_code == 400
    assert lab_client.get('/api/lab/stats').data['data']['completedToday'] == 1


def test_general_result_covers_custom_test(lab_client, patient):
    order = _order(lab_client, patient, custom_tests=[{'name': 'Cultivo'}])
    detail = order['details'][0]
    assert lab_client.get(f"/api/lab/orders/{order['id']}/verify").data['data']['missing'] == 1
    _result(lab_client, detail, None, 'Negativo')
    assert lab_client.get(f"/api/lab/orders/{order['id']}/verify").data['data'] == {'complete': True, 'missing': 0}


@pytest.mark.parametrize('value', ['NaN', 'Infinity', '-inf', '1e12', '9999999999.99999'])
def test_non_numeric_readings_are_kept_as_text(lab_client, patient, hemogram, value):
    order = _order(lab_client, patient, hemogram.id)
    detail = order['details'][0]
    r = _result(lab_client, detail, detail['parameters'][0], value)
    assert r.status_code == 200
    data = r.data['data']
    assert (data['valueText'], data['valueNumeric']) == (value, None)
    assert (data['isAbnormal'], data['isCritical']) == (False, False)


def test_status_action_cannot_complete(lab_client, patient, hemogram):
    order = _order(lab_client, patient, hemogram.id)
    url = f"/api/lab/orders/{order['id']}"
    r = lab_client.patch(url, {'action': 'status', 'status': 'completed'}, format='json')
    assert r.status_code == 400

    r = lab_client.patch(url, {'action': 'status', 'status': 'cancelled', 'reason': 'Paciente no acude'},
                         format='json')
    assert r.data['data']['status'] == 'cancelled'
    assert r.data['data']['cancelledReason'] == 'Paciente no acude'
    r = lab_client.patch(url, {'action': 'status', 'status': 'processing'}, format='json')
    assert r.status_code == 400


def test_review_result(lab_client, patient, hemogram):
    order = _order(lab_client, patient, hemogram.id)
    detail = order['details'][0]
    result_id = _result(lab_client, detail, detail['parameters'][0], '14').data['data']['id']
    r = lab_client.post(f'/api/lab/results/{result_id}/review')
    assert r.data['data']['status'] == 'reviewed'
    assert r.data['data']['reviewedBy'] is not None


def test_list_and_patient_orders(lab_client, patient, hemogram):
    _order(lab_client, patient, hemogram.id, priority='urgent')
    _order(lab_client, patient, hemogram.id)
    r = lab_client.get('/api/lab/orders', {'priority': 'stat'})
    assert r.data['pagination'] == {'total': 1, 'page': 1, 'pageSize': 20}
    assert len(lab_client.get(f'/api/lab/patients/{patient.id}/orders').data['data']) == 2
    assert lab_client.get('/api/lab/patients/9999/orders').status_code == 404


def test_print_renders_pdf(lab_client, patient, hemogram):
    order = _order(lab_client, patient, hemogram.id)
    detail = order['details'][0]
    _result(lab_client, detail, detail['parameters'][0], '17')
    r = lab_client.get(f"/api/lab/orders/{order['id']}/print")
    assert r.status_code == 200
    assert r['Content-Type'] == 'application/pdf'
    assert r.content.startswith(b'%PDF')
    assert order['orderNumber'] in r['Content-Disposition']
