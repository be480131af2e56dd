"""
Inventory, prescriptions and the point of sale.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from clinic.models import InventoryItem, InventoryTransaction, MedicalRecord, POSTransaction, Prescription
from clinic.services.inventory import compute_new_quantity
from clinic.services.pos import compute_totals, next_transaction_number

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('current,kind,qty,expected', [
    (10, 'in', 5, 15),
    (10, 'return', 2, 12),
    (10, 'out', 4, 6),
    (3, 'sale', 5, 0),
    (10, 'disposal', 10, 0),
    (10, 'adjustment', 7, 7),
    (10, 'transfer', 4, 10),
])
def test_compute_new_quantity(current, kind, qty, expected):
    assert compute_new_quantity(current, kind, qty) == expected


def test_create_product_with_initial_stock(client_for):
    client = client_for('pharmacy')
    r = client.post('/api/pharmacy/products', {
        'sku': 'med-ibu-400', 'name': 'Ibuprofeno 400 mg', 'quantity': 30, 'min_stock': 5, 'unit_cost': '0.10',
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['sku'] == 'MED-IBU-400'
    assert data['quantity'] == 30
    movement = InventoryTransaction.objects.get(item_id=data['id'])
    assert (movement.transaction_type, movement.reference_type, movement.previous_quantity) == ('in', 'initial_stock', 0)

    dup = client.post('/api/pharmacy/products', {'sku': 'MED-IBU-400', 'name': 'Otro'}, format='json')
    assert dup.status_code == 400


def test_patch_never_touches_quantity(client_for, item):
    r = client_for('pharmacy').patch(f'/api/pharmacy/products/{item.id}', {'quantity': 999, 'min_stock': 60},
                                     format='json')
    assert r.status_code == 200
    assert r.data['data']['quantity'] == 50
    assert r.data['data']['isLowStock'] is True


def test_movements_and_history(client_for, item):
    client = client_for('pharmacy')
    r = client.post('/api/pharmacy/movements', {'item_id': item.id, 'transaction_type': 'out', 'quantity': 80},
                    format='json')
    assert r.status_code == 201
    assert (r.data['data']['previousQuantity'], r.data['data']['newQuantity']) == (50, 0)

    r = client.post('/api/pharmacy/movements', {'item_id': item.id, 'transaction_type': 'in', 'quantity': 0},
                    format='json')
    assert r.status_code == 400

    r = client.post('/api/pharmacy/movements', {'item_id': item.id, 'transaction_type': 'adjustment', 'quantity': 0},
                    format='json')
    assert r.status_code == 201

    history = client.get('/api/pharmacy/movements', {'productId': item.id, 'type': 'out'}).data['data']
    assert len(history) == 1
    detail = client.get(f'/api/pharmacy/products/{item.id}').data['data']
    assert len(detail['movements']) == 2


def test_stock_entry_with_voucher(client_for, item):
    expiry = timezone.localdate() + timedelta(days=400)
    r = client_for('pharmacy').post('/api/pharmacy/inventory/entry', {
        'item_id': item.id, 'quantity': 20, 'batch_number': 'L-77', 'expiration_date': expiry.isoformat(),
        'document': {'file_url': 'https://files.example.org/vouchers/albaran-77.pdf'},
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['referenceType'] == 'stock_entry'
    assert data['notes'] == 'Entrada de inventario'
    assert data['documents'][0]['fileName'] == 'albaran-77.pdf'
    assert data['documents'][0]['documentType'] == 'entry_voucher'
    item.refresh_from_db()
    assert (item.quantity, item.batch_number, item.expiration_date) == (70, 'L-77', expiry)


def test_low_stock_expiring_and_categories(client_for, item):
    today = timezone.localdate()
    InventoryItem.objects.create(sku='SUP-1', name='Gasas', category='supplies', quantity=2, min_stock=5,
                                 expiration_date=today + timedelta(days=10))
    InventoryItem.objects.create(sku='SUP-2', name='Vendas', category='supplies', quantity=2, min_stock=5,
                                 expiration_date=today - timedelta(days=1))
    client = client_for('pharmacy')
    assert [i['sku'] for i in client.get('/api/pharmacy/inventory/low-stock').data['data']] == ['SUP-1', 'SUP-2']
    assert [i['sku'] for i in client.get('/api/pharmacy/inventory/expiring').data['data']] == ['SUP-1']
    assert client.get('/api/pharmacy/inventory/expiring', {'days': 'x'}).status_code == 400
    assert client.get('/api/pharmacy/categories').data['data'] == ['medication', 'supplies']
    assert client.get('/api/pharmacy/products', {'lowStock': 'true'}).data['total'] == 2


def test_deactivated_products_leave_listings(client_for, item):
    client = client_for('pharmacy')
    client.delete(f'/api/pharmacy/products/{item.id}')
    assert client.get('/api/pharmacy/products').data['total'] == 0
    assert client.get('/api/pharmacy/products', {'includeInactive': 'true'}).data['total'] == 1
    assert client.get('/api/pharmacy/search', {'q': 'para'}).data['data'] == []


def test_pharmacy_stats_are_cached_until_stock_moves(client_for, item):
    client = client_for('pharmacy')
    stats = client.get('/api/pharmacy/stats').data['data']
    assert stats['totalProducts'] == 1
    assert stats['totalInventoryValue'] == '2.50'

    InventoryItem.objects.create(sku='X-1', name='Nuevo', quantity=1)
    assert client.get('/api/pharmacy/stats').data['data']['totalProducts'] == 1

    client.post('/api/pharmacy/movements', {'item_id': item.id, 'transaction_type': 'in', 'quantity': 1},
                format='json')
    assert client.get('/api/pharmacy/stats').data['data']['totalProducts'] == 2


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

def _prescribe(client, patient, item, **extra):
    return client.post('/api/pharmacy/prescriptions', {
        'patient_id': patient.id,
        'items': [{'medication': item.id, 'dosage': '500 mg', 'frequency': 'cada 8 h', 'quantity_prescribed': 20}],
        **extra,
    }, format='json')


def test_prescribing_creates_consultation_record(client_for, patient, item):
    client = client_for('doctor')
    r = _prescribe(client, patient, item)
    assert r.status_code == 201
    assert r.data['message'] == '1 receta(s) creada(s)'
    record = MedicalRecord.objects.get(pk=r.data['medical_record_id'])
    assert record.prescriptions == ['Paracetamol 500 mg']
    rx = Prescription.objects.get(pk=r.data['prescription_ids'][0])
    assert (rx.medication_name, rx.status, rx.doctor_id) == ('Paracetamol 500 mg', 'pending', client.user.id)


def test_prescription_reuses_given_record(client_for, patient, item):
    record = MedicalRecord.objects.create(patient=patient)
    r = _prescribe(client_for('doctor'), patient, item, medical_record_id=record.id)
    assert r.data['medical_record_id'] == record.id
    assert MedicalRecord.objects.count() == 1


def test_partial_then_full_dispense(client_for, patient, item):
    rx_id = _prescribe(client_for('doctor'), patient, item).data['prescription_ids'][0]
    client = client_for('pharmacy')

    r = client.post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {'quantity': 5}, format='json')
    assert r.data['data']['status'] == 'partially_dispensed'
    assert r.data['data']['remaining'] == 15

    r = client.post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {'quantity': 16}, format='json')
    assert r.status_code == 400

    r = client.post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {}, format='json')
    assert r.data['data']['status'] == 'dispensed'
    item.refresh_from_db()
    assert item.quantity == 30
    movements = InventoryTransaction.objects.filter(item=item, transaction_type='prescription_dispense')
    assert [m.reference_id for m in movements] == [str(rx_id), str(rx_id)]

    r = client.post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {}, format='json')
    assert r.status_code == 400


def test_dispense_checks_stock(client_for, patient, item):
    item.quantity = 3
    item.save()
    rx_id = _prescribe(client_for('doctor'), patient, item).data['prescription_ids'][0]
    r = client_for('pharmacy').post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {'quantity': 4},
                                    format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Stock insuficiente. Disponible: 3, Solicitado: 4'


def test_cancelled_prescription_cannot_be_dispensed(client_for, patient, item):
    rx_id = _prescribe(client_for('doctor'), patient, item).data['prescription_ids'][0]
    client = client_for('pharmacy')
    r = client.post(f'/api/pharmacy/prescriptions/{rx_id}/cancel', {'reason': 'Alergia'}, format='json')
    assert r.data['data']['status'] == 'cancelled'
    assert client.post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {}, format='json').status_code == 400
    assert client.post(f'/api/pharmacy/prescriptions/{rx_id}/cancel', {}, format='json').status_code == 400


def test_expired_prescription_cannot_be_dispensed(client_for, patient, item):
    rx_id = _prescribe(client_for('doctor'), patient, item).data['prescription_ids'][0]
    Prescription.objects.filter(pk=rx_id).update(status='expired')
    r = client_for('pharmacy').post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'La receta está caducada'
    item.refresh_from_db()
    assert item.quantity == 50


def test_prescription_without_inventory_item(client_for, patient):
    r = client_for('doctor').post('/api/pharmacy/prescriptions', {
        'patient_id': patient.id, 'items': [{'medication_name': 'Fórmula magistral', 'quantity_prescribed': 1}],
    }, format='json')
    rx_id = r.data['prescription_ids'][0]
    r = client_for('pharmacy').post(f'/api/pharmacy/prescriptions/{rx_id}/dispense', {}, format='json')
    assert r.data['data']['status'] == 'dispensed'
    assert InventoryTransaction.objects.count() == 0


# ---------------------------------------------------------------------------
# Point of sale
# ---------------------------------------------------------------------------

def test_compute_totals_taxes_discounted_subtotal():
    lines = [{'unit_price': Decimal('2.00'), 'quantity': 3, 'discount': Decimal('0')},
             {'unit_price': Decimal('1.50'), 'quantity': 2, 'discount': Decimal('0.50')}]
    totals = compute_totals(lines, Decimal('1.00'), tax_rate=Decimal('0.16'))
    assert totals == {
        'subtotal': Decimal('8.50'),
        'discount_total': Decimal('1.00'),
        'tax_amount': Decimal('1.20'),
        'total_amount': Decimal('8.70'),
    }
    with pytest.raises(ValueError):
        compute_totals(lines, Decimal('9.00'))


def test_sale_then_cancel_restores_stock(client_for, item):
    client = client_for('pharmacy')
    r = client.post('/api/pharmacy/pos/sales', {
        'payment_method': 'CASH', 'discount_total': '1.00',
        'items': [{'inventory_id': item.id, 'quantity': 3, 'unit_price': '2.00'}],
    }, format='json')
    assert r.status_code == 201
    sale = r.data['data']
    assert sale['transactionNumber'] == f'POS-{timezone.localdate():%Y-%m-%d}-0001'
    assert (sale['subtotal'], sale['taxAmount'], sale['totalAmount']) == ('6.00', '0.80', '5.80')
    item.refresh_from_db()
    assert item.quantity == 47

    stats = client.get('/api/pharmacy/pos/stats').data['data']
    assert stats['transactionCountToday'] == 1
    assert stats['topProducts'][0]['quantity'] == 3

    r = client.post(f"/api/pharmacy/pos/sales/{sale['id']}/cancel", {'reason': 'Error de cobro'}, format='json')
    assert r.data['data']['status'] == 'CANCELLED'
    item.refresh_from_db()
    assert item.quantity == 50
    assert InventoryTransaction.objects.filter(reference_type='pos_cancellation').count() == 1
    assert client.post(f"/api/pharmacy/pos/sales/{sale['id']}/cancel", {}, format='json').status_code == 400


def test_sale_rejects_short_stock_atomically(client_for, item):
    other = InventoryItem.objects.create(sku='SUP-9', name='Jeringa', quantity=1, unit_price=Decimal('0.30'))
    r = client_for('pharmacy').post('/api/pharmacy/pos/sales', {
        'payment_method': 'CARD',
        'items': [{'inventory_id': item.id, 'quantity': 1, 'unit_price': '2.00'},
                  {'inventory_id': other.id, 'quantity': 2, 'unit_price': '0.30'}],
    }, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Stock insuficiente para Jeringa. Disponible: 1, Solicitado: 2'
    assert POSTransaction.objects.count() == 0
    item.refresh_from_db()
    assert item.quantity == 50


def test_pos_products_hide_empty_stock(client_for, item):
    InventoryItem.objects.create(sku='EMPTY', name='Agotado', quantity=0)
    data = client_for('pharmacy').get('/api/pharmacy/pos/products').data['data']
    assert [p['sku'] for p in data] == [item.sku]


def test_transaction_numbers_follow_daily_sequence():
    day = timezone.localdate()
    POSTransaction.objects.create(transaction_number=f'POS-{day:%Y-%m-%d}-0007', payment_method='CASH',
                                  subtotal=1, tax_amount=0, total_amount=1)
    assert next_transaction_number(day) == f'POS-{day:%Y-%m-%d}-0008'
    POSTransaction.objects.create(transaction_number=f'POS-{day:%Y-%m-%d}-9999', payment_method='CASH',
                                  subtotal=1, tax_amount=0, total_amount=1)
    POSTransaction.objects.create(transaction_number=f'POS-{day:%Y-%m-%d}-10000', payment_method='CASH',
                                  subtotal=1, tax_amount=0, total_amount=1)
    assert next_transaction_number(day) == f'POS-{day:%Y-%m-%d}-10001'


def test_sale_lines_for_the_same_product_share_its_stock(client_for, item):
    item.quantity = 5
    item.save()
    client = client_for('pharmacy')
    r = client.post('/api/pharmacy/pos/sales', {
        'payment_method': 'CASH',
        'items': [{'inventory_id': item.id, 'quantity': 4, 'unit_price': '2.00'},
                  {'inventory_id': item.id, 'quantity': 4, 'unit_price': '2.00'}],
    }, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Stock insuficiente para Paracetamol 500 mg. Disponible: 5, Solicitado: 8'
    assert POSTransaction.objects.count() == 0

    r = client.post('/api/pharmacy/pos/sales', {
        'payment_method': 'CASH',
        'items': [{'inventory_id': item.id, 'quantity': 2, 'unit_price': '2.00'},
                  {'inventory_id': item.id, 'quantity': 3, 'unit_price': '1.80'}],
    }, format='json')
    assert r.data['data']['itemsCount'] == 5
    item.refresh_from_db()
    assert item.quantity == 0

    client.post(f"/api/pharmacy/pos/sales/{r.data['data']['id']}/cancel", {}, format='json')
    item.refresh_from_db()
    assert item.quantity == 5
