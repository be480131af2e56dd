"""
Invoices, payments and the provider webhook.
"""
import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from clinic.models import Invoice, LabOrder, PaymentTransaction, PaymentWebhookEvent
from clinic.services import billing, payment_gateway, payments
from clinic.services.payment_gateway import GatewayError, SignatureError

pytestmark = pytest.mark.django_db

WEBHOOK_SECRET = 'whsec_test'

ITEMS = [
    {'description': 'Consulta', 'quantity': 1, 'unit_price': '40.00'},
    {'description': 'Electrocardiograma', 'quantity': 2, 'unit_price': '15.50'},
]


@pytest.fixture
def desk(client_for):
    return client_for('reception')


@pytest.fixture
def invoice(desk, patient):
    r = desk.post('/api/billing/invoices', {'patient_id': patient.id, 'items': ITEMS, 'tax': '7.10',
                                            'discount': '1.00'}, format='json')
    assert r.status_code == 201
    return r.data['data']


def test_invoice_totals_and_number(invoice):
    assert invoice['invoiceNumber'] == f'INV-{timezone.localdate():%Y%m%d}-0001'
    assert (invoice['subtotal'], invoice['tax'], invoice['discount'], invoice['total']) == \
        ('71.00', '7.10', '1.00', '77.10')
    assert invoice['items'][1]['total'] == '31.00'
    assert invoice['status'] == 'pending'


def test_invoice_numbers_keep_counting_past_four_digits(patient):
    day = timezone.localdate()
    Invoice.objects.create(invoice_number=f'INV-{day:%Y%m%d}-9999', patient=patient)
    Invoice.objects.create(invoice_number=f'INV-{day:%Y%m%d}-10000', patient=patient)
    assert billing.next_invoice_number(day) == f'INV-{day:%Y%m%d}-10001'


def test_compute_totals_rejects_excess_discount():
    with pytest.raises(ValueError):
        billing.compute_totals([{'unit_price': '5', 'quantity': 1}], discount=6)


def test_invoice_update_recomputes(desk, invoice):
    r = desk.patch(f"/api/billing/invoices/{invoice['id']}", {'discount': '0', 'notes': 'Revisada'}, format='json')
    assert r.data['data']['total'] == '78.10'
    assert r.data['data']['notes'] == 'Revisada'


def test_invoice_cancel(desk, invoice):
    r = desk.post(f"/api/billing/invoices/{invoice['id']}/cancel", {'reason': 'Duplicada'}, format='json')
    assert r.data['data']['status'] == 'cancelled'
    assert 'Cancelada: Duplicada' in r.data['data']['notes']
    assert desk.post(f"/api/billing/invoices/{invoice['id']}/cancel", {}, format='json').status_code == 400
    assert desk.patch(f"/api/billing/invoices/{invoice['id']}", {'notes': 'x'}, format='json').status_code == 400


def test_mark_overdue_command(patient):
    yesterday = timezone.localdate() - timedelta(days=1)
    Invoice.objects.create(invoice_number='INV-A', patient=patient, due_date=yesterday)
    Invoice.objects.create(invoice_number='INV-B', patient=patient, due_date=yesterday, status='paid')
    Invoice.objects.create(invoice_number='INV-C', patient=patient, due_date=timezone.localdate())
    call_command('mark_overdue_invoices')
    assert list(Invoice.objects.filter(status='overdue').values_list('invoice_number', flat=True)) == ['INV-A']


def test_manual_payment_settles_invoice_and_refunds(desk, invoice):
    r = desk.post('/api/payments/manual', {
        'amount': 7710, 'payment_method': 'CASH', 'reference_type': 'INVOICE', 'reference_id': str(invoice['id']),
    }, format='json')
    assert r.status_code == 201
    payment = r.data['data']
    assert (payment['status'], payment['provider']) == ('SUCCEEDED', 'MANUAL')
    inv = Invoice.objects.get(pk=invoice['id'])
    assert (inv.status, inv.amount_paid, inv.payment_method) == ('paid', Decimal('77.10'), 'CASH')

    r = desk.post('/api/payments/refund', {'payment_id': payment['id'], 'amount': 3000}, format='json')
    assert r.data['data']['payment']['status'] == 'PARTIALLY_REFUNDED'
    assert r.data['data']['providerRefundId'] == ''
    assert Invoice.objects.get(pk=invoice['id']).status == 'paid'

    r = desk.post('/api/payments/refund', {'payment_id': payment['id'], 'reason': 'requested_by_customer'},
                  format='json')
    assert r.data['data']['amount'] == 4710
    assert r.data['data']['payment']['status'] == 'REFUNDED'
    inv.refresh_from_db()
    assert (inv.status, inv.amount_paid, inv.paid_date) == ('pending', Decimal('0'), None)

    assert desk.post('/api/payments/refund', {'payment_id': payment['id']}, format='json').status_code == 400


def test_card_intent_confirm_marks_lab_order_paid(desk, patient):
    order = LabOrder.objects.create(order_number='LAB-20250101-AAAA', patient=patient, total_amount=Decimal('25'))
    r = desk.post('/api/payments/create-intent', {
        'amount': 2500, 'patient_id': patient.id, 'reference_type': 'LAB_ORDER', 'reference_id': str(order.id),
    }, format='json')
    assert r.status_code == 201
    intent = r.data['data']
    assert intent['paymentIntentId'].startswith('pi_')
    assert intent['clientSecret'].startswith(intent['paymentIntentId'])
    assert intent['currency'] == 'EUR'

    r = desk.post('/api/payments/confirm', {'payment_intent_id': intent['paymentIntentId'], 'status': 'SUCCEEDED'},
                  format='json')
    assert r.data['data']['status'] == 'SUCCEEDED'
    assert r.data['data']['customerName'] == 'Ana Ruiz'
    order.refresh_from_db()
    assert order.is_paid is True

    again = desk.post('/api/payments/confirm', {'payment_intent_id': intent['paymentIntentId'], 'status': 'FAILED'},
                      format='json')
    assert again.status_code == 400


def test_failed_confirmation_keeps_reason(desk):
    t = payments.create_intent(None, amount=1000)
    r = desk.post('/api/payments/confirm', {'payment_intent_id': t.provider_payment_id, 'status': 'FAILED'},
                  format='json')
    assert r.data['data']['failureReason'] == 'Pago rechazado'
    assert desk.post('/api/payments/refund', {'payment_id': t.id}, format='json').status_code == 400


def test_cancel_only_pending(desk):
    t = payments.create_intent(None, amount=1000)
    r = desk.post(f'/api/payments/{t.id}/cancel')
    assert r.data['data']['status'] == 'CANCELLED'
    assert desk.post(f'/api/payments/{t.id}/cancel').status_code == 400


def test_history_and_stats(desk, patient):
    payments.record_manual(None, amount=1500, payment_method='CASH', patient=patient)
    payments.record_manual(None, amount=500, payment_method='TRANSFER')
    payments.create_intent(None, amount=900)

    r = desk.get('/api/payments/history', {'status': 'SUCCEEDED', 'pageSize': 1})
    assert r.data['pagination'] == {'total': 2, 'page': 1, 'pageSize': 1}
    assert len(r.data['data']) == 1
    assert len(desk.get('/api/payments/history', {'patientId': patient.id}).data['data']) == 1

    stats = desk.get('/api/payments/stats').data['data']
    assert stats['totalAmount'] == 2000
    assert stats['amountByMethod'] == {'CASH': 1500, 'TRANSFER': 500}
    assert stats['countByStatus'] == {'SUCCEEDED': 2, 'PENDING': 1}


def _stripe_signature(payload: bytes, secret: str, timestamp=None) -> str:
    """``Stripe-Signature`` header as the provider builds it."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f'{timestamp}.'.encode() + payload, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={digest}'


def test_webhook_signature_is_checked_by_the_sdk():
    payload = b'{"id": "evt_1", "object": "event"}'
    event = payment_gateway.construct_event(payload, _stripe_signature(payload, WEBHOOK_SECRET), WEBHOOK_SECRET)
    assert event['id'] == 'evt_1'
    with pytest.raises(SignatureError):
        payment_gateway.construct_event(payload + b' ', _stripe_signature(payload, WEBHOOK_SECRET), WEBHOOK_SECRET)
    with pytest.raises(SignatureError):
        payment_gateway.construct_event(payload, 'v1=abc', WEBHOOK_SECRET)
    with pytest.raises(SignatureError):
        payment_gateway.construct_event(payload, _stripe_signature(payload, WEBHOOK_SECRET, timestamp=1),
                                        WEBHOOK_SECRET)


@override_settings(STRIPE_SECRET_KEY='sk_test_123')
def test_live_gateway_goes_through_the_sdk(monkeypatch):
    calls = {}

    def fake_create(**params):
        calls['create'] = params
        return SimpleNamespace(id='pi_live', client_secret='pi_live_secret', status='requires_payment_method')

    def fake_refund(**params):
        calls['refund'] = params
        return SimpleNamespace(id='re_live')

    monkeypatch.setattr(stripe.PaymentIntent, 'create', fake_create)
    monkeypatch.setattr(stripe.Refund, 'create', fake_refund)

    t = payments.create_intent(None, amount=2500, description='Analítica')
    assert (t.provider_payment_id, t.client_secret) == ('pi_live', 'pi_live_secret')
    assert calls['create']['api_key'] == 'sk_test_123'
    assert (calls['create']['amount'], calls['create']['currency']) == (2500, 'eur')

    assert payment_gateway.refund('pi_live', 500, 'requested_by_customer') == 're_live'
    assert calls['refund'] == {'api_key': 'sk_test_123', 'payment_intent': 'pi_live', 'amount': 500,
                               'reason': 'requested_by_customer'}


@override_settings(STRIPE_SECRET_KEY='sk_test_123')
def test_live_gateway_errors_become_gateway_errors(monkeypatch, desk):
    def declined(**params):
        raise stripe.CardError('Your card was declined.', 'card', 'card_declined')

    monkeypatch.setattr(stripe.PaymentIntent, 'create', declined)
    with pytest.raises(GatewayError):
        payment_gateway.create_intent(1000, 'EUR')
    r = desk.post('/api/payments/create-intent', {'amount': 1000}, format='json')
    assert r.status_code == 400
    assert PaymentTransaction.objects.count() == 0


def _post_event(event: dict, secret: str = WEBHOOK_SECRET, signature=None):
    payload = json.dumps(event).encode()
    header = signature if signature is not None else _stripe_signature(payload, secret)
    return APIClient().post('/api/payments/webhook', payload, content_type='application/json',
                            HTTP_STRIPE_SIGNATURE=header)


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
def test_webhook_applies_event_once():
    t = payments.create_intent(None, amount=1200)
    event = {'id': 'evt_123', 'type': 'payment_intent.succeeded', 'data': {'object': {'id': t.provider_payment_id}}}

    r = _post_event(event)
    assert r.status_code == 200
    assert r.json() == {'received': True}
    t.refresh_from_db()
    assert t.status == 'SUCCEEDED'

    r = _post_event(event)
    assert r.json() == {'received': True, 'duplicate': True}
    assert PaymentWebhookEvent.objects.count() == 1


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
def test_webhook_failure_event_and_unknown_payment():
    t = payments.create_intent(None, amount=1200)
    _post_event({'id': 'evt_f', 'type': 'payment_intent.payment_failed', 'data': {
        'object': {'id': t.provider_payment_id, 'last_payment_error': {'message': 'Tarjeta rechazada'}}}})
    t.refresh_from_db()
    assert (t.status, t.failure_reason) == ('FAILED', 'Tarjeta rechazada')

    _post_event({'id': 'evt_u', 'type': 'payment_intent.succeeded', 'data': {'object': {'id': 'pi_missing'}}})
    assert PaymentWebhookEvent.objects.get(provider_event_id='evt_u').error == 'Pago desconocido: pi_missing'


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
def test_webhook_rejects_bad_signature():
    r = _post_event({'id': 'evt_x', 'type': 'payment_intent.succeeded'}, secret='wrong')
    assert r.status_code == 400
    assert PaymentWebhookEvent.objects.count() == 0
    assert PaymentTransaction.objects.count() == 0
