"""
Payment transactions: card intents, manual payments, refunds and the
provider webhook.

Amounts are integer cents.  A succeeded payment is applied to what it
pays for (a lab order or an invoice) and a full refund reverts that.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from clinic.models import Invoice, LabOrder, PaymentRefund, PaymentTransaction, PaymentWebhookEvent
from clinic.services import payment_gateway as gateway
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)

CONFIRMABLE = {'SUCCEEDED', 'FAILED', 'PROCESSING'}
WEBHOOK_STATUS = {
    'payment_intent.succeeded': 'SUCCEEDED',
    'payment_intent.payment_failed': 'FAILED',
    'payment_intent.processing': 'PROCESSING',
}


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal('0.01'))


def serialize_payment(t: PaymentTransaction) -> dict:
    return {
        'id': t.id,
        'amount': t.amount,
        'currency': t.currency,
        'status': t.status,
        'paymentMethod': t.payment_method,
        'provider': t.provider,
        'providerPaymentId': t.provider_payment_id,
        'patientId': t.patient_id,
        'customerEmail': t.customer_email,
        'customerName': t.customer_name,
        'referenceType': t.reference_type,
        'referenceId': t.reference_id,
        'description': t.description,
        'metadata': t.metadata,
        'refundedAmount': t.refunded_amount,
        'refundReason': t.refund_reason,
        'failureReason': t.failure_reason,
        'completedAt': t.completed_at.isoformat() if t.completed_at else None,
        'createdAt': t.created_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Applying payments to what they pay for
# ---------------------------------------------------------------------------

def _reference_object(t: PaymentTransaction):
    if not t.reference_id or not str(t.reference_id).isdigit():
        return None
    if t.reference_type == 'LAB_ORDER':
        return LabOrder.objects.select_for_update().filter(pk=int(t.reference_id)).first()
    if t.reference_type == 'INVOICE':
        return Invoice.objects.select_for_update().filter(pk=int(t.reference_id)).first()
    return None


def _apply_success(t: PaymentTransaction) -> None:
    obj = _reference_object(t)
    if isinstance(obj, LabOrder):
        obj.is_paid = True
        obj.save(update_fields=['is_paid', 'updated_at'])
    elif isinstance(obj, Invoice) and obj.status != 'cancelled':
        obj.amount_paid = cents_to_decimal(t.amount)
        obj.payment_method = t.payment_method
        obj.paid_date = timezone.localdate()
        obj.status = 'paid'
        obj.save(update_fields=['amount_paid', 'payment_method', 'paid_date', 'status'])


def _revert_success(t: PaymentTransaction) -> None:
    obj = _reference_object(t)
    if isinstance(obj, LabOrder):
        obj.is_paid = False
        obj.save(update_fields=['is_paid', 'updated_at'])
    elif isinstance(obj, Invoice) and obj.status == 'paid':
        obj.amount_paid = Decimal('0')
        obj.paid_date = None
        obj.status = 'pending'
        obj.save(update_fields=['amount_paid', 'paid_date', 'status'])


def _set_status(t: PaymentTransaction, status: str, failure_reason: str = '') -> None:
    previous = t.status
    t.status = status
    if status == 'SUCCEEDED':
        t.completed_at = timezone.now()
    if status == 'FAILED':
        t.failure_reason = failure_reason or t.failure_reason or 'Pago rechazado'
    t.save(update_fields=['status', 'completed_at', 'failure_reason', 'updated_at'])
    if status == 'SUCCEEDED' and previous != 'SUCCEEDED':
        _apply_success(t)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def create_intent(current_user, *, amount: int, payment_method: str = 'CARD', currency: Optional[str] = None,
                  patient=None, customer_email: str = '', customer_name: str = '', reference_type: str = '',
                  reference_id: str = '', description: str = '', metadata: Optional[dict] = None
                  ) -> PaymentTransaction:
    if amount <= 0:
        raise ValueError('El importe debe ser mayor que cero')
    currency = (currency or settings.PAYMENT_CURRENCY).upper()
    intent = gateway.create_intent(amount, currency, description=description,
                                   metadata={'reference_type': reference_type, 'reference_id': reference_id},
                                   receipt_email=customer_email)
    t = PaymentTransaction.objects.create(
        amount=amount, currency=currency, status='PENDING', payment_method=payment_method, provider='STRIPE',
        provider_payment_id=intent.id, client_secret=intent.client_secret, patient=patient,
        customer_email=customer_email, customer_name=customer_name or (patient.full_name if patient else ''),
        reference_type=reference_type, reference_id=str(reference_id or ''), description=description,
        metadata=metadata or {}, created_by=current_user,
    )
    log_action(user=current_user, action='payment_intent', object_type='payment', object_id=t.id,
               detail={'amount': amount, 'reference': f'{reference_type}:{reference_id}'})
    return t


@transaction.atomic
def confirm(current_user, provider_payment_id: str, status: str, failure_reason: str = '') -> PaymentTransaction:
    if status not in CONFIRMABLE:
        raise ValueError(f'Estado no válido: {status}')
    t = PaymentTransaction.objects.select_for_update().get(provider_payment_id=provider_payment_id)
    if t.status not in ('PENDING', 'PROCESSING'):
        raise ValueError(f'El pago ya está en estado {t.status}')
    _set_status(t, status, failure_reason)
    log_action(user=current_user, action='payment_confirm', object_type='payment', object_id=t.id,
               detail={'status': status})
    return t


@transaction.atomic
def refund(current_user, payment_id: int, amount: Optional[int] = None, reason: str = '') -> PaymentRefund:
    t = PaymentTransaction.objects.select_for_update().get(pk=payment_id)
    if t.status not in ('SUCCEEDED', 'PARTIALLY_REFUNDED'):
        raise ValueError('Solo se pueden reembolsar pagos completados')
    remaining = t.refundable
    amount = min(amount or remaining, remaining)
    if amount <= 0:
        raise ValueError('No queda importe por reembolsar')
    provider_refund_id = gateway.refund(t.provider_payment_id, amount, reason) if t.provider == 'STRIPE' else ''
    r = PaymentRefund.objects.create(transaction=t, amount=amount, reason=reason,
                                     provider_refund_id=provider_refund_id, created_by=current_user)
    t.refunded_amount += amount
    t.refund_reason = reason
    t.status = 'REFUNDED' if t.refundable == 0 else 'PARTIALLY_REFUNDED'
    t.save(update_fields=['refunded_amount', 'refund_reason', 'status', 'updated_at'])
    if t.status == 'REFUNDED':
        _revert_success(t)
    log_action(user=current_user, action='payment_refund', object_type='payment', object_id=t.id,
               detail={'amount': amount, 'status': t.status})
    return r


@transaction.atomic
def cancel(current_user, payment_id: int) -> PaymentTransaction:
    t = PaymentTransaction.objects.select_for_update().get(pk=payment_id)
    if t.status != 'PENDING':
        raise ValueError('Solo se pueden cancelar pagos pendientes')
    if t.provider == 'STRIPE':
        gateway.cancel_intent(t.provider_payment_id)
    t.status = 'CANCELLED'
    t.save(update_fields=['status', 'updated_at'])
    log_action(user=current_user, action='payment_cancel', object_type='payment', object_id=t.id)
    return t


@transaction.atomic
def record_manual(current_user, *, amount: int, payment_method: str, patient=None, customer_name: str = '',
                  reference_type: str = '', reference_id: str = '', description: str = '') -> PaymentTransaction:
    """Cash or transfer taken at the desk: recorded as already succeeded."""
    if amount <= 0:
        raise ValueError('El importe debe ser mayor que cero')
    t = PaymentTransaction.objects.create(
        amount=amount, currency=settings.PAYMENT_CURRENCY, status='PENDING', payment_method=payment_method,
        provider='MANUAL', patient=patient, customer_name=customer_name or (patient.full_name if patient else ''),
        reference_type=reference_type, reference_id=str(reference_id or ''), description=description,
        created_by=current_user,
    )
    _set_status(t, 'SUCCEEDED')
    log_action(user=current_user, action='payment_manual', object_type='payment', object_id=t.id,
               detail={'amount': amount, 'method': payment_method})
    return t


def handle_webhook(payload: bytes, signature: str, event: dict) -> dict:
    """Process one provider event; already processed events are acknowledged."""
    secret = settings.STRIPE_WEBHOOK_SECRET
    if secret:
        gateway.construct_event(payload, signature, secret)
    event_id = event.get('id')
    event_type = event.get('type') or ''
    if not event_id:
        raise ValueError('Evento sin id')

    with transaction.atomic():
        record, created = PaymentWebhookEvent.objects.select_for_update().get_or_create(
            provider_event_id=event_id, defaults={'event_type': event_type, 'payload': event},
        )
        if not created and record.processed:
            return {'received': True, 'duplicate': True}

        status = WEBHOOK_STATUS.get(event_type)
        if status:
            obj = (event.get('data') or {}).get('object') or {}
            t = PaymentTransaction.objects.select_for_update().filter(provider_payment_id=obj.get('id')).first()
            if t is None:
                record.error = f"Pago desconocido: {obj.get('id')}"
                logger.warning('webhook %s for unknown payment %s', event_id, obj.get('id'))
            elif t.status in ('PENDING', 'PROCESSING') and t.status != status:
                failure = ((obj.get('last_payment_error') or {}).get('message') or '')
                _set_status(t, status, failure)
                log_action(user=None, action='payment_webhook', object_type='payment', object_id=t.id,
                           detail={'event': event_type})
        else:
            logger.info('webhook event %s (%s) stored without handler', event_id, event_type)
        record.processed = True
        record.processed_at = timezone.now()
        record.save(update_fields=['processed', 'processed_at', 'error'])
    return {'received': True}


def history(*, status: Optional[str] = None, reference_type: Optional[str] = None, patient_id: Optional[int] = None,
            date_from: Optional[date] = None, date_to: Optional[date] = None, page: int = 1,
            page_size: int = 20) -> tuple[list[dict], int]:
    qs = PaymentTransaction.objects.all()
    if status:
        qs = qs.filter(status=status)
    if reference_type:
        qs = qs.filter(reference_type=reference_type)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    total = qs.count()
    start = (page - 1) * page_size
    return [serialize_payment(t) for t in qs.order_by('-created_at', '-id')[start:start + page_size]], total


def stats() -> dict:
    succeeded = PaymentTransaction.objects.filter(status__in=['SUCCEEDED', 'PARTIALLY_REFUNDED', 'REFUNDED'])
    by_status = {row['status']: row['n'] for row in
                 PaymentTransaction.objects.values('status').annotate(n=Count('id')).order_by()}
    by_method = {row['payment_method']: row['total'] for row in
                 succeeded.values('payment_method').annotate(total=Sum('amount')).order_by()}
    return {
        'totalAmount': succeeded.aggregate(v=Sum('amount'))['v'] or 0,
        'refundedAmount': PaymentTransaction.objects.aggregate(v=Sum('refunded_amount'))['v'] or 0,
        'countByStatus': by_status,
        'amountByMethod': by_method,
        'currency': settings.PAYMENT_CURRENCY,
    }
