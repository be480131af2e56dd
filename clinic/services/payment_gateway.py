"""
Card payment provider (Stripe) behind a small set of calls.

With ``STRIPE_SECRET_KEY`` unset the gateway runs in mock mode: ids and
client secrets are generated locally and every call succeeds, which is
what development and the test-suite use.  Webhook signatures are always
checked with the SDK.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)

REFUND_REASONS = ('duplicate', 'fraudulent', 'requested_by_customer')

_http_client = None


class GatewayError(ValueError):
    """The provider rejected the call or could not be reached."""


class SignatureError(ValueError):
    pass


@dataclass
class Intent:
    id: str
    client_secret: str
    status: str


def is_live() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def _configure() -> None:
    global _http_client
    if _http_client is None:
        _http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT)
    stripe.default_http_client = _http_client
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES


def _call(what: str, fn, **params):
    _configure()
    try:
        return fn(api_key=settings.STRIPE_SECRET_KEY, **params)
    except stripe.CardError as e:
        logger.info('card declined on %s: %s', what, e.user_message)
        raise GatewayError(e.user_message or 'Tarjeta rechazada') from e
    except stripe.StripeError as e:
        logger.warning('payment provider error on %s: %s', what, e)
        raise GatewayError(e.user_message or 'No se pudo contactar con la pasarela de pago') from e


def create_intent(amount: int, currency: str, *, description: str = '', metadata: Optional[dict] = None,
                  receipt_email: str = '') -> Intent:
    if not is_live():
        intent_id = f"pi_{secrets.token_hex(12)}"
        return Intent(id=intent_id, client_secret=f"{intent_id}_secret_{secrets.token_hex(8)}",
                      status='requires_payment_method')
    params = {
        'amount': amount,
        'currency': currency.lower(),
        'description': description,
        'metadata': {k: str(v) for k, v in (metadata or {}).items()},
        'automatic_payment_methods': {'enabled': True},
    }
    if receipt_email:
        params['receipt_email'] = receipt_email
    intent = _call('create_intent', stripe.PaymentIntent.create, **params)
    return Intent(id=intent.id, client_secret=intent.client_secret or '', status=intent.status)


def cancel_intent(intent_id: str) -> None:
    if is_live() and intent_id:
        _call('cancel_intent', stripe.PaymentIntent.cancel, intent=intent_id)


def refund(intent_id: str, amount: int, reason: str = '') -> str:
    """Refund ``amount`` cents of a payment and return the provider refund id."""
    if not is_live():
        return f"re_{secrets.token_hex(12)}"
    params = {'payment_intent': intent_id, 'amount': amount}
    if reason in REFUND_REASONS:
        params['reason'] = reason
    return _call('refund', stripe.Refund.create, **params).id


def construct_event(payload: bytes, header: str, secret: str, tolerance: Optional[int] = None):
    """Verify the ``Stripe-Signature`` header of ``payload`` and return the event."""
    tolerance = settings.STRIPE_WEBHOOK_TOLERANCE if tolerance is None else tolerance
    try:
        return stripe.Webhook.construct_event(payload, header or '', secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        raise SignatureError('Firma no válida') from e
