"""
Billing views: invoices and payment transactions.

The provider webhook is the only unauthenticated endpoint here; it is
trusted on its ``Stripe-Signature`` header instead.
"""
from __future__ import annotations

import json
import logging

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from ..models import Invoice, PaymentTransaction
from ..permissions import RouteRolePermission
from ..serializers.billing import (
    InvoiceListQuerySerializer,
    InvoiceSerializer,
    InvoiceUpdateSerializer,
    ManualPaymentSerializer,
    PaymentConfirmSerializer,
    PaymentHistoryQuerySerializer,
    PaymentIntentSerializer,
    RefundSerializer,
)
from ..serializers.pharmacy import CancelSerializer
from ..services import billing, payments
from ..services.payment_gateway import SignatureError

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def invoices(request):
    if request.method == 'POST':
        s = InvoiceSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        items = [dict(i) for i in vd.pop('items')]
        invoice = billing.create_invoice(request.user, items=items, **vd)
        return Response({'ok': True, 'data': billing.serialize_invoice(invoice)}, status=201)
    q = InvoiceListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = billing.list_invoices(status=q.validated_data.get('status'), patient_id=q.validated_data.get('patientId'))
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def invoice_detail(request, pk: int):
    invoice = get_object_or_404(Invoice.objects.select_related('patient'), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': billing.serialize_invoice(invoice)})
    s = InvoiceUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = dict(s.validated_data)
    if 'items' in vd:
        vd['items'] = [dict(i) for i in vd['items']]
    invoice = billing.update_invoice(request.user, invoice.id, **vd)
    return Response({'ok': True, 'data': billing.serialize_invoice(invoice)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def invoice_cancel(request, pk: int):
    get_object_or_404(Invoice, pk=pk)
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    invoice = billing.cancel_invoice(request.user, pk, s.validated_data['reason'])
    return Response({'ok': True, 'data': billing.serialize_invoice(invoice)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def create_intent(request):
    s = PaymentIntentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    t = payments.create_intent(request.user, **s.validated_data)
    return Response({'ok': True, 'data': {
        'transactionId': t.id,
        'paymentIntentId': t.provider_payment_id,
        'clientSecret': t.client_secret,
        'amount': t.amount,
        'currency': t.currency,
    }}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def confirm(request):
    s = PaymentConfirmSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    t = payments.confirm(request.user, vd['payment_intent_id'], vd['status'], vd['failure_reason'])
    return Response({'ok': True, 'data': payments.serialize_payment(t)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def refund(request):
    s = RefundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    get_object_or_404(PaymentTransaction, pk=vd['payment_id'])
    r = payments.refund(request.user, vd['payment_id'], vd.get('amount'), vd['reason'])
    t = PaymentTransaction.objects.get(pk=vd['payment_id'])
    return Response({'ok': True, 'data': {
        'refundId': r.id,
        'providerRefundId': r.provider_refund_id,
        'amount': r.amount,
        'payment': payments.serialize_payment(t),
    }})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def cancel(request, pk: int):
    get_object_or_404(PaymentTransaction, pk=pk)
    t = payments.cancel(request.user, pk)
    return Response({'ok': True, 'data': payments.serialize_payment(t)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def manual(request):
    s = ManualPaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    t = payments.record_manual(request.user, **s.validated_data)
    return Response({'ok': True, 'data': payments.serialize_payment(t)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def history(request):
    q = PaymentHistoryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, total = payments.history(status=vd.get('status'), reference_type=vd.get('referenceType'),
                                   patient_id=vd.get('patientId'), date_from=vd.get('dateFrom'),
                                   date_to=vd.get('dateTo'), page=vd['page'], page_size=vd['pageSize'])
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': vd['page'], 'pageSize': vd['pageSize']}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def stats(request):
    return Response({'ok': True, 'data': payments.stats()})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def webhook(request):
    payload = request.body
    try:
        event = json.loads(payload or b'{}')
    except ValueError:
        return Response({'ok': False, 'detail': 'JSON no válido'}, status=400)
    try:
        result = payments.handle_webhook(payload, request.META.get('HTTP_STRIPE_SIGNATURE', ''), event)
    except SignatureError as e:
        logger.warning('webhook rejected: %s', e)
        return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response(result)

webhook.cls.throttle_scope = 'webhook'
