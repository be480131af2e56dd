from decimal import Decimal

from rest_framework import serializers

from clinic.models import Appointment, Invoice, Patient, PaymentTransaction
from .fields import CleanCharField


class InvoiceItemSerializer(serializers.Serializer):
    description = CleanCharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1, default=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))


class InvoiceSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), source='patient')
    appointment_id = serializers.PrimaryKeyRelatedField(queryset=Appointment.objects.all(), source='appointment',
                                                        required=False, allow_null=True)
    items = InvoiceItemSerializer(many=True, allow_empty=False)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False,
                                   default=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False,
                                        default=Decimal('0'))
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True, default='')
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=20, default='')


class InvoiceUpdateSerializer(serializers.Serializer):
    items = InvoiceItemSerializer(many=True, required=False, allow_empty=False)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True)
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=20)


class InvoiceListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Invoice.STATUS_CHOICES], required=False)
    patientId = serializers.IntegerField(required=False)


class PaymentIntentSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1)
    currency = serializers.CharField(required=False, allow_blank=True, max_length=3)
    payment_method = serializers.ChoiceField(choices=[c[0] for c in PaymentTransaction.METHOD_CHOICES],
                                             default='CARD')
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), source='patient',
                                                    required=False, allow_null=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True, default='')
    customer_name = CleanCharField(required=False, allow_blank=True, max_length=255, default='')
    reference_type = serializers.ChoiceField(choices=[c[0] for c in PaymentTransaction.REFERENCE_CHOICES],
                                             required=False, allow_blank=True, default='')
    reference_id = serializers.CharField(required=False, allow_blank=True, max_length=64, default='')
    description = CleanCharField(required=False, allow_blank=True, max_length=255, default='')
    metadata = serializers.DictField(required=False, default=dict)


class PaymentConfirmSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)
    status = serializers.ChoiceField(choices=['SUCCEEDED', 'FAILED', 'PROCESSING'])
    failure_reason = CleanCharField(required=False, allow_blank=True, max_length=255, default='')


class RefundSerializer(serializers.Serializer):
    payment_id = serializers.IntegerField()
    amount = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reason = CleanCharField(required=False, allow_blank=True, max_length=255, default='')


class ManualPaymentSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1)
    payment_method = serializers.ChoiceField(choices=['CASH', 'TRANSFER', 'CARD', 'BIZUM'], default='CASH')
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), source='patient',
                                                    required=False, allow_null=True)
    customer_name = CleanCharField(required=False, allow_blank=True, max_length=255, default='')
    reference_type = serializers.ChoiceField(choices=[c[0] for c in PaymentTransaction.REFERENCE_CHOICES],
                                             required=False, allow_blank=True, default='')
    reference_id = serializers.CharField(required=False, allow_blank=True, max_length=64, default='')
    description = CleanCharField(required=False, allow_blank=True, max_length=255, default='')


class PaymentHistoryQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in PaymentTransaction.STATUS_CHOICES], required=False)
    referenceType = serializers.ChoiceField(choices=[c[0] for c in PaymentTransaction.REFERENCE_CHOICES],
                                            required=False)
    patientId = serializers.IntegerField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=100, default=20)
