from decimal import Decimal

from rest_framework import serializers

from clinic.models import InventoryItem, InventoryTransaction, Patient, POSTransaction, Prescription, User
from .fields import CleanCharField


class InventoryItemSerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=64)
    name = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True)
    category = serializers.ChoiceField(choices=[c[0] for c in InventoryItem.CATEGORY_CHOICES], default='medication')
    subcategory = CleanCharField(required=False, allow_blank=True, max_length=100)
    unit = serializers.CharField(required=False, max_length=30)
    quantity = serializers.IntegerField(required=False, min_value=0, default=0)
    min_stock = serializers.IntegerField(required=False, min_value=0)
    max_stock = serializers.IntegerField(required=False, min_value=0, allow_null=True)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))
    supplier = CleanCharField(required=False, allow_blank=True, max_length=255)
    manufacturer = CleanCharField(required=False, allow_blank=True, max_length=255)
    expiration_date = serializers.DateField(required=False, allow_null=True)
    batch_number = serializers.CharField(required=False, allow_blank=True, max_length=64)
    storage_location = CleanCharField(required=False, allow_blank=True, max_length=100)
    requires_prescription = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)

    def validate_sku(self, v):
        return (v or '').strip().upper()


class InventoryListQuerySerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=[c[0] for c in InventoryItem.CATEGORY_CHOICES], required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    lowStock = serializers.BooleanField(required=False, default=False)
    includeInactive = serializers.BooleanField(required=False, default=False)


class MovementSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    transaction_type = serializers.ChoiceField(choices=[c[0] for c in InventoryTransaction.TYPE_CHOICES])
    quantity = serializers.IntegerField(min_value=0)
    reference_type = serializers.CharField(required=False, allow_blank=True, max_length=50, default='')
    reference_id = serializers.CharField(required=False, allow_blank=True, max_length=64, default='')
    notes = CleanCharField(required=False, allow_blank=True, default='')


class MovementListQuerySerializer(serializers.Serializer):
    productId = serializers.IntegerField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    type = serializers.ChoiceField(choices=[c[0] for c in InventoryTransaction.TYPE_CHOICES], required=False)


class DocumentSerializer(serializers.Serializer):
    file_url = serializers.CharField(max_length=1024)
    file_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    document_type = serializers.CharField(required=False, allow_blank=True, max_length=30)


class StockEntrySerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    notes = CleanCharField(required=False, allow_blank=True, default='')
    batch_number = serializers.CharField(required=False, allow_blank=True, max_length=64)
    expiration_date = serializers.DateField(required=False, allow_null=True)
    document = DocumentSerializer(required=False, allow_null=True)


class PrescriptionItemSerializer(serializers.Serializer):
    medication = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all(), required=False,
                                                    allow_null=True)
    medication_name = CleanCharField(required=False, allow_blank=True, max_length=255)
    dosage = CleanCharField(required=False, allow_blank=True, max_length=100)
    frequency = CleanCharField(required=False, allow_blank=True, max_length=100)
    duration = CleanCharField(required=False, allow_blank=True, max_length=100)
    quantity_prescribed = serializers.IntegerField(required=False, min_value=1, default=1)
    refills_allowed = serializers.IntegerField(required=False, min_value=0, default=0)
    instructions = CleanCharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('medication') and not attrs.get('medication_name'):
            raise serializers.ValidationError({'medication_name': 'Indique el medicamento'})
        return attrs


class PrescriptionCreateSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), source='patient')
    appointment_id = serializers.IntegerField(required=False, allow_null=True)
    medical_record_id = serializers.IntegerField(required=False, allow_null=True)
    doctor_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), source='doctor',
                                                   required=False, allow_null=True)
    items = PrescriptionItemSerializer(many=True, allow_empty=False)


class PrescriptionListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Prescription.STATUS_CHOICES], required=False)
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)


class DispenseSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(required=False, allow_null=True)


class CancelSerializer(serializers.Serializer):
    reason = CleanCharField(required=False, allow_blank=True, max_length=255, default='')


class SaleItemSerializer(serializers.Serializer):
    inventory_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False,
                                        default=0)

    def validate(self, attrs):
        if attrs['discount'] > attrs['unit_price'] * attrs['quantity']:
            raise serializers.ValidationError({'discount': 'El descuento no puede superar el importe de la línea'})
        return attrs


class SaleSerializer(serializers.Serializer):
    items = SaleItemSerializer(many=True, allow_empty=False)
    payment_method = serializers.ChoiceField(choices=[c[0] for c in POSTransaction.PAYMENT_CHOICES])
    customer_name = CleanCharField(required=False, allow_blank=True, max_length=255, default='')
    notes = CleanCharField(required=False, allow_blank=True, default='')
    discount_total = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False,
                                              default=0)
