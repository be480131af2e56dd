from decimal import Decimal

from rest_framework import serializers

from clinic.models import Appointment, InventoryItem, LabCategory, LabOrder, LabParameter, LabTestCatalog, Patient, User
from .fields import CleanCharField


class LabCategorySerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    code = serializers.CharField(max_length=20)

    def validate_code(self, v):
        return (v or '').strip().upper()


class LabParameterSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    code = serializers.CharField(required=False, allow_blank=True, max_length=30)
    unit = serializers.CharField(required=False, allow_blank=True, max_length=30)
    parameter_type = serializers.ChoiceField(choices=[c[0] for c in LabParameter.TYPE_CHOICES], default='number')
    options = serializers.ListField(child=serializers.CharField(), required=False)
    reference_min = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    reference_max = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    reference_text = CleanCharField(required=False, allow_blank=True, max_length=255)
    method = CleanCharField(required=False, allow_blank=True, max_length=100)
    critical_below = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    critical_above = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    decimal_places = serializers.IntegerField(required=False, min_value=0, max_value=6)
    sort_order = serializers.IntegerField(required=False, min_value=0)

    def validate(self, attrs):
        lo, hi = attrs.get('reference_min'), attrs.get('reference_max')
        if lo is not None and hi is not None and lo > hi:
            raise serializers.ValidationError({'reference_min': 'El mínimo no puede ser mayor que el máximo'})
        if attrs.get('parameter_type') == 'select' and not attrs.get('options'):
            raise serializers.ValidationError({'options': 'Indique las opciones del parámetro'})
        return attrs


class LabTestSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=30)
    name = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True)
    category = serializers.PrimaryKeyRelatedField(queryset=LabCategory.objects.all(), required=False, allow_null=True)
    sample_type = serializers.ChoiceField(choices=[c[0] for c in LabTestCatalog.SAMPLE_CHOICES], default='blood')
    instructions = CleanCharField(required=False, allow_blank=True)
    preparation_required = serializers.BooleanField(required=False)
    duration_hours = serializers.IntegerField(required=False, min_value=0)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=Decimal('0'))
    inventory_item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all(), required=False,
                                                        allow_null=True)
    parameters = LabParameterSerializer(many=True, required=False)

    def validate_code(self, v):
        return (v or '').strip().upper()


class CustomTestSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=Decimal('0'),
                                     default=Decimal('0'))


class LabOrderCreateSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True), source='patient')
    doctor_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), source='doctor',
                                                   required=False, allow_null=True)
    appointment_id = serializers.PrimaryKeyRelatedField(queryset=Appointment.objects.all(), source='appointment',
                                                        required=False, allow_null=True)
    test_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    custom_tests = CustomTestSerializer(many=True, required=False, default=list)
    priority = serializers.CharField(required=False, allow_blank=True, default='normal')
    notes = CleanCharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('test_ids') and not attrs.get('custom_tests'):
            raise serializers.ValidationError({'test_ids': 'Debe seleccionar al menos una prueba'})
        return attrs


class LabOrderListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in LabOrder.STATUS_CHOICES], required=False)
    priority = serializers.CharField(required=False, allow_blank=True)
    patientId = serializers.IntegerField(required=False)
    date = serializers.DateField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=100, default=20)


class LabOrderActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['complete', 'status'])
    status = serializers.ChoiceField(choices=[c[0] for c in LabOrder.STATUS_CHOICES], required=False)
    reason = CleanCharField(required=False, allow_blank=True, max_length=255, default='')

    def validate(self, attrs):
        if attrs['action'] == 'status' and not attrs.get('status'):
            raise serializers.ValidationError({'status': 'Indique el nuevo estado'})
        return attrs


class SampleSerializer(serializers.Serializer):
    collected = serializers.BooleanField(required=False, default=True)


class LabResultSerializer(serializers.Serializer):
    order_detail_id = serializers.IntegerField()
    parameter_id = serializers.IntegerField(required=False, allow_null=True)
    value = serializers.CharField(allow_blank=False, max_length=255)
    notes = CleanCharField(required=False, allow_blank=True, default='')
