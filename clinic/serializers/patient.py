from rest_framework import serializers

from clinic.models import Patient
from .fields import CleanCharField, CommaListField


class PatientCreateSerializer(serializers.Serializer):
    first_name = CleanCharField(max_length=100)
    last_name = CleanCharField(max_length=100)
    dni = serializers.CharField(max_length=32)
    phone = serializers.CharField(max_length=32)
    date_of_birth = serializers.DateField()
    email = serializers.EmailField(required=False, allow_blank=True)
    gender = serializers.ChoiceField(choices=[c[0] for c in Patient.GENDER_CHOICES], required=False, allow_blank=True)
    address = CleanCharField(required=False, allow_blank=True, max_length=255)
    city = CleanCharField(required=False, allow_blank=True, max_length=100)
    emergency_contact_name = CleanCharField(required=False, allow_blank=True, max_length=255)
    emergency_contact_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    blood_type = serializers.CharField(required=False, allow_blank=True, max_length=5)
    allergies = CommaListField(required=False)
    insurance_provider = CleanCharField(required=False, allow_blank=True, max_length=255)
    insurance_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    notes = CleanCharField(required=False, allow_blank=True)

    def validate_dni(self, v):
        v = (v or '').strip().upper()
        if not v:
            raise serializers.ValidationError('El DNI es obligatorio')
        return v

    def validate_phone(self, v):
        v = (v or '').strip()
        if len(v) < 6:
            raise serializers.ValidationError('Teléfono no válido')
        return v


class PatientUpdateSerializer(PatientCreateSerializer):
    """All fields optional; only the supplied ones are written."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('partial', True)
        super().__init__(*args, **kwargs)


class PatientListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True)
    includeInactive = serializers.BooleanField(required=False, default=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200, default=20)


class PatientNoteSerializer(serializers.Serializer):
    content = CleanCharField()
