from rest_framework import serializers

from clinic.models import (
    Appointment,
    ClinicalReference,
    MedicalRecord,
    Patient,
    PhysioEquipment,
    PhysioTreatmentPlan,
    PhysioTreatmentType,
    User,
)
from .fields import CleanCharField, CommaListField


class PhysioPlanSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True), source='patient')
    physiotherapist_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True),
                                                            source='physiotherapist', required=False, allow_null=True)
    medical_record_id = serializers.PrimaryKeyRelatedField(queryset=MedicalRecord.objects.all(),
                                                           source='medical_record', required=False, allow_null=True)
    referral_id = serializers.PrimaryKeyRelatedField(queryset=ClinicalReference.objects.all(), source='referral',
                                                     required=False, allow_null=True)
    diagnosis = CleanCharField()
    plan_type = serializers.ChoiceField(choices=[c[0] for c in PhysioTreatmentPlan.PLAN_TYPE_CHOICES],
                                        default='rehabilitation')
    objectives = CommaListField(required=False)
    sessions_per_week = serializers.IntegerField(required=False, min_value=1, max_value=7)
    total_sessions_prescribed = serializers.IntegerField(required=False, min_value=1)
    initial_vas = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=10)
    baseline_rom = serializers.DictField(required=False)
    baseline_strength = serializers.DictField(required=False)
    baseline_functional = CleanCharField(required=False, allow_blank=True)
    start_date = serializers.DateField(required=False)
    expected_end_date = serializers.DateField(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True)


class PhysioPlanUpdateSerializer(PhysioPlanSerializer):
    status = serializers.ChoiceField(choices=[c[0] for c in PhysioTreatmentPlan.STATUS_CHOICES], required=False)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('partial', True)
        super().__init__(*args, **kwargs)


class PhysioSessionSerializer(serializers.Serializer):
    plan_id = serializers.IntegerField()
    therapist_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), source='therapist',
                                                      required=False, allow_null=True)
    appointment_id = serializers.PrimaryKeyRelatedField(queryset=Appointment.objects.all(), source='appointment',
                                                        required=False, allow_null=True)
    session_date = serializers.DateField(required=False)
    session_time = serializers.TimeField(required=False, allow_null=True)
    duration_minutes = serializers.IntegerField(required=False, min_value=1)
    subjective = CleanCharField(required=False, allow_blank=True)
    objective = CleanCharField(required=False, allow_blank=True)
    assessment = CleanCharField(required=False, allow_blank=True)
    plan_notes = CleanCharField(required=False, allow_blank=True)
    pain_level = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=10)
    techniques = serializers.ListField(required=False)
    exercises = serializers.ListField(required=False)
    equipment_used = serializers.ListField(required=False)
    observations = CleanCharField(required=False, allow_blank=True)


class PhysioFinalizeSerializer(serializers.Serializer):
    final_vas = serializers.IntegerField(min_value=0, max_value=10)
    final_rom = serializers.DictField(required=False)
    final_strength = serializers.DictField(required=False)
    outcome_summary = CleanCharField(required=False, allow_blank=True)
    recommendations = CleanCharField(required=False, allow_blank=True)
    home_program = CleanCharField(required=False, allow_blank=True)


class _CatalogSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=30)
    name = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True)

    def validate_code(self, v):
        return (v or '').strip().upper()


class TreatmentTypeSerializer(_CatalogSerializer):
    category = CleanCharField(required=False, allow_blank=True, max_length=100)


class TechniqueSerializer(_CatalogSerializer):
    treatment_type = serializers.PrimaryKeyRelatedField(queryset=PhysioTreatmentType.objects.all())
    parameters_schema = serializers.DictField(required=False)
    default_duration_minutes = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    contraindications = CommaListField(required=False)


class ExerciseSerializer(_CatalogSerializer):
    target_muscle_group = CommaListField(required=False)
    body_region = CleanCharField(required=False, allow_blank=True, max_length=100)
    difficulty_level = CleanCharField(required=False, allow_blank=True, max_length=30)
    instructions = CleanCharField(required=False, allow_blank=True)
    video_url = serializers.URLField(required=False, allow_blank=True)
    contraindications = CommaListField(required=False)


class EquipmentSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=30)
    name = CleanCharField(max_length=255)
    brand = CleanCharField(required=False, allow_blank=True, max_length=100)
    model = CleanCharField(required=False, allow_blank=True, max_length=100)
    serial_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    treatment_type = serializers.PrimaryKeyRelatedField(queryset=PhysioTreatmentType.objects.all(), required=False,
                                                        allow_null=True)
    parameters_template = serializers.DictField(required=False)
    location = CleanCharField(required=False, allow_blank=True, max_length=100)
    status = serializers.ChoiceField(choices=[c[0] for c in PhysioEquipment.STATUS_CHOICES], required=False)
    last_maintenance_date = serializers.DateField(required=False, allow_null=True)
    next_maintenance_date = serializers.DateField(required=False, allow_null=True)

    def validate_code(self, v):
        return (v or '').strip().upper()


CATALOG_SERIALIZERS = {
    'treatment-types': TreatmentTypeSerializer,
    'techniques': TechniqueSerializer,
    'exercises': ExerciseSerializer,
    'equipment': EquipmentSerializer,
}
