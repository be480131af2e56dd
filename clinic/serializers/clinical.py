from rest_framework import serializers

from clinic.models import Appointment, Department, MedicalRecord, Patient, User
from .fields import CleanCharField, CommaListField


class MedicalRecordSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), required=False, allow_null=True)
    appointment = serializers.PrimaryKeyRelatedField(queryset=Appointment.objects.all(), required=False,
                                                     allow_null=True)
    doctor = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), required=False,
                                                allow_null=True)
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False,
                                                    allow_null=True)
    record_type = serializers.ChoiceField(choices=[c[0] for c in MedicalRecord.RECORD_TYPE_CHOICES], required=False)
    chief_complaint = CleanCharField(required=False, allow_blank=True)
    history_of_present_illness = CleanCharField(required=False, allow_blank=True)
    physical_examination = CleanCharField(required=False, allow_blank=True)
    vital_signs = serializers.DictField(required=False)
    diagnosis = CommaListField(required=False)
    icd_codes = CommaListField(required=False)
    treatment_plan = CleanCharField(required=False, allow_blank=True)
    prescriptions = serializers.ListField(required=False)
    recommendations = CleanCharField(required=False, allow_blank=True)
    follow_up_required = serializers.BooleanField(required=False)
    follow_up_date = serializers.DateField(required=False, allow_null=True)
    private_notes = CleanCharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('id') and not attrs.get('patient') and not attrs.get('appointment'):
            raise serializers.ValidationError({'patient': 'Se requiere un paciente o una cita'})
        return attrs


class FinalizeConsultationSerializer(serializers.Serializer):
    appointment_id = serializers.IntegerField()
    record_id = serializers.IntegerField()
