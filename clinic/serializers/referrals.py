from rest_framework import serializers

from clinic.models import ClinicalReference, Department, Patient, User
from .fields import CleanCharField, CommaListField


class ReferralSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True), source='patient')
    target_department_id = serializers.PrimaryKeyRelatedField(queryset=Department.objects.filter(is_active=True),
                                                              source='target_department')
    referring_doctor_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True),
                                                             source='referring_doctor', required=False,
                                                             allow_null=True)
    referring_department_id = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(),
                                                                 source='referring_department', required=False,
                                                                 allow_null=True)
    reference_type = serializers.CharField(required=False, max_length=30, default='evaluation')
    clinical_diagnosis = CleanCharField()
    icd10_codes = CommaListField(required=False, default=list)
    reason = CleanCharField(required=False, allow_blank=True, default='')
    priority = serializers.ChoiceField(choices=[c[0] for c in ClinicalReference.PRIORITY_CHOICES], default='routine')
    notes = CleanCharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        ref_dept = attrs.get('referring_department')
        if ref_dept is not None and ref_dept == attrs['target_department']:
            raise serializers.ValidationError({'target_department_id': 'El servicio destino debe ser distinto'})
        return attrs


class ReferralListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in ClinicalReference.STATUS_CHOICES], required=False)
    targetDepartmentId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)


class ReferralActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['accept', 'reject', 'complete'])
    notes = CleanCharField(required=False, allow_blank=True, default='')
    doctor_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), source='doctor',
                                                   required=False, allow_null=True)
