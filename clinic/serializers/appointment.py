from rest_framework import serializers

from clinic.models import Appointment, ClinicalReference, Department, Patient, Room, User
from .fields import CleanCharField


class AppointmentSerializer(serializers.Serializer):
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True))
    doctor = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), required=False, allow_null=True)
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)
    room = serializers.PrimaryKeyRelatedField(queryset=Room.objects.all(), required=False, allow_null=True)
    appointment_type = serializers.ChoiceField(choices=[c[0] for c in Appointment.TYPE_CHOICES], default='consultation')
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    reason = CleanCharField(required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True)
    clinical_reference = serializers.PrimaryKeyRelatedField(
        queryset=ClinicalReference.objects.all(), required=False, allow_null=True
    )

    def validate(self, attrs):
        start, end = attrs.get('start_time'), attrs.get('end_time')
        if start and end and end <= start:
            raise serializers.ValidationError({'end_time': 'La hora de fin debe ser posterior a la de inicio'})
        return attrs


class AppointmentUpdateSerializer(AppointmentSerializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Appointment.STATUS_CHOICES], required=False)
    reminder_sent = serializers.BooleanField(required=False)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('partial', True)
        super().__init__(*args, **kwargs)


class AppointmentListQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    doctorId = serializers.IntegerField(required=False)
    departmentId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=[c[0] for c in Appointment.STATUS_CHOICES], required=False)
