"""
Clinical record views: consultation notes, the ICD-10 picker and the
"finish consultation" step that closes an appointment.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment, MedicalRecord, Patient
from ..permissions import RouteRolePermission
from ..serializers.clinical import FinalizeConsultationSerializer, MedicalRecordSerializer
from ..services import clinical as svc
from ..services import icd10
from ..services.appointments import serialize_appointment


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def records(request):
    s = MedicalRecordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = dict(s.validated_data)
    record, created = svc.upsert_record(request.user, record_id=vd.pop('id', None), **vd)
    return Response({'ok': True, 'data': svc.serialize_record(record)}, status=201 if created else 200)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def record_detail(request, pk: int):
    record = get_object_or_404(MedicalRecord.objects.select_related('patient', 'doctor'), pk=pk)
    return Response({'ok': True, 'data': svc.serialize_record(record)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_records(request, patient_id: int):
    get_object_or_404(Patient, pk=patient_id)
    return Response({'ok': True, 'data': svc.records_for_patient(patient_id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def appointment_record(request, appointment_id: int):
    get_object_or_404(Appointment, pk=appointment_id)
    record = svc.record_for_appointment(appointment_id)
    return Response({'ok': True, 'data': svc.serialize_record(record) if record else None})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def finalize_consultation(request):
    s = FinalizeConsultationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt, record = svc.finalize_consultation(request.user, s.validated_data['appointment_id'],
                                             s.validated_data['record_id'])
    return Response({'ok': True, 'data': {'appointment': serialize_appointment(appt),
                                          'record': svc.serialize_record(record)}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def icd10_search(request):
    return Response({'ok': True, 'data': icd10.search(request.query_params.get('q', ''))})
