"""
Patient management views.

Reception registers patients; clinical staff read them.  Deleting a
patient only deactivates the record so that the clinical history stays
intact.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Patient
from ..permissions import RouteRolePermission
from ..serializers.patient import (
    PatientCreateSerializer,
    PatientListQuerySerializer,
    PatientNoteSerializer,
    PatientUpdateSerializer,
)
from ..services import patients as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patients(request):
    if request.method == 'POST':
        s = PatientCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = svc.create_patient(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_patient(patient, detail=True)}, status=201)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, total = svc.list_patients(q=(vd.get('q') or '').strip() or None,
                                    include_inactive=vd['includeInactive'],
                                    page=vd['page'], page_size=vd['pageSize'])
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': vd['page'], 'pageSize': vd['pageSize']}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_search(request):
    """Quick search by name, phone, MRN or DNI (at most 20 hits)."""
    return Response({'ok': True, 'data': svc.search_patients(request.query_params.get('q', ''))})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_by_dni(request, dni: str):
    patient = Patient.objects.filter(dni=dni.strip().upper()).first()
    if not patient:
        return Response({'ok': False, 'detail': 'Paciente no encontrado'}, status=404)
    return Response({'ok': True, 'data': svc.serialize_patient(patient, detail=True)})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_detail(request, pk: int):
    patient = get_object_or_404(Patient, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.serialize_patient(patient, detail=True)})
    if request.method == 'DELETE':
        svc.deactivate_patient(request.user, patient)
        return Response({'ok': True})

    s = PatientUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = svc.update_patient(request.user, patient, **s.validated_data)
    return Response({'ok': True, 'data': svc.serialize_patient(patient, detail=True)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_notes(request, pk: int):
    patient = get_object_or_404(Patient, pk=pk)
    if request.method == 'POST':
        s = PatientNoteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        note = svc.add_note(request.user, patient, s.validated_data['content'])
        return Response({'ok': True, 'data': svc.serialize_note(note)}, status=201)
    notes = patient.patient_notes.order_by('-created_at', '-id')
    return Response({'ok': True, 'data': [svc.serialize_note(n) for n in notes]})
