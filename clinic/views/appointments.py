"""
Appointment scheduling views.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment, Patient
from ..permissions import RouteRolePermission
from ..serializers.appointment import AppointmentListQuerySerializer, AppointmentSerializer, AppointmentUpdateSerializer
from ..services import appointments as svc
from ..services.audit import log_action


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def appointments(request):
    if request.method == 'POST':
        s = AppointmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appt = svc.create_appointment(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_appointment(appt)}, status=201)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = svc.list_appointments(day=vd.get('date'), date_from=vd.get('dateFrom'), date_to=vd.get('dateTo'),
                                 doctor_id=vd.get('doctorId'), department_id=vd.get('departmentId'),
                                 status=vd.get('status'), patient_id=vd.get('patientId'))
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def appointment_detail(request, pk: int):
    appt = get_object_or_404(Appointment.objects.select_related('patient', 'doctor', 'department'), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.serialize_appointment(appt)})
    if request.method == 'DELETE':
        appt.delete()
        log_action(user=request.user, action='appointment_delete', object_type='appointment', object_id=pk)
        return Response({'ok': True})
    s = AppointmentUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = svc.update_appointment(request.user, appt.id, **s.validated_data)
    return Response({'ok': True, 'data': svc.serialize_appointment(appt)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def patient_appointments(request, patient_id: int):
    get_object_or_404(Patient, pk=patient_id)
    return Response({'ok': True, 'data': svc.list_appointments(patient_id=patient_id)})
