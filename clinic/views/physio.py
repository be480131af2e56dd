"""
Physiotherapy plans, sessions and catalogs.
"""
from __future__ import annotations

from django.http import Http404
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import PhysioTreatmentPlan
from ..permissions import RouteRolePermission
from ..serializers.physio import (
    CATALOG_SERIALIZERS,
    PhysioFinalizeSerializer,
    PhysioPlanSerializer,
    PhysioPlanUpdateSerializer,
    PhysioSessionSerializer,
)
from ..services import physio as svc


def _int_param(request, name: str):
    raw = request.query_params.get(name)
    return int(raw) if raw and raw.isdigit() else None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def plans(request):
    if request.method == 'POST':
        s = PhysioPlanSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        plan = svc.create_plan(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_plan(plan)}, status=201)
    data = svc.list_plans(
        patient_id=_int_param(request, 'patientId'),
        status=request.query_params.get('status') or None,
        physiotherapist_id=_int_param(request, 'physiotherapistId'),
    )
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def plan_detail(request, pk: int):
    plan = get_object_or_404(PhysioTreatmentPlan.objects.select_related('patient'), pk=pk)
    if request.method == 'PATCH':
        s = PhysioPlanUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        try:
            plan = svc.update_plan(request.user, plan, **s.validated_data)
        except ValueError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'data': svc.serialize_plan(plan, detail=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def plan_finalize(request, pk: int):
    get_object_or_404(PhysioTreatmentPlan, pk=pk)
    s = PhysioFinalizeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        summary = svc.finalize_plan(request.user, pk, **s.validated_data)
    except ValueError as e:
        return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'data': svc.serialize_discharge(summary)}, status=201)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def sessions(request):
    if request.method == 'POST':
        s = PhysioSessionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        plan_id = vd.pop('plan_id')
        get_object_or_404(PhysioTreatmentPlan, pk=plan_id)
        try:
            session = svc.add_session(request.user, plan_id, **vd)
        except ValueError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
        return Response({'ok': True, 'data': svc.serialize_session(session)}, status=201)
    data = svc.list_sessions(plan_id=_int_param(request, 'planId'), patient_id=_int_param(request, 'patientId'))
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def catalog(request, kind: str):
    if kind not in svc.CATALOGS:
        raise Http404
    if request.method == 'POST':
        s = CATALOG_SERIALIZERS[kind](data=request.data)
        s.is_valid(raise_exception=True)
        try:
            obj = svc.create_catalog_entry(request.user, kind, **s.validated_data)
        except ValueError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
        return Response({'ok': True, 'data': svc.serialize_catalog_entry(kind, obj)}, status=201)
    data = svc.list_catalog(kind, treatment_type_id=_int_param(request, 'treatmentTypeId'))
    return Response({'ok': True, 'data': data})
