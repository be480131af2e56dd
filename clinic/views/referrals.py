"""
Referrals between departments.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import ClinicalReference
from ..permissions import RouteRolePermission
from ..serializers.referrals import ReferralActionSerializer, ReferralListQuerySerializer, ReferralSerializer
from ..services import referrals as svc


def _referral(pk: int) -> ClinicalReference:
    return get_object_or_404(
        ClinicalReference.objects.select_related('patient', 'referring_doctor', 'target_department'), pk=pk
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def referrals(request):
    if request.method == 'POST':
        s = ReferralSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        ref = svc.create_referral(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_referral(ref)}, status=201)
    q = ReferralListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = svc.list_referrals(status=vd.get('status'), target_department_id=vd.get('targetDepartmentId'),
                              patient_id=vd.get('patientId'))
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def referral_detail(request, pk: int):
    ref = _referral(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.serialize_referral(ref)})

    s = ReferralActionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        if vd['action'] == 'accept':
            svc.accept(request.user, ref.id, vd['notes'], doctor=vd.get('doctor'))
        elif vd['action'] == 'reject':
            svc.reject(request.user, ref.id, vd['notes'])
        else:
            svc.complete(request.user, ref.id, vd['notes'])
    except ValueError as e:
        return Response({'ok': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'data': svc.serialize_referral(_referral(pk))})
