"""
Dashboard counters and the audit trail.

The dashboard is open to every authenticated user; the audit listing is
restricted to admins through the role table.
"""
from __future__ import annotations

from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import RouteRolePermission
from ..services.audit import list_events
from ..services.dashboard import dashboard_stats


class AuditQuerySerializer(serializers.Serializer):
    action = serializers.CharField(required=False, max_length=64)
    objectType = serializers.CharField(required=False, max_length=64)
    objectId = serializers.IntegerField(required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500, default=100)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def stats(request):
    return Response({'ok': True, 'data': dashboard_stats()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def audit_events(request):
    q = AuditQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = list_events(action=vd.get('action'), object_type=vd.get('objectType'), object_id=vd.get('objectId'),
                       limit=vd['limit'])
    return Response({'ok': True, 'data': data})
