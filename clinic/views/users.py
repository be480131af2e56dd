"""
Staff account administration (admin role only).
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import User
from ..permissions import IsAdminRole, RouteRolePermission
from ..serializers.users import PasswordSerializer, UserCreateSerializer, UserListQuerySerializer, UserUpdateSerializer
from ..services import users as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission, IsAdminRole])
def users(request):
    if request.method == 'POST':
        s = UserCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        user = svc.create_user(request.user, username=vd.pop('username'), password=vd.pop('password'), **vd)
        return Response({'ok': True, 'data': svc.serialize_user(user)}, status=201)

    q = UserListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = svc.list_users(role=vd.get('role'), department_id=vd.get('departmentId'),
                          q=(vd.get('q') or '').strip() or None, active=vd.get('active'))
    return Response({'ok': True, 'data': data})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, RouteRolePermission, IsAdminRole])
def user_detail(request, pk: int):
    user = get_object_or_404(User.objects.select_related('department'), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.serialize_user(user)})
    if request.method == 'DELETE':
        # accounts are deactivated, never removed; audit rows keep pointing at them
        svc.set_active(request.user, user, False)
        return Response({'ok': True})
    s = UserUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = svc.update_user(request.user, user, **s.validated_data)
    return Response({'ok': True, 'data': svc.serialize_user(user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission, IsAdminRole])
def user_toggle_status(request, pk: int):
    user = get_object_or_404(User, pk=pk)
    user = svc.set_active(request.user, user, not user.is_active)
    return Response({'ok': True, 'isActive': user.is_active})


@api_view(['POST'])
@permission_classes([IsAuthenticated, RouteRolePermission, IsAdminRole])
def user_set_password(request, pk: int):
    user = get_object_or_404(User, pk=pk)
    s = PasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.set_password(request.user, user, s.validated_data['password'])
    return Response({'ok': True})
