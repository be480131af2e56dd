"""
Departments and their rooms.

Every authenticated user can read the department list (forms need it);
creating and editing is reserved to administrators by the route table.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Department, Room
from ..permissions import RouteRolePermission
from ..serializers.users import DepartmentSerializer, RoomSerializer
from ..services.audit import log_action
from ..services.users import serialize_department, serialize_room


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def departments(request):
    if request.method == 'POST':
        s = DepartmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        if Department.objects.filter(code=s.validated_data['code']).exists():
            return Response({'ok': False, 'detail': 'Ya existe un departamento con ese código'}, status=400)
        dept = Department.objects.create(**s.validated_data)
        log_action(user=request.user, action='department_create', object_type='department', object_id=dept.id)
        return Response({'ok': True, 'data': serialize_department(dept)}, status=201)

    qs = Department.objects.order_by('name')
    if request.query_params.get('all') not in ('1', 'true'):
        qs = qs.filter(is_active=True)
    return Response({'ok': True, 'data': [serialize_department(d) for d in qs]})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def department_detail(request, pk: int):
    dept = get_object_or_404(Department, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': serialize_department(dept, with_rooms=True)})
    s = DepartmentSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    code = s.validated_data.get('code')
    if code and Department.objects.filter(code=code).exclude(pk=dept.pk).exists():
        return Response({'ok': False, 'detail': 'Ya existe un departamento con ese código'}, status=400)
    for k, v in s.validated_data.items():
        setattr(dept, k, v)
    dept.save()
    log_action(user=request.user, action='department_update', object_type='department', object_id=dept.id,
               detail={'fields': sorted(s.validated_data)})
    return Response({'ok': True, 'data': serialize_department(dept)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, RouteRolePermission])
def department_rooms(request, pk: int):
    dept = get_object_or_404(Department, pk=pk)
    if request.method == 'POST':
        s = RoomSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        if dept.rooms.filter(room_number=s.validated_data['room_number']).exists():
            return Response({'ok': False, 'detail': 'La sala ya existe'}, status=400)
        room = Room.objects.create(department=dept, **s.validated_data)
        return Response({'ok': True, 'data': serialize_room(room)}, status=201)
    return Response({'ok': True, 'data': [serialize_room(r) for r in dept.rooms.order_by('room_number')]})
