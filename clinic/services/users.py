from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db.models import Q

from clinic.models import Department, Room
from clinic.services.audit import log_action

User = get_user_model()

PROFILE_FIELDS = ('first_name', 'last_name', 'email', 'role', 'department', 'specialty', 'license_number', 'phone')


def serialize_user(u) -> dict:
    return {
        'id': u.id,
        'username': u.username,
        'fullName': u.get_full_name() or u.username,
        'firstName': u.first_name,
        'lastName': u.last_name,
        'email': u.email,
        'role': u.role,
        'departmentId': u.department_id,
        'departmentName': u.department.name if u.department_id else None,
        'specialty': u.specialty,
        'licenseNumber': u.license_number,
        'phone': u.phone,
        'isActive': u.is_active,
        'lastLogin': u.last_login.isoformat() if u.last_login else None,
    }


def _check_password(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except ValidationError as e:
        raise ValueError(' '.join(e.messages))


def list_users(*, role: Optional[str] = None, department_id: Optional[int] = None,
               q: Optional[str] = None, active: Optional[bool] = None) -> list[dict]:
    qs = User.objects.select_related('department').order_by('username')
    if role:
        qs = qs.filter(role=role)
    if department_id:
        qs = qs.filter(department_id=department_id)
    if active is not None:
        qs = qs.filter(is_active=active)
    if q:
        qs = qs.filter(Q(username__icontains=q) | Q(first_name__icontains=q) | Q(last_name__icontains=q)
                       | Q(email__icontains=q))
    return [serialize_user(u) for u in qs]


def create_user(current_user, *, username: str, password: str, **profile):
    if User.objects.filter(username=username).exists():
        raise ValueError('El nombre de usuario ya existe')
    user = User(username=username, **{k: v for k, v in profile.items() if k in PROFILE_FIELDS})
    _check_password(password, user)
    user.set_password(password)
    user.save()
    log_action(user=current_user, action='user_create', object_type='user', object_id=user.id,
               detail={'role': user.role})
    return user


def update_user(current_user, user, **profile):
    if user.pk == current_user.pk and profile.get('role') not in (None, user.role):
        raise PermissionError('No puedes cambiar tu propio rol')
    for k, v in profile.items():
        if k in PROFILE_FIELDS:
            setattr(user, k, v)
    user.save()
    log_action(user=current_user, action='user_update', object_type='user', object_id=user.id,
               detail={'fields': sorted(profile)})
    return user


def set_active(current_user, user, active: bool):
    if user.pk == current_user.pk and not active:
        raise PermissionError('No puedes desactivar tu propia cuenta')
    user.is_active = active
    user.save(update_fields=['is_active'])
    log_action(user=current_user, action='user_toggle', object_type='user', object_id=user.id,
               detail={'active': active})
    return user


def set_password(current_user, user, password: str) -> None:
    _check_password(password, user)
    user.set_password(password)
    user.save(update_fields=['password'])
    log_action(user=current_user, action='user_password', object_type='user', object_id=user.id)


def serialize_department(d: Department, *, with_rooms: bool = False) -> dict:
    data = {
        'id': d.id,
        'name': d.name,
        'code': d.code,
        'description': d.description,
        'phoneExtension': d.phone_extension,
        'location': d.location,
        'isActive': d.is_active,
    }
    if with_rooms:
        data['rooms'] = [serialize_room(r) for r in d.rooms.order_by('room_number')]
    return data


def serialize_room(r: Room) -> dict:
    return {
        'id': r.id,
        'roomNumber': r.room_number,
        'departmentId': r.department_id,
        'roomType': r.room_type,
        'capacity': r.capacity,
        'currentOccupancy': r.current_occupancy,
        'status': r.status,
    }
