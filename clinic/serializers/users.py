from rest_framework import serializers

from clinic.models import Department, Room, User
from .fields import CleanCharField


class UserCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    first_name = CleanCharField(required=False, allow_blank=True, max_length=150)
    last_name = CleanCharField(required=False, allow_blank=True, max_length=150)
    email = serializers.EmailField(required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=[c[0] for c in User.ROLE_CHOICES], default='reception')
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)
    specialty = CleanCharField(required=False, allow_blank=True, max_length=100)
    license_number = serializers.CharField(required=False, allow_blank=True, max_length=50)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)

    def validate_username(self, v):
        v = (v or '').strip()
        if len(v) < 3:
            raise serializers.ValidationError('El usuario debe tener al menos 3 caracteres')
        return v


class UserUpdateSerializer(serializers.Serializer):
    first_name = CleanCharField(required=False, allow_blank=True, max_length=150)
    last_name = CleanCharField(required=False, allow_blank=True, max_length=150)
    email = serializers.EmailField(required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=[c[0] for c in User.ROLE_CHOICES], required=False)
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)
    specialty = CleanCharField(required=False, allow_blank=True, max_length=100)
    license_number = serializers.CharField(required=False, allow_blank=True, max_length=50)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)


class PasswordSerializer(serializers.Serializer):
    password = serializers.CharField(write_only=True)


class UserListQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[c[0] for c in User.ROLE_CHOICES], required=False)
    departmentId = serializers.IntegerField(required=False)
    q = serializers.CharField(required=False, allow_blank=True)
    active = serializers.BooleanField(required=False, allow_null=True, default=None)


class DepartmentSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    code = serializers.CharField(max_length=20)
    description = CleanCharField(required=False, allow_blank=True)
    phone_extension = serializers.CharField(required=False, allow_blank=True, max_length=20)
    location = CleanCharField(required=False, allow_blank=True, max_length=255)
    is_active = serializers.BooleanField(required=False)

    def validate_code(self, v):
        return (v or '').strip().upper()


class RoomSerializer(serializers.Serializer):
    room_number = serializers.CharField(max_length=20)
    room_type = serializers.CharField(required=False, allow_blank=True, max_length=50)
    capacity = serializers.IntegerField(required=False, min_value=1, default=1)
    status = serializers.ChoiceField(choices=[c[0] for c in Room.STATUS_CHOICES], required=False, default='available')
