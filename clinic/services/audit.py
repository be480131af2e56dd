from typing import Optional, Any, Dict
from django.contrib.auth import get_user_model
from clinic.models import AuditEvent

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) and user.pk else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )


def list_events(*, action: Optional[str]=None, object_type: Optional[str]=None, object_id: Optional[int]=None, limit: int=100) -> list[dict]:
    qs = AuditEvent.objects.select_related('user').order_by('-created_at', '-id')
    if action:
        qs = qs.filter(action=action)
    if object_type:
        qs = qs.filter(object_type=object_type)
    if object_id is not None:
        qs = qs.filter(object_id=object_id)
    return [{
        'id': e.id,
        'action': e.action,
        'objectType': e.object_type,
        'objectId': e.object_id,
        'userId': e.user_id,
        'username': e.user.username if e.user else None,
        'detail': e.detail,
        'createdAt': e.created_at.isoformat(),
    } for e in qs[:limit]]
