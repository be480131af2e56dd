import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

from clinic.realtime.consumers import UPDATES_GROUP

logger = logging.getLogger(__name__)


def broadcast(kind: str, data: Optional[Dict[str, Any]] = None) -> bool:
    """Send ``kind``/``data`` to every socket in the updates group.

    Returns False when no channel layer is configured or the send fails;
    a dead websocket backend must not break the request that triggered it.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    event = {"type": "broadcast.update", "kind": kind, "data": data or {}, "ts": timezone.now().isoformat()}
    try:
        async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
    except Exception:
        logger.warning("broadcast of %s failed", kind, exc_info=True)
        return False
    return True


def broadcast_refresh(keys: list[str]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    now = timezone.now()
    event = {"type": "broadcast.refresh", "version": int(now.timestamp()), "ts": now.isoformat(), "keys": keys[:50]}
    async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
    return True
