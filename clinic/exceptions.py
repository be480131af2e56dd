import logging

from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """Render every API error as ``{'ok': False, 'error': {'code', 'message'}}``.

    Service functions signal bad input or state with ``ValueError`` and
    forbidden operations with ``PermissionError``; both are mapped here so
    views do not have to wrap every call.
    """
    if isinstance(exc, PermissionError):
        return Response({'ok': False, 'error': {'code': 'forbidden', 'message': str(exc)}},
                        status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, ValueError):
        return Response({'ok': False, 'error': {'code': 'invalid', 'message': str(exc)}},
                        status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, ObjectDoesNotExist):
        return Response({'ok': False, 'error': {'code': 'not_found', 'message': str(exc) or 'not found'}},
                        status=status.HTTP_404_NOT_FOUND)

    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('unhandled error in %s', getattr(view, '__name__', view.__class__.__name__ if view else '?'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = getattr(exc, 'default_code', 'api_error')
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code)
