"""
Role based access control.

Every API view goes through :class:`RouteRolePermission`, which looks up
the request path in :data:`ROUTE_ROLES`.  The longest matching prefix
(restricted to the request method when the entry names methods) decides
which roles may proceed.  Paths without an entry are open to any
authenticated user.
"""
from __future__ import annotations

from typing import Iterable, Optional

from rest_framework.permissions import BasePermission

ROLES = ('admin', 'doctor', 'nurse', 'reception', 'pharmacy', 'lab', 'lab_admin')

ADMIN_ROLES = {'admin'}
CLINICAL_ROLES = {'admin', 'doctor', 'nurse'}
LAB_ROLES = {'admin', 'lab', 'lab_admin', 'doctor'}

WRITE_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')

# (path prefix, methods or None for any, allowed roles); "$" = exact path
ROUTE_ROLES: list[tuple[str, Optional[tuple[str, ...]], frozenset[str]]] = [
    ('/api/patients', None, frozenset({'admin', 'doctor', 'nurse', 'reception'})),
    ('/api/patients$', ('POST',), frozenset({'admin', 'reception'})),
    ('/api/appointments', None, frozenset({'admin', 'doctor', 'nurse', 'reception'})),
    ('/api/appointments$', ('POST',), frozenset({'admin', 'reception'})),
    ('/api/clinical-records', None, frozenset(CLINICAL_ROLES)),
    ('/api/pharmacy', None, frozenset({'admin', 'pharmacy', 'doctor'})),
    ('/api/pharmacy/products', None, frozenset({'admin', 'pharmacy'})),
    ('/api/pharmacy/inventory', None, frozenset({'admin', 'pharmacy'})),
    ('/api/pharmacy/movements', None, frozenset({'admin', 'pharmacy'})),
    ('/api/pharmacy/pos', None, frozenset({'admin', 'pharmacy'})),
    ('/api/billing', None, frozenset({'admin', 'reception'})),
    ('/api/payments', None, frozenset({'admin', 'reception'})),
    ('/api/lab', None, frozenset(LAB_ROLES)),
    ('/api/lab/catalog', WRITE_METHODS, frozenset({'admin', 'lab_admin'})),
    ('/api/lab/categories', WRITE_METHODS, frozenset({'admin', 'lab_admin'})),
    ('/api/physio', None, frozenset(CLINICAL_ROLES)),
    ('/api/physio-catalogs', None, frozenset(CLINICAL_ROLES)),
    ('/api/referrals', None, frozenset({'admin', 'doctor', 'nurse', 'reception'})),
    ('/api/users', None, frozenset(ADMIN_ROLES)),
    ('/api/departments', WRITE_METHODS, frozenset(ADMIN_ROLES)),
    ('/api/audit', None, frozenset(ADMIN_ROLES)),
]

# Reachable without a role check (still subject to the view's own permissions)
PUBLIC_PREFIXES = ('/api/auth/login', '/api/auth/refresh', '/api/payments/webhook', '/healthz', '/metrics')


def _matches(path: str, prefix: str) -> bool:
    # a trailing "$" pins the entry to the exact path
    if prefix.endswith('$'):
        return path == prefix[:-1]
    return path == prefix or path.startswith(prefix + '/')


def roles_for_path(path: str, method: str) -> Optional[frozenset[str]]:
    """Return the roles allowed on ``path`` for ``method``, or None when unrestricted."""
    best: Optional[tuple[int, frozenset[str]]] = None
    for prefix, methods, roles in ROUTE_ROLES:
        if not _matches(path, prefix):
            continue
        if methods is not None and method.upper() not in methods:
            continue
        # a method-specific entry beats a generic one with the same prefix
        rank = len(prefix) * 2 + (1 if methods is not None else 0)
        if best is None or rank > best[0]:
            best = (rank, roles)
    return best[1] if best else None


def user_has_role(user, roles: Iterable[str]) -> bool:
    return bool(user and user.is_authenticated and getattr(user, 'role', None) in set(roles))


class RouteRolePermission(BasePermission):
    """Gate every request on the role table above."""
    message = 'Tu rol no tiene acceso a esta sección'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        path = request.path or ''
        if any(_matches(path, p) for p in PUBLIC_PREFIXES):
            return True
        allowed = roles_for_path(path, request.method)
        if allowed is None:
            return True
        return user_has_role(getattr(request, 'user', None), allowed)


class IsAdminRole(BasePermission):
    """Allow access only to users with the admin role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return user_has_role(getattr(request, 'user', None), ADMIN_ROLES)

