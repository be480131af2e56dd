"""
Token authentication for the API.

Kept in its own module, away from any view, so that Django REST
framework can import it while building its settings without pulling in
models or serializers.  JWT bearer tokens are handled by simplejwt's
``JWTAuthentication``, configured next to this class in settings.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>``; the stable import path used by settings."""

    keyword = 'Token'
