"""
Opaque session-token authentication for the REST API.

The token is read from ``Authorization: Token <token>`` or, for the
browser portal, from the session cookie.  It carries no claims; the
identity is whatever :func:`custody.services.sessions.validate` resolves
it to.  An unknown or expired token leaves the request anonymous so that
the login endpoint keeps working with a stale cookie; protected views
reject anonymous requests through :class:`custody.permissions.HasHospitalSession`.
"""
from __future__ import annotations

from rest_framework import authentication

from custody.conf import custody_setting
from custody.records import SessionRecord
from custody.services import sessions


class SessionPrincipal:
    """``request.user`` for a request carrying a valid session."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, session: SessionRecord):
        self.session = session

    @property
    def admin_id(self) -> int:
        return self.session.admin_id

    @property
    def hospital_id(self) -> int:
        return self.session.hospital_id

    @property
    def username(self) -> str:
        return self.session.username

    def __str__(self) -> str:
        return self.session.username


def token_from_request(request) -> str | None:
    parts = authentication.get_authorization_header(request).split()
    if len(parts) == 2 and parts[0].lower() in (b'token', b'bearer'):
        try:
            return parts[1].decode('ascii')
        except UnicodeDecodeError:
            return None
    return request.COOKIES.get(custody_setting('SESSION_COOKIE')) or None


class SessionTokenAuthentication(authentication.BaseAuthentication):
    keyword = 'Token'

    def authenticate(self, request):
        token = token_from_request(request)
        if not token:
            return None
        session = sessions.validate(token)
        if session is None:
            return None
        return SessionPrincipal(session), session

    def authenticate_header(self, request):
        # makes DRF answer 401 rather than 403 for anonymous requests
        return self.keyword


def session_of(request) -> SessionRecord | None:
    auth = getattr(request, 'auth', None)
    return auth if isinstance(auth, SessionRecord) else None
