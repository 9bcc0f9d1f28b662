"""
Login, logout and session inspection.

A successful login returns the opaque token in the body and also sets it
as an HttpOnly cookie for the browser portal.  Logout deletes the server
side row, so a cookie the browser keeps afterwards is worthless.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from custody.authentication import session_of, token_from_request
from custody.conf import custody_setting
from custody.errors import Unauthorized
from custody.serializers.auth import LoginSerializer, RegisterSerializer
from custody.services import sessions
from custody.services.authz import requested_hospital


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


def _set_session_cookie(request, response, session):
    response.set_cookie(
        custody_setting('SESSION_COOKIE'),
        session.token,
        expires=session.expires_at,
        httponly=True,
        samesite='Lax',
        secure=request.is_secure(),
    )


def _session_payload(session) -> dict:
    hospital = sessions.hospital_for(session)
    payload = session.as_dict()
    payload['hospital'] = hospital.as_dict() if hospital else None
    return payload


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    token = sessions.login(vd['username'], vd['password'])
    session = sessions.validate(token)
    if session is None:
        raise Unauthorized()

    resp = Response({'ok': True, 'token': token, 'session': _session_payload(session)})
    _set_session_cookie(request, resp, session)
    return resp


@api_view(['POST'])
@permission_classes([AllowAny])
def logout_view(request):
    sessions.logout(token_from_request(request))
    resp = Response({'ok': True})
    resp.delete_cookie(custody_setting('SESSION_COOKIE'), samesite='Lax')
    return resp


@api_view(['GET'])
def session_view(request):
    return Response({'ok': True, 'session': _session_payload(session_of(request))})


@api_view(['POST'])
def register_view(request):
    """Create another admin for the caller's own hospital."""
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    hospital_id = requested_hospital(session_of(request), vd.get('hospitalId'))
    admin_id = sessions.register_admin(vd['username'], vd['password'], hospital_id)
    return Response({'ok': True, 'adminId': admin_id, 'hospitalId': hospital_id},
                    status=status.HTTP_201_CREATED)
