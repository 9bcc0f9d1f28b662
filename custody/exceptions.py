"""
DRF exception handler producing the ``{"ok": false, "error": {...}}`` envelope.

Service errors carry their own ``kind``; DRF's built-in exceptions are
mapped onto the same codes.  Authentication and authorization failures
always use a generic message, and raw store errors are shown only when
``DEBUG`` is on.
"""
import logging

from django.conf import settings
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from custody.errors import CustodyError, ErrorKind

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    ErrorKind.UNAUTHORIZED: 'Authentication required.',
    ErrorKind.FORBIDDEN: 'You do not have access to this resource.',
}


def _envelope(code: str, message, status: int, **extra) -> Response:
    error = {'code': code, 'message': message}
    error.update(extra)
    return Response({'ok': False, 'error': error}, status=status)


def _flatten(data) -> str:
    if isinstance(data, dict):
        parts = []
        for field, value in data.items():
            text = _flatten(value)
            parts.append(text if field in ('detail', 'non_field_errors') else f'{field}: {text}')
        return '; '.join(parts)
    if isinstance(data, (list, tuple)):
        return ' '.join(_flatten(item) for item in data)
    return str(data)


def _custody_response(exc: CustodyError) -> Response:
    extra = {}
    if exc.kind == ErrorKind.CONNECTION and settings.DEBUG and exc.internal:
        extra['detail'] = exc.internal
    return _envelope(exc.kind.value, exc.message, exc.status_code, **extra)


def api_exception_handler(exc, context):
    if isinstance(exc, CustodyError):
        response = _custody_response(exc)
        if exc.kind == ErrorKind.UNAUTHORIZED:
            response['WWW-Authenticate'] = 'Token'
        return response

    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.error("Unhandled error in %s", view.__class__.__name__ if view else 'view', exc_info=exc)
        message = str(exc) if settings.DEBUG else 'Internal server error.'
        return _envelope('server_error', message, 500)

    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        code, message = ErrorKind.UNAUTHORIZED.value, GENERIC_MESSAGES[ErrorKind.UNAUTHORIZED]
    elif isinstance(exc, (exceptions.PermissionDenied, DjangoPermissionDenied)):
        code, message = ErrorKind.FORBIDDEN.value, GENERIC_MESSAGES[ErrorKind.FORBIDDEN]
    elif isinstance(exc, (exceptions.ValidationError, exceptions.ParseError)):
        code, message = ErrorKind.VALIDATION.value, _flatten(resp.data)
        if isinstance(resp.data, dict) and 'detail' not in resp.data:
            return _envelope(code, message, resp.status_code, fields=resp.data)
    elif isinstance(exc, (exceptions.NotFound, Http404)):
        code, message = ErrorKind.NOT_FOUND.value, 'Resource not found.'
    elif isinstance(exc, exceptions.Throttled):
        code, message = 'throttled', _flatten(resp.data)
    elif isinstance(exc, exceptions.MethodNotAllowed):
        code, message = 'method_not_allowed', _flatten(resp.data)
    else:
        code, message = 'api_error', _flatten(resp.data)

    new = _envelope(code, message, resp.status_code)
    for header in ('WWW-Authenticate', 'Retry-After', 'Allow'):
        if header in resp:
            new[header] = resp[header]
    return new
