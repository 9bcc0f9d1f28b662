"""
Error taxonomy shared by every custody service.

All failures a service can report are instances of :class:`CustodyError`.
The ``kind`` attribute is the discriminator callers branch on; the HTTP
status is derived from it so that views can simply let the exception
propagate to :func:`custody.exceptions.api_exception_handler`.
"""
from __future__ import annotations

from enum import Enum

from rest_framework import status
from rest_framework.exceptions import APIException


class ErrorKind(str, Enum):
    UNAUTHORIZED = 'unauthorized'
    FORBIDDEN = 'forbidden'
    NOT_FOUND = 'not_found'
    VALIDATION = 'validation'
    CONNECTION = 'connection'
    CONFLICT = 'conflict'


class CustodyError(APIException):
    kind: ErrorKind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'error'

    def __init__(self, detail=None, *, internal: str | None = None):
        super().__init__(detail=detail, code=self.kind.value)
        # server-side only; never rendered outside DEBUG
        self.internal = internal

    @property
    def message(self) -> str:
        return str(self.detail)


class Unauthorized(CustodyError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication required.'


class Forbidden(CustodyError):
    kind = ErrorKind.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have access to this resource.'


class NotFound(CustodyError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'


class ValidationFailed(CustodyError):
    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'


class StoreConnectionError(CustodyError):
    """The backing store could not be reached or the query failed."""
    kind = ErrorKind.CONNECTION
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The inventory store is unavailable. Please try again later.'


class Conflict(CustodyError):
    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with existing data.'
