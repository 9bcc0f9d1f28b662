"""
Permission classes for the custody API.
"""
from rest_framework.permissions import BasePermission

from custody.records import SessionRecord


class HasHospitalSession(BasePermission):
    """Allow only requests that resolved to a live admin session."""
    message = 'Authentication required.'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return isinstance(getattr(request, 'auth', None), SessionRecord)
