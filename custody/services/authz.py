"""Tenant isolation: every hospital-scoped operation passes through here."""
from __future__ import annotations

from custody.errors import Forbidden, Unauthorized, ValidationFailed
from custody.records import SessionRecord


def require_session(session: SessionRecord | None) -> SessionRecord:
    if session is None:
        raise Unauthorized()
    return session


def authorize(session: SessionRecord | None, resource_hospital_id) -> None:
    """Raise unless ``session`` belongs to ``resource_hospital_id``."""
    if session is None:
        raise Unauthorized()
    if resource_hospital_id is None or int(session.hospital_id) != int(resource_hospital_id):
        raise Forbidden()


def requested_hospital(session: SessionRecord | None, raw=None) -> int:
    """Authorize a client-supplied hospital id; absent means the caller's own."""
    if session is None:
        raise Unauthorized()
    if raw is None or raw == '':
        return session.hospital_id
    try:
        hospital_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed('hospitalId must be an integer.')
    authorize(session, hospital_id)
    return hospital_id
