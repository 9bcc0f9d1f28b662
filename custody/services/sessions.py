"""
Admin credentials and server-side sessions.

A session token is opaque: it carries no claims and is resolved to an admin
and hospital by looking it up in ``admin_sessions``.  Passwords may still be
stored as legacy plain text for accounts that predate hashing, so credential
checks accept either shape and log which one matched.

Session operations always talk to the store, fallback mode or not; there is
no sample identity to log in as.
"""
from __future__ import annotations

import logging
import re
import secrets

import bcrypt
from django.contrib.auth.hashers import check_password, identify_hasher
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from custody.conf import custody_setting
from custody.errors import Conflict, NotFound, StoreConnectionError, Unauthorized, ValidationFailed
from custody.models import AdminAccount, AdminSession, Hospital
from custody.records import HospitalRecord, SessionRecord
from custody.services.connection import get_gateway
from custody.services.fallback import sample_hospital

logger = logging.getLogger(__name__)

BCRYPT_PREFIXES = ('$2a$', '$2b$', '$2y$')

PATH_PLAIN = 'legacy-plain'
PATH_HASHED = 'hashed'

# secrets.token_urlsafe output; 32 bytes encode to 43 characters
TOKEN_PATTERN = re.compile(r'[A-Za-z0-9_-]{16,128}')

INVALID_CREDENTIALS = 'Invalid username or password.'


def hash_password(raw: str) -> str:
    return bcrypt.hashpw(raw.encode('utf-8'), bcrypt.gensalt()).decode('ascii')


def looks_hashed(stored: str) -> bool:
    if stored.startswith(BCRYPT_PREFIXES):
        return True
    try:
        identify_hasher(stored)
    except ValueError:
        return False
    return True


def _hash_matches(password: str, stored: str) -> bool:
    if stored.startswith(BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(password.encode('utf-8'), stored.encode('utf-8'))
        except ValueError:
            # malformed salt
            return False
    try:
        return check_password(password, stored)
    except ValueError:
        # hasher library not installed
        return False


def match_credential(password: str, stored: str | None) -> str | None:
    """Return which credential path ``password`` satisfies, or ``None``."""
    if not stored or not password:
        return None
    if looks_hashed(stored):
        return PATH_HASHED if _hash_matches(password, stored) else None
    if secrets.compare_digest(stored.encode('utf-8'), password.encode('utf-8')):
        return PATH_PLAIN
    return None


def verify_credentials(username: str, password: str) -> AdminAccount | None:
    if not username or not password:
        return None
    admin = get_gateway().execute(
        lambda: AdminAccount.objects.filter(username=username).first()
    )
    if admin is None:
        logger.info("Login rejected: unknown username")
        return None
    path = match_credential(password, admin.password)
    if path is None:
        logger.info("Login rejected for admin %s: password mismatch", admin.id)
        return None
    logger.info("Admin %s authenticated via %s credential", admin.id, path)
    if path == PATH_PLAIN and custody_setting('REHASH_LEGACY_PASSWORDS'):
        _rehash(admin, password)
    return admin


def _rehash(admin: AdminAccount, password: str) -> None:
    hashed = hash_password(password)
    get_gateway().execute(
        lambda: AdminAccount.objects.filter(pk=admin.pk, password=admin.password).update(password=hashed)
    )
    logger.info("Admin %s legacy credential rehashed", admin.id)


def purge_expired() -> int:
    deleted, _ = get_gateway().execute(
        lambda: AdminSession.objects.filter(expires_at__lte=timezone.now()).delete()
    )
    if deleted:
        logger.info("Purged %s expired session(s)", deleted)
    return deleted


def login(username: str, password: str) -> str:
    """Verify credentials and open a session; returns the new token."""
    admin = verify_credentials(username, password)
    if admin is None:
        raise Unauthorized(INVALID_CREDENTIALS)

    try:
        purge_expired()
    except StoreConnectionError as exc:
        logger.warning("Session purge skipped: %s", exc.internal)

    token = secrets.token_urlsafe(32)
    expires_at = timezone.now() + custody_setting('SESSION_TTL')

    def _insert():
        # create() forces an INSERT, so a duplicate token surfaces as IntegrityError
        with transaction.atomic():
            return AdminSession.objects.create(token=token, admin_id=admin.id, expires_at=expires_at)

    try:
        get_gateway().execute(_insert)
    except Conflict:
        logger.error("Session token collision for admin %s", admin.id)
        raise Conflict('Could not open a session. Please try again.')
    logger.info("Session opened for admin %s (hospital %s)", admin.id, admin.hospital_id)
    return token


def validate(token) -> SessionRecord | None:
    """Resolve ``token`` to a live session, or ``None``.

    Expired rows are rejected here whether or not a purge has run.
    """
    if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
        return None
    row = get_gateway().execute(
        lambda: AdminSession.objects.select_related('admin')
        .filter(token=token, expires_at__gt=timezone.now())
        .first()
    )
    if row is None:
        return None
    return SessionRecord(
        token=row.token,
        admin_id=row.admin_id,
        hospital_id=row.admin.hospital_id,
        username=row.admin.username,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


def logout(token) -> None:
    """Delete the session row for ``token``; unknown tokens are ignored."""
    if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
        return
    deleted, _ = get_gateway().execute(lambda: AdminSession.objects.filter(token=token).delete())
    if deleted:
        logger.info("Session closed")


def register_admin(username: str, password: str, hospital_id: int) -> int:
    """Create an admin for ``hospital_id`` with a bcrypt password; returns its id."""
    username = (username or '').strip()
    if not username or len(username) > 150:
        raise ValidationFailed('Username is required (max 150 characters).')
    if not password:
        raise ValidationFailed('Password is required.')
    try:
        validate_password(password)
    except ValidationError as e:
        raise ValidationFailed(' '.join(e.messages))

    gateway = get_gateway()
    if not gateway.execute(lambda: Hospital.objects.filter(pk=hospital_id).exists()):
        raise NotFound('Hospital not found.')
    if gateway.execute(lambda: AdminAccount.objects.filter(username=username).exists()):
        raise Conflict('Username already exists.')

    hashed = hash_password(password)

    def _create():
        with transaction.atomic():
            return AdminAccount.objects.create(username=username, password=hashed, hospital_id=hospital_id)

    try:
        admin = gateway.execute(_create)
    except Conflict:
        raise Conflict('Username already exists.')
    logger.info("Registered admin %s for hospital %s", admin.id, hospital_id)
    return admin.id


def hospital_for(session: SessionRecord) -> HospitalRecord | None:
    """The hospital a session belongs to, for display."""
    return get_gateway().read(
        lambda: next((HospitalRecord.from_model(h) for h in Hospital.objects.filter(pk=session.hospital_id)), None),
        lambda: sample_hospital(session.hospital_id),
    )
