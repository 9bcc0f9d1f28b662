"""
Resilient access to the backing store.

Every query the custody services issue goes through a :class:`StoreGateway`.
The gateway retries transient failures with ``tenacity``, reclassifies raw
``django.db`` errors into :class:`~custody.errors.StoreConnectionError`,
keeps a throttled reachability verdict, and owns the fallback switch that
makes reads serve the sample dataset and writes short-circuit.

The status cache is the only process-wide mutable state in the engine.  It
is guarded by a lock; concurrent writers simply overwrite each other.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, IntegrityError, InterfaceError, OperationalError, ProgrammingError, connections
from django.utils import timezone
from tenacity import Retrying, retry_if_exception, stop_after_attempt, stop_after_delay, wait_exponential

from custody.conf import custody_setting
from custody.errors import Conflict, StoreConnectionError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()

AUTH_FAILURE_MARKERS = (
    'password authentication failed',
    'authentication failed',
    'access denied',
    'permission denied',
    'no pg_hba.conf entry',
)

MISSING_RELATION_MARKERS = (
    'no such table',
    "doesn't exist",
    'undefinedtable',
)


def is_auth_failure(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in AUTH_FAILURE_MARKERS)


def is_missing_relation(exc: BaseException) -> bool:
    if not isinstance(exc, (ProgrammingError, OperationalError)):
        return False
    message = str(exc).lower()
    if any(marker in message for marker in MISSING_RELATION_MARKERS):
        return True
    # postgres: relation "surplus_transfers" does not exist
    return 'relation' in message and 'does not exist' in message


def is_transient(exc: BaseException) -> bool:
    """Connection-level failures worth another attempt."""
    if not isinstance(exc, (OperationalError, InterfaceError)):
        return False
    return not (is_auth_failure(exc) or is_missing_relation(exc))


@dataclass(frozen=True)
class ConnectionStatus:
    checked_at: datetime | None = None
    connected: bool | None = None
    last_error: str = ''
    fallback_mode: bool = False
    fallback_reason: str = ''

    def as_dict(self, *, include_error: bool = False) -> dict:
        payload = {
            'connected': self.connected,
            'checkedAt': self.checked_at.isoformat() if self.checked_at else None,
            'fallbackMode': self.fallback_mode,
        }
        if include_error:
            payload['lastError'] = self.last_error or None
            payload['fallbackReason'] = self.fallback_reason or None
        return payload


class ConnectionStatusCache:
    """Thread-safe holder for the last reachability verdict and fallback flag."""

    def __init__(self, *, fallback_mode: bool = False, fallback_reason: str = '',
                 clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._clock = clock
        self._connected: bool | None = None
        self._checked_at: datetime | None = None
        self._last_error = ''
        self._probed_at: float | None = None
        self._fallback = fallback_mode
        self._fallback_reason = fallback_reason if fallback_mode else ''
        self._fallback_automatic = False

    def snapshot(self) -> ConnectionStatus:
        with self._lock:
            return ConnectionStatus(
                checked_at=self._checked_at,
                connected=self._connected,
                last_error=self._last_error,
                fallback_mode=self._fallback,
                fallback_reason=self._fallback_reason,
            )

    def probe_is_fresh(self, window: float) -> bool:
        with self._lock:
            return self._probed_at is not None and (self._clock() - self._probed_at) < window

    def record_success(self, *, probe: bool = False) -> None:
        with self._lock:
            self._connected = True
            self._checked_at = timezone.now()
            if probe:
                self._probed_at = self._clock()

    def record_failure(self, message: str, *, probe: bool = False) -> None:
        with self._lock:
            self._connected = False
            self._checked_at = timezone.now()
            self._last_error = message
            if probe:
                self._probed_at = self._clock()

    @property
    def fallback_mode(self) -> bool:
        with self._lock:
            return self._fallback

    @property
    def fallback_is_automatic(self) -> bool:
        with self._lock:
            return self._fallback and self._fallback_automatic

    def set_fallback(self, active: bool, reason: str = '', *, automatic: bool = False) -> bool:
        """Switch fallback on or off; returns True when the flag changed."""
        with self._lock:
            changed = self._fallback != active
            self._fallback = active
            self._fallback_reason = reason if active else ''
            self._fallback_automatic = automatic if active else False
            return changed


def initial_fallback_reason() -> str:
    """Reason to start in fallback mode, or an empty string."""
    if custody_setting('FALLBACK_MODE'):
        return 'fallback mode enabled by configuration'
    default_db = settings.DATABASES.get('default') or {}
    if not custody_setting('DATABASE_CONFIGURED') or not default_db.get('ENGINE'):
        return 'no database configured'
    return ''


class StoreGateway:
    """Single choke point between the services and the database."""

    def __init__(self, status_cache: ConnectionStatusCache | None = None, *, alias: str = 'default'):
        if status_cache is None:
            reason = initial_fallback_reason()
            status_cache = ConnectionStatusCache(fallback_mode=bool(reason), fallback_reason=reason)
        self.status_cache = status_cache
        self.alias = alias

    # ------------------------------------------------------------------
    # fallback switch
    # ------------------------------------------------------------------
    @property
    def fallback_mode(self) -> bool:
        return self.status_cache.fallback_mode

    def enter_fallback(self, reason: str, *, automatic: bool = False) -> None:
        if self.status_cache.set_fallback(True, reason, automatic=automatic):
            logger.warning("Entering fallback mode: %s", reason)

    def leave_fallback(self) -> None:
        if self.status_cache.set_fallback(False):
            logger.warning("Leaving fallback mode; store access restored")

    def status(self) -> ConnectionStatus:
        return self.status_cache.snapshot()

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------
    def _retrying(self) -> Retrying:
        wait_min = float(custody_setting('RETRY_WAIT_MIN'))
        return Retrying(
            stop=stop_after_attempt(max(1, int(custody_setting('RETRY_ATTEMPTS'))))
            | stop_after_delay(float(custody_setting('RETRY_MAX_DELAY'))),
            wait=wait_exponential(multiplier=wait_min, min=wait_min, max=float(custody_setting('RETRY_WAIT_MAX'))),
            retry=retry_if_exception(is_transient),
            before_sleep=self._before_retry,
            reraise=True,
        )

    def _before_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("Store call failed (attempt %s), retrying: %s", retry_state.attempt_number, exc)
        connection = connections[self.alias]
        # a broken connection outside a transaction is reopened on next use
        if not connection.in_atomic_block:
            connection.close_if_unusable_or_obsolete()

    def execute(self, operation: Callable[[], T], *, missing_relation_default: Any = _MISSING) -> T:
        """Run ``operation`` with retries; raise :class:`StoreConnectionError` on failure.

        ``missing_relation_default`` is returned instead of raising when the
        failure is a table that does not exist.
        """
        try:
            for attempt in self._retrying():
                with attempt:
                    result = operation()
        except IntegrityError as exc:
            logger.warning("Store rejected write: %s", exc)
            raise Conflict(internal=str(exc)) from exc
        except DatabaseError as exc:
            if missing_relation_default is not _MISSING and is_missing_relation(exc):
                logger.info("Relation missing, serving default: %s", exc)
                return missing_relation_default
            message = str(exc) or exc.__class__.__name__
            self.status_cache.record_failure(message)
            logger.error("Store call failed: %s", message)
            raise StoreConnectionError(internal=message) from exc
        self.status_cache.record_success()
        return result

    def read(self, operation: Callable[[], T], fallback: Callable[[], T], **kwargs) -> T:
        """Execute a read, serving ``fallback()`` whenever fallback mode is on."""
        if self.fallback_mode:
            return fallback()
        try:
            return self.execute(operation, **kwargs)
        except StoreConnectionError as exc:
            if custody_setting('AUTO_FALLBACK'):
                self.enter_fallback(f"store read failed: {exc.internal}", automatic=True)
            if self.fallback_mode:
                return fallback()
            raise

    def write(self, operation: Callable[[], T], simulated: Any = None) -> T | Any:
        """Execute a write, or acknowledge and discard it in fallback mode."""
        if self.fallback_mode:
            logger.info("Fallback mode: write acknowledged without touching the store")
            return simulated
        return self.execute(operation)

    # ------------------------------------------------------------------
    # reachability
    # ------------------------------------------------------------------
    def is_reachable(self) -> bool:
        """Probe the store with ``SELECT 1``, at most once per check interval."""
        window = float(custody_setting('HEALTH_CHECK_INTERVAL'))
        if self.status_cache.probe_is_fresh(window):
            return bool(self.status_cache.snapshot().connected)
        try:
            with connections[self.alias].cursor() as cursor:
                cursor.execute('SELECT 1')
                cursor.fetchone()
        except DatabaseError as exc:
            message = str(exc) or exc.__class__.__name__
            self.status_cache.record_failure(message, probe=True)
            logger.error("Store reachability probe failed: %s", message)
            if custody_setting('AUTO_FALLBACK'):
                self.enter_fallback(f"store unreachable: {message}", automatic=True)
            return False
        self.status_cache.record_success(probe=True)
        if self.status_cache.fallback_is_automatic:
            self.leave_fallback()
        return True


_gateway: StoreGateway | None = None
_gateway_lock = threading.Lock()


def get_gateway() -> StoreGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = StoreGateway()
        return _gateway


def set_gateway(gateway: StoreGateway | None) -> StoreGateway | None:
    """Install ``gateway`` process-wide and return the previous one.

    Passing ``None`` makes the next :func:`get_gateway` build a fresh one
    from settings.
    """
    global _gateway
    with _gateway_lock:
        previous, _gateway = _gateway, gateway
        return previous
