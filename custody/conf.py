"""Access to the ``CUSTODY`` settings dict with defaults filled in."""
from __future__ import annotations

from datetime import timedelta
from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    'SESSION_TTL': timedelta(hours=24),
    'SESSION_COOKIE': 'session_token',
    'DATABASE_CONFIGURED': True,
    'FALLBACK_MODE': False,
    'AUTO_FALLBACK': False,
    'HEALTH_CHECK_INTERVAL': 5.0,
    'RETRY_ATTEMPTS': 3,
    'RETRY_WAIT_MIN': 0.5,
    'RETRY_WAIT_MAX': 5.0,
    'RETRY_MAX_DELAY': 10.0,
    'REHASH_LEGACY_PASSWORDS': False,
    'SUMMARY_CACHE_TTL': 60,
    'SURPLUS_THRESHOLDS': {
        'CRITICAL_LOW': 500,
        'LOW': 1500,
        'OPTIMAL': 3000,
        'SURPLUS': 5000,
        'HIGH_SURPLUS': 8000,
    },
}


def custody_setting(name: str) -> Any:
    """Return ``settings.CUSTODY[name]``, falling back to :data:`DEFAULTS`.

    Read on every call so that ``override_settings`` in tests takes effect.
    """
    configured = getattr(settings, 'CUSTODY', None) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]
