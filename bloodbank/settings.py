"""
Django settings for the blood-bank custody backend.

Configuration is read from the environment, with a `.env` file picked up
for local development.  In production set real environment variables
rather than relying on the `.env` file.
"""
from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv  # type: ignore

# -----------------------------------------------------------------------------
# Base & .env loading
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
env_path = BASE_DIR / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


# -----------------------------------------------------------------------------
# Core flags & security baseline
# -----------------------------------------------------------------------------
ENV = os.getenv("ENV", "dev")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = _env_flag("DEBUG")

ALLOWED_HOSTS: list[str] = [
    h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h.strip()
]

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv("SECRET_KEY") or "replace-me-with-a-secure-secret-key"

if ENV == "prod":
    if DEBUG:
        raise RuntimeError("DEBUG must be 0 in prod")
    if "*" in ALLOWED_HOSTS:
        raise RuntimeError("ALLOWED_HOSTS cannot contain * in prod")
    if SECRET_KEY == "replace-me-with-a-secure-secret-key":
        raise RuntimeError("SECRET_KEY must be set securely in prod")

# -----------------------------------------------------------------------------
# Applications
# -----------------------------------------------------------------------------
INSTALLED_APPS = [
    "django_prometheus",
    "corsheaders",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_yasg",
    # Local apps
    "custody",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django_prometheus.middleware.PrometheusBeforeMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django_prometheus.middleware.PrometheusAfterMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "custody.middleware.FallbackModeMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "bloodbank.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "bloodbank.wsgi.application"

# -----------------------------------------------------------------------------
# Database configuration
# Priority:
#   1) DATABASE_URL, then POSTGRES_URL, POSTGRES_PRISMA_URL,
#      POSTGRES_URL_NON_POOLING (parsed by dj_database_url)
#   2) SQLite, used as the store only when CUSTODY_LOCAL_SQLITE=1; otherwise
#      the custody gateway starts in fallback mode and serves sample data
# -----------------------------------------------------------------------------
DB_CONN_MAX_AGE = int(os.getenv("DB_CONN_MAX_AGE", "0"))
DB_CONNECT_TIMEOUT = int(os.getenv("DB_CONNECT_TIMEOUT", "10"))
# Server-side bound on a single query; defaults to the retry budget.
DB_STATEMENT_TIMEOUT = float(os.getenv("DB_STATEMENT_TIMEOUT", os.getenv("CUSTODY_RETRY_MAX_DELAY", "10")))
LOCAL_SQLITE = _env_flag("CUSTODY_LOCAL_SQLITE")

DATABASE_URL_ENV_NAMES = ("DATABASE_URL", "POSTGRES_URL", "POSTGRES_PRISMA_URL", "POSTGRES_URL_NON_POOLING")
database_url = next(
    (os.getenv(name, "").strip() for name in DATABASE_URL_ENV_NAMES if os.getenv(name, "").strip()),
    "",
)

if database_url:
    import dj_database_url  # type: ignore

    DATABASES = {
        "default": dj_database_url.parse(
            database_url,
            conn_max_age=DB_CONN_MAX_AGE,
        )
    }
    db_engine = DATABASES["default"].get("ENGINE", "")
    db_options = DATABASES["default"].setdefault("OPTIONS", {})
    if db_engine.endswith("postgresql"):
        db_options["connect_timeout"] = DB_CONNECT_TIMEOUT
        db_options["options"] = f"-c statement_timeout={int(DB_STATEMENT_TIMEOUT * 1000)}"
    elif db_engine.endswith("mysql"):
        db_options["connect_timeout"] = DB_CONNECT_TIMEOUT
        db_options["read_timeout"] = max(1, int(DB_STATEMENT_TIMEOUT))
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": (BASE_DIR / "db.sqlite3").as_posix(),
            "OPTIONS": {"timeout": DB_CONNECT_TIMEOUT},
        }
    }

# Applied when admins are registered through the API or ensure_admin.
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# -----------------------------------------------------------------------------
# Internationalization & static
# -----------------------------------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------------------------------
# DRF
# -----------------------------------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_THROTTLE_CLASSES": (
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.ScopedRateThrottle",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "anon": os.getenv("THROTTLE_ANON", "120/min"),
        "login": os.getenv("THROTTLE_LOGIN", "10/min"),
    },
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
        *(["rest_framework.renderers.BrowsableAPIRenderer"] if DEBUG else []),
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "custody.authentication.SessionTokenAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "custody.permissions.HasHospitalSession",
    ],
    "UNAUTHENTICATED_USER": None,
    "DATETIME_FORMAT": "%Y-%m-%d %H:%M:%S",
    "EXCEPTION_HANDLER": "custody.exceptions.api_exception_handler",
}

APPEND_SLASH = False

# -----------------------------------------------------------------------------
# Swagger / OpenAPI
# -----------------------------------------------------------------------------
SWAGGER_SETTINGS = {
    "DEFAULT_INFO": "bloodbank.urls.api_info",
    "SECURITY_DEFINITIONS": {
        "Token": {"type": "apiKey", "name": "Authorization", "in": "header"},
    },
}

# -----------------------------------------------------------------------------
# CORS (safe-by-default: none)
# -----------------------------------------------------------------------------
CORS_ALLOWED_ORIGINS = [
    h.strip() for h in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if h.strip()
]
CORS_ALLOW_CREDENTIALS = True

# -----------------------------------------------------------------------------
# Cache (locmem by default; Redis if REDIS_URL present)
# -----------------------------------------------------------------------------
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "bloodbank-locmem",
    }
}

REDIS_URL = os.getenv("REDIS_URL", "")
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
                "CONNECTION_POOL_KWARGS": {"max_connections": int(os.getenv("REDIS_MAX_CONN", "50"))},
                "SOCKET_CONNECT_TIMEOUT": 3,
                "SOCKET_TIMEOUT": 3,
                # a cache outage must not take inventory reads down with it
                "IGNORE_EXCEPTIONS": True,
            },
        }
    }

# -----------------------------------------------------------------------------
# Security & proxy headers (enable in prod behind TLS)
# -----------------------------------------------------------------------------
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
USE_X_FORWARDED_HOST = True
if ENV == "prod":
    SECURE_HSTS_SECONDS = int(os.getenv("SECURE_HSTS_SECONDS", "3600"))
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = False
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_SSL_REDIRECT = _env_flag("SECURE_SSL_REDIRECT", "1")

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"},
        "plain": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose" if DEBUG else "plain",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
        "custody": {"level": LOG_LEVEL},
    },
}

# -----------------------------------------------------------------------------
# Custody engine
# -----------------------------------------------------------------------------
CUSTODY = {
    "SESSION_TTL": timedelta(hours=int(os.getenv("CUSTODY_SESSION_TTL_HOURS", "24"))),
    "SESSION_COOKIE": "session_token",
    # False when neither a database URL nor CUSTODY_LOCAL_SQLITE is set.
    "DATABASE_CONFIGURED": bool(database_url) or LOCAL_SQLITE,
    # Serve the labelled sample dataset instead of touching the store.
    "FALLBACK_MODE": _env_flag("CUSTODY_FALLBACK_MODE"),
    # Switch to fallback automatically when a reachability probe fails.
    "AUTO_FALLBACK": _env_flag("CUSTODY_AUTO_FALLBACK"),
    "HEALTH_CHECK_INTERVAL": float(os.getenv("CUSTODY_HEALTH_CHECK_INTERVAL", "5")),
    "RETRY_ATTEMPTS": int(os.getenv("CUSTODY_RETRY_ATTEMPTS", "3")),
    "RETRY_WAIT_MIN": float(os.getenv("CUSTODY_RETRY_WAIT_MIN", "0.5")),
    "RETRY_WAIT_MAX": float(os.getenv("CUSTODY_RETRY_WAIT_MAX", "5")),
    "RETRY_MAX_DELAY": float(os.getenv("CUSTODY_RETRY_MAX_DELAY", "10")),
    "REHASH_LEGACY_PASSWORDS": _env_flag("CUSTODY_REHASH_LEGACY_PASSWORDS"),
    "SUMMARY_CACHE_TTL": int(os.getenv("CUSTODY_SUMMARY_CACHE_TTL", "60")),
    "SURPLUS_THRESHOLDS": {
        "CRITICAL_LOW": int(os.getenv("CUSTODY_THRESHOLD_CRITICAL_LOW", "500")),
        "LOW": int(os.getenv("CUSTODY_THRESHOLD_LOW", "1500")),
        "OPTIMAL": int(os.getenv("CUSTODY_THRESHOLD_OPTIMAL", "3000")),
        "SURPLUS": int(os.getenv("CUSTODY_THRESHOLD_SURPLUS", "5000")),
        "HIGH_SURPLUS": int(os.getenv("CUSTODY_THRESHOLD_HIGH_SURPLUS", "8000")),
    },
}
