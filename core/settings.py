"""
Django settings for the delivery metrics project.

Most values can be overridden through environment variables so the same
settings module serves local runs, CI and the test suite.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return [value.strip() for value in raw.split(",") if value.strip()]


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", ["localhost", "127.0.0.1"])

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "deliveryMetrics",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "delivery-metrics",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "[{asctime}] {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "importers": {"handlers": ["console"], "level": os.environ.get("IMPORT_LOG_LEVEL", "INFO")},
        "deliveryMetrics": {"handlers": ["console"], "level": os.environ.get("METRICS_LOG_LEVEL", "INFO")},
    },
}

# ---------------------------------------------------------------------------
# Delivery metrics
# ---------------------------------------------------------------------------

# Business timezone used for "current week" boundaries.
DELIVERY_METRICS_TIMEZONE = os.environ.get("DELIVERY_METRICS_TIMEZONE", "America/Los_Angeles")

# Rows per bulk upsert statement during ingestion.
INGESTION_CHUNK_SIZE = int(os.environ.get("INGESTION_CHUNK_SIZE", "500"))

# DoorDash export formats have used different literals for a finished order
# over time ("Order" in transaction reports, "Delivered"/"Picked Up" in store
# statements). Rows count toward sales only when their status is listed here.
DOORDASH_COMPLETED_STATUSES = _env_list(
    "DOORDASH_COMPLETED_STATUSES",
    ["Delivered", "Picked Up", "Completed", "Order"],
)
# Statuses known to be non-terminal; anything outside both lists is logged.
DOORDASH_NON_TERMINAL_STATUSES = _env_list(
    "DOORDASH_NON_TERMINAL_STATUSES",
    ["Cancelled", "Adjustment", "Error Charge", "Refund", "Payout", "Other"],
)

LOCATION_RESOLVER = {
    "accept_threshold": 0.4,
    "name_similarity_floor": 0.3,
    "name_weight": 0.3,
    "city_weight": 0.5,
    "keyword_weight": 0.25,
    "keyword_cap": 0.5,
    "crossref_confidence": 0.85,
    "crossref_override_below": 0.9,
    "brand_pattern": r"capriotti'?s?\s*(sandwich\s*shop)?",
}
