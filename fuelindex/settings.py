"""
Django settings for the fuelindex project.
"""

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------
SECRET_KEY = os.getenv(
    "DJANGO_SECRET_KEY",
    "django-insecure-3n!f0q7#p2x@k9v$w8e^r6t1y5u4i0o-fuelindex-dev",
)

DEBUG = os.getenv("DJANGO_DEBUG", "True").lower() in ("true", "1", "yes")

ALLOWED_HOSTS: list[str] = os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")

# ---------------------------------------------------------------------------
# Application definition
# ---------------------------------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "prices",
]

# Silk conditional on DEBUG
if DEBUG:
    INSTALLED_APPS.append("silk")

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

if DEBUG:
    MIDDLEWARE.insert(0, "silk.middleware.SilkyMiddleware")

ROOT_URLCONF = "fuelindex.urls"

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

WSGI_APPLICATION = "fuelindex.wsgi.application"

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
DB_ENGINE = os.getenv("DB_ENGINE", "sqlite").lower()

if DB_ENGINE == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME", "fuelindex"),
            "USER": os.getenv("DB_USER", "fuelindex"),
            "PASSWORD": os.getenv("DB_PASSWORD", "fuelindex"),
            "HOST": os.getenv("DB_HOST", "db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ---------------------------------------------------------------------------
# i18n / tz
# ---------------------------------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# ---------------------------------------------------------------------------
# Static files
# ---------------------------------------------------------------------------
STATIC_URL = "static/"

# ---------------------------------------------------------------------------
# DRF
# ---------------------------------------------------------------------------
REST_FRAMEWORK = {
    "EXCEPTION_HANDLER": "prices.exceptions.custom_exception_handler",
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
}

# Enable Browsable API only in DEBUG
if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )

# ---------------------------------------------------------------------------
# django-silk (profiling): DEBUG only
# ---------------------------------------------------------------------------
if DEBUG:
    SILKY_PYTHON_PROFILER = True

# ---------------------------------------------------------------------------
# Caches
# ---------------------------------------------------------------------------
# The consolidation cache is invalidated by sync_prices, which runs in its own
# process, so deployments need the database backend (run
# `python manage.py createcachetable` once after migrating). LocMem is per
# process and only suits a single dev server and the test suite.
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "locmem").lower()

if CACHE_BACKEND == "database":
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.db.DatabaseCache",
            "LOCATION": os.getenv("CACHE_TABLE", "price_consolidation_cache"),
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "price-consolidation-cache",
        }
    }

# ---------------------------------------------------------------------------
# Price index
# ---------------------------------------------------------------------------
FEED_URL = os.getenv(
    "FEED_URL",
    "http://datos.energia.gob.ar/dataset/1c181390-5045-475e-94dc-410429be4b17"
    "/resource/80ac25de-a44a-4445-9215-090cf55cfda5/download"
    "/precios-en-surtidor-resolucin-3142016.csv",
)
FEED_TIMEOUT_SECONDS = int(os.getenv("FEED_TIMEOUT_SECONDS", "120"))
SYNC_CHUNK_SIZE = int(os.getenv("SYNC_CHUNK_SIZE", "1000"))

SEARCH_DEFAULT_RADIUS_KM = float(os.getenv("SEARCH_DEFAULT_RADIUS_KM", "10"))
SEARCH_MAX_RADIUS_KM = float(os.getenv("SEARCH_MAX_RADIUS_KM", "50"))
CHEAPEST_DEFAULT_RADIUS_KM = float(os.getenv("CHEAPEST_DEFAULT_RADIUS_KM", "20"))

CROWD_WINDOW_DAYS = int(os.getenv("CROWD_WINDOW_DAYS", "5"))
STALE_AFTER_DAYS = int(os.getenv("STALE_AFTER_DAYS", "30"))
OFFICIAL_PRICE_ROW_CAP = int(os.getenv("OFFICIAL_PRICE_ROW_CAP", "500"))

CONSOLIDATION_CACHE_ALIAS = os.getenv("CONSOLIDATION_CACHE_ALIAS", "default")
CONSOLIDATION_CACHE_TTL = int(os.getenv("CONSOLIDATION_CACHE_TTL", "3600"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "prices": {
            "handlers": ["console"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
    },
}
