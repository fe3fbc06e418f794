"""Django settings for the ecommerce_reporting project.

Everything deployment-specific comes from the environment; the defaults run
the service against a local SQLite file.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    "graphene_django",
    "django_filters",
    "shop",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "ecommerce_reporting.urls"
WSGI_APPLICATION = "ecommerce_reporting.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": ["django.template.context_processors.request"]},
    },
]


# --- Database ---

def _database():
    engine = os.environ.get("SHOP_DB_ENGINE", "sqlite")
    if engine == "postgresql":
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("SHOP_DB_NAME", "ecommerce"),
            "USER": os.environ.get("SHOP_DB_USER", "postgres"),
            "PASSWORD": os.environ.get("SHOP_DB_PASSWORD", ""),
            "HOST": os.environ.get("SHOP_DB_HOST", "localhost"),
            "PORT": os.environ.get("SHOP_DB_PORT", "5432"),
            "CONN_MAX_AGE": 60,
        }
    if engine != "sqlite":
        raise ValueError(f"Unsupported SHOP_DB_ENGINE: {engine!r} (expected 'sqlite' or 'postgresql')")
    return {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("SHOP_DB_NAME", str(BASE_DIR / "ecommerce.db")),
    }


DATABASES = {"default": _database()}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"
STATIC_URL = "static/"


# --- GraphQL ---

GRAPHENE = {
    "SCHEMA": "ecommerce_reporting.schema.schema",
}


# --- Reports ---

SHOP_REPORTS = {
    "DEFAULT_TIMEOUT": float(os.environ.get("SHOP_REPORT_TIMEOUT", "30")),
    "TOP_SPENDERS_LIMIT": 10,
    "RECENT_ORDERS_LIMIT": 1000,
    "LOW_STOCK_THRESHOLD": 10,
    "RETRY_ATTEMPTS": 3,
    "RETRY_BACKOFF": 0.1,
}


# --- Logging ---

LOG_LEVEL = os.environ.get("SHOP_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "loggers": {
        "shop": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django": {"handlers": ["console"], "level": "WARNING"},
    },
}
