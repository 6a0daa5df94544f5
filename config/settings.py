"""
OrderDesk - Django Settings
=============================
Django is the configuration and app-loading container for the engine.
Engine constants live in the ORDERDESK dict below.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("ORDERDESK_SECRET_KEY", "orderdesk-dev-key-replace-before-deployment")

DEBUG = os.environ.get("ORDERDESK_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "engines.orders.apps.OrdersConfig",
]

# ── Database ──────────────────────────────────────────────────
# The engine persists nothing itself; Django still expects a default.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "es-co"
TIME_ZONE = "America/Bogota"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── OrderDesk Engine ──────────────────────────────────────────
ORDERDESK = {
    "IVA_RATE": 0.19,
    "IVA_MATCH_TOLERANCE": 0.01,
    "TAX_DISPLAY_PRIORITY": ("IVA - 19%", "Retefuente - 2,5%", "ICA - 0,77%"),
    "DEFAULT_INVOICE_PERCENTAGE": 100,
    "DEFAULT_LOT_NUMBER": "1",
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "orderdesk": {
            "handlers": ["console"],
            "level": os.environ.get("ORDERDESK_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}
