import os
import tempfile

from .settings_template import *  # NOQA ignore=F405

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.path.join(tempfile.gettempdir(), "inventory-test.sqlite3"),
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    },
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"level": "DEBUG", "class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "WARNING"},
}

CATALOG_STORAGE_PATH = os.path.join(tempfile.gettempdir(), "inventory-test-catalog")
CATALOG_API_BASE_URL = "https://catalog.example.com/api"
CATALOG_API_KEY = "test-key"
CATALOG_API_BACKOFF_FACTOR = 0
