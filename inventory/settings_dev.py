from .settings_template import *  # NOQA ignore=F405
from .settings_template import LOGGING

LOGGING["handlers"]["stream"]["level"] = "DEBUG"
LOGGING["handlers"]["file"]["level"] = "DEBUG"
LOGGING["handlers"]["celery"]["level"] = "DEBUG"
LOGGING["loggers"] = {
    "django": {"handlers": ["file", "stream"], "level": "INFO"},
    "celery": {"handlers": ["celery", "stream"], "level": "DEBUG"},
    "inventory": {"handlers": ["file", "stream"], "level": "DEBUG"},
    "catalog": {"handlers": ["file", "stream"], "level": "DEBUG"},
    "django.db.backends": {"level": "INFO"},
    "structlog": {
        "handlers": ["structlog_file", "structlog_console"],
        "level": "INFO",
        "propagate": False,
    },
}

DEBUG = True

ALLOWED_HOSTS = ["127.0.0.1", "localhost"]  # nosec
