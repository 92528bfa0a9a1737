import os

import sentry_sdk
import structlog
from django.core.management.utils import get_random_secret_key
from sentry_sdk.integrations.django import DjangoIntegration

from inventory import get_version

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Build paths inside the project like this: os.path.join(SITE_ROOT_DIR, ...)
INVENTORY_APP_DIR = os.path.abspath(os.path.dirname(__file__))
SITE_ROOT_DIR = os.path.dirname(INVENTORY_APP_DIR)

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", get_random_secret_key())

INVENTORY_ENVIRONMENT = os.environ.get("INVENTORY_ENVIRONMENT", "development")

ALLOWED_HOSTS = []

DEBUG = False

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRESQL_DB", "inventory"),
        "USER": os.getenv("POSTGRESQL_USER", "inventory"),
        "PASSWORD": os.getenv("POSTGRESQL_PW"),
        "HOST": os.getenv("POSTGRESQL_HOST", "localhost"),
        "PORT": os.getenv("POSTGRESQL_PORT", "5432"),
        "CONN_MAX_AGE": 0,
    }
}

INSTALLED_APPS = [
    "catalog.apps.CatalogAppConfig",
]

REDIS_ADDRESS = os.environ.get("REDIS_ADDRESS", "localhost")
REDIS_PORT = os.environ.get("REDIS_PORT", "")
if REDIS_PORT.isdigit():
    REDIS_PORT = int(REDIS_PORT)
else:
    REDIS_PORT = 6379

if REDIS_ADDRESS and REDIS_PORT:
    # The sync lock relies on cache.add being shared between processes, which
    # the Redis cache provides and the local-memory cache does not
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/1",
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        },
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        },
    }

CELERY_BROKER_URL = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"
CELERY_RESULT_BACKEND = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_IMPORTS = ("catalog.tasks",)

CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True

LOG_DIR = os.environ.get("INVENTORY_LOG_DIR", os.path.join(SITE_ROOT_DIR, "logs"))
os.makedirs(LOG_DIR, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "long": {
            "format": "[{asctime} {levelname} {name}:{lineno}] {message}",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "{",
        },
        "short": {
            "format": "[{levelname} {name}] {message}",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "{",
        },
        "structlog_json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.processors.JSONRenderer(),
        },
        "structlog_console": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.dev.ConsoleRenderer(),
        },
    },
    "handlers": {
        "stream": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "short",
        },
        "null": {"level": "INFO", "class": "logging.NullHandler"},
        "file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "INFO",
            "formatter": "long",
            "filename": os.path.join(LOG_DIR, "inventory.log"),
            "when": "H",
            "interval": 3,
            "backupCount": 16,
        },
        "celery": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": os.path.join(LOG_DIR, "celery.log"),
            "formatter": "long",
            "maxBytes": 1024 * 1024 * 100,  # 100 mb
        },
        "structlog_file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "DEBUG",
            "formatter": "structlog_json",
            "filename": os.path.join(LOG_DIR, "inventory-json.log"),
            "when": "H",
            "interval": 3,
            "backupCount": 16,
        },
        "structlog_console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "structlog_console",
        },
    },
    "loggers": {
        "django": {"handlers": ["file"], "level": "INFO"},
        "celery": {"handlers": ["celery"], "level": "INFO"},
        "inventory": {"handlers": ["file"], "level": "INFO"},
        "catalog": {"handlers": ["file", "stream"], "level": "INFO"},
        "structlog": {
            "handlers": ["structlog_file"],
            "level": "DEBUG",
            "propagate": True,
        },
    },
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

SENTRY_BACKEND_DSN = os.environ.get("SENTRY_BACKEND_DSN", "")

APPLICATION_VERSION = get_version()

sentry_sdk.init(
    dsn=SENTRY_BACKEND_DSN,
    environment=INVENTORY_ENVIRONMENT,
    release=APPLICATION_VERSION,
    integrations=[DjangoIntegration()],
)

################################################################################
# Catalog ingestion settings
################################################################################

CATALOG_API_BASE_URL = os.environ.get(
    "CATALOG_API_BASE_URL", "https://www.steamwebapi.com/steam/api"
)
CATALOG_API_KEY = os.environ.get("CATALOG_API_KEY", "")
CATALOG_API_GAME = "cs2"
CATALOG_API_TIMEOUT = 60
CATALOG_API_MAX_ATTEMPTS = 3
CATALOG_API_BACKOFF_FACTOR = 2

#: Root of the pending/ and processed/ chunk directories
CATALOG_STORAGE_PATH = os.environ.get(
    "CATALOG_STORAGE_PATH", os.path.join(SITE_ROOT_DIR, "var", "catalog")
)

#: Records requested per page; each page becomes one chunk file
CATALOG_CHUNK_SIZE = 5500

#: Used to estimate the chunk count when the API does not report a total
CATALOG_EXPECTED_SIZE = 26000

#: A download is skipped when chunk files newer than this exist
CATALOG_FRESHNESS_MINUTES = 25

#: Chunk files older than this are removed by the retention sweep
CATALOG_RETENTION_DAYS = 7

#: Records committed per transaction while syncing a chunk
CATALOG_SYNC_BATCH_SIZE = 50

#: Rows updated per statement while deactivating missing items
CATALOG_RECONCILE_BATCH_SIZE = 500

CATALOG_SYNC_LOCK_SECONDS = 60 * 10

#: Refuse to deactivate items unless every chunk of the newest batch was
#: committed in the same sync run
CATALOG_REQUIRE_COMPLETE_BATCH = True
