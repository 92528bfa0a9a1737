import os

from .settings_template import *  # NOQA ignore=F405
from .settings_template import DATABASES

DEBUG = False

DATABASES["default"].update({"CONN_MAX_AGE": 15 * 60})

CATALOG_CHUNK_SIZE = int(os.environ.get("CATALOG_CHUNK_SIZE", 5500))
CATALOG_RETENTION_DAYS = int(os.environ.get("CATALOG_RETENTION_DAYS", 7))
