"""
Catalog settings with their defaults

Any of these can be overridden in the Django settings module.
"""

from typing import Any

from django.conf import settings

DEFAULTS = {
    "CATALOG_API_BASE_URL": "https://www.steamwebapi.com/steam/api",
    "CATALOG_API_KEY": "",
    "CATALOG_API_GAME": "cs2",
    "CATALOG_API_TIMEOUT": 60,
    "CATALOG_API_MAX_ATTEMPTS": 3,
    "CATALOG_API_BACKOFF_FACTOR": 2,
    "CATALOG_STORAGE_PATH": "var/catalog",
    "CATALOG_CHUNK_SIZE": 5500,
    "CATALOG_EXPECTED_SIZE": 26000,
    "CATALOG_FRESHNESS_MINUTES": 25,
    "CATALOG_RETENTION_DAYS": 7,
    "CATALOG_SYNC_BATCH_SIZE": 50,
    "CATALOG_RECONCILE_BATCH_SIZE": 500,
    "CATALOG_SYNC_LOCK_SECONDS": 600,
    "CATALOG_REQUIRE_COMPLETE_BATCH": True,
}


def catalog_setting(name: str) -> Any:
    """
    Return the configured value for a ``CATALOG_*`` setting, falling back to
    the default above.

    Raises:
        KeyError: If ``name`` is not a known catalog setting.
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown catalog setting {name}")
    return getattr(settings, name, DEFAULTS[name])
