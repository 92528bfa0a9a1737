# Based on code from
# https://docs.celeryq.dev/en/v5.5.0/tutorials/task-cookbook.html#ensuring-a-task-is-only-executed-one-at-a-time

import logging
import os
import socket
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from django.core.cache import cache

logger = logging.getLogger(__name__)

DEFAULT_LOCK_DURATION = 60 * 10  # 10 minutes


def default_lock_owner() -> str:
    """Identify the current process as ``<hostname>:<pid>``."""
    return f"{socket.gethostname()}:{os.getpid()}"


@contextmanager
def cache_lock(
    lock_id: str,
    oid: Optional[str] = None,
    lock_duration: int = DEFAULT_LOCK_DURATION,
) -> Generator[bool, None, None]:
    """
    Hold an exclusive, cache-backed lock for the duration of a block.

    The lock is a cache key created with ``cache.add``, which only succeeds
    when the key does not exist yet. With the Redis cache used in production
    this excludes other processes and hosts; the key expires after
    ``lock_duration`` seconds so a killed process cannot block later runs
    forever.

    Args:
        lock_id: Cache key naming the lock.
        oid: Owner identifier stored as the cache value. Defaults to
            ``<hostname>:<pid>``.
        lock_duration: Seconds before the lock expires on its own.

    Yields:
        bool: True if the lock was acquired, False if another owner holds it.

    Usage::

        with cache_lock("catalog-sync") as acquired:
            if not acquired:
                return
            run_sync(...)
    """
    oid = oid or default_lock_owner()
    status = False
    try:
        timeout_at = time.monotonic() + lock_duration
        status = cache.add(lock_id, oid, lock_duration)
        if not status:
            logger.info(
                "Lock %s is held by %s", lock_id, cache.get(lock_id, "an unknown owner")
            )
        yield status
    finally:
        # An expired lock may already belong to someone else, unless it was
        # refreshed and is still ours
        if status and (time.monotonic() < timeout_at or cache.get(lock_id) == oid):
            cache.delete(lock_id)


def refresh_cache_lock(
    lock_id: str,
    oid: Optional[str] = None,
    lock_duration: int = DEFAULT_LOCK_DURATION,
) -> bool:
    """
    Push the expiry of a lock taken with ``cache_lock`` another
    ``lock_duration`` seconds out, for work which can outlast the original
    duration.

    Returns False, and leaves the key alone, when the lock has expired or
    belongs to another owner.
    """
    oid = oid or default_lock_owner()
    if cache.get(lock_id) != oid:
        logger.warning("Lock %s is no longer held by %s", lock_id, oid)
        return False
    return bool(cache.touch(lock_id, lock_duration))
