"""
Design
======

The catalog app mirrors a large external item catalog (~26,000 records) into
the local database.

General goals:

* Peak memory is a function of the chunk size, never of the catalog size
* Every phase can be killed and re-run safely; the filesystem records which
  data has been fetched and which has been committed
* Re-syncing unchanged data produces no net change

The pipeline works like this:

1. ``manage.py download_catalog`` requests the catalog one bounded page at a
   time and writes each page verbatim to
   ``pending/chunk-{batch}-{seq:03d}-of-{total:03d}.json``. A failed page is
   logged and skipped; a failed first page aborts the download because the
   chunk count is unknown without it.
2. ``manage.py sync_catalog`` lists the pending chunks in sequence order and
   upserts each chunk's records into ``CatalogItem`` in small transactions,
   deriving ``ItemPrice`` rows from the price fields.
3. Each committed chunk is moved to ``processed/``. A malformed chunk stays in
   ``pending/`` for inspection and does not stop the run.
4. Once every chunk has been attempted, items which were not seen in the run
   are marked inactive, unless the newest batch was only partly synced. They
   are never deleted and come back to life when they reappear in a later
   sync.
5. Chunk files older than the retention window are removed from both
   directories after each download and by a periodic task.
"""

VERSION = (0, 3, 0)


def get_version():
    return ".".join(map(str, VERSION))
