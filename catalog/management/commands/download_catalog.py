"""
Download the external item catalog into numbered chunk files.

Each page of the catalog is written to ``<storage path>/pending/`` as soon as
it arrives, so the download never holds more than one page in memory. The
chunks are picked up later by ``sync_catalog``.

Usage:
    python manage.py download_catalog
    python manage.py download_catalog --chunk-size 5000 --force

The download is skipped when chunk files newer than
``CATALOG_FRESHNESS_MINUTES`` already exist, unless ``--force`` is given.
Only a failure on the first page (or an unwritable storage directory) makes
the command fail; pages which fail later are reported and skipped.
"""

from argparse import ArgumentParser

from django.core.management.base import BaseCommand, CommandError
from django.template.defaultfilters import filesizeformat

from catalog.chunks import pending_directory
from catalog.conf import catalog_setting
from catalog.download import download_catalog
from catalog.exceptions import CatalogError
from inventory.contextmanagers import cache_lock

DOWNLOAD_LOCK_ID = "catalog-download"


class Command(BaseCommand):
    help = "Download the item catalog into chunk files for syncing"  # NOQA: A003

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument(
            "--chunk-size",
            type=int,
            default=catalog_setting("CATALOG_CHUNK_SIZE"),
            help="Number of records per chunk file (default=%(default)s)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Download even if recent chunk files already exist",
        )
        parser.add_argument(
            "--storage-path",
            default=catalog_setting("CATALOG_STORAGE_PATH"),
            help="Directory holding pending/ and processed/ (default=%(default)s)",
        )

    def handle(self, *, chunk_size: int, force: bool, storage_path: str, **options):
        if chunk_size < 1:
            raise CommandError("--chunk-size must be a positive integer")

        with cache_lock(DOWNLOAD_LOCK_ID) as acquired:
            if not acquired:
                self.stdout.write("A catalog download is already running")
                return

            self.stdout.write(f"Downloading catalog in chunks of {chunk_size} items")
            try:
                result = download_catalog(
                    storage_path=storage_path,
                    chunk_size=chunk_size,
                    force=force,
                    progress=self.report_progress,
                )
            except CatalogError as exc:
                raise CommandError(f"Catalog download failed: {exc}") from exc

        if result.skipped_fresh:
            self.stdout.write(
                f"Recent chunk {result.recent_chunk.name} found, skipping download."
                " Use --force to download anyway."
            )
            return

        self.stdout.write(
            "\n".join(
                [
                    "Download complete:",
                    f"  Items:      {result.records}",
                    f"  Chunks:     {len(result.chunk_files)} of {result.total_chunks}",
                    f"  Chunk size: {result.chunk_size}",
                    f"  Size:       {filesizeformat(result.bytes_written)}",
                    f"  Duration:   {result.duration:.2f}s",
                    f"  Location:   {pending_directory(storage_path)}",
                ]
            )
        )

        if result.pruned:
            self.stdout.write(f"Deleted {result.pruned} expired chunk files")

        for page, reason in sorted(result.failed_pages.items()):
            self.stderr.write(
                self.style.WARNING(f"Page {page} was not downloaded: {reason}")
            )

    def report_progress(self, sequence, total, records, size):
        self.stdout.write(
            f"  Chunk {sequence}/{total}: {records} items ({filesizeformat(size)})"
        )
