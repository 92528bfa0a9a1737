"""
Sync downloaded catalog chunks into the database.

Every chunk in ``<storage path>/pending/`` is upserted and then moved to
``processed/``. Once all chunks have been tried, items which did not appear
in any of them are marked inactive.

Usage:
    python manage.py sync_catalog
    python manage.py sync_catalog --skip-prices
    python manage.py sync_catalog --file /path/to/catalog.json

``--file`` syncs a single file holding the whole catalog and deactivates
missing items straight away; nothing is moved between directories.

Deactivation is withheld when the newest batch of chunks was not completely
synced in this run. ``--allow-partial-reconcile`` deactivates anyway.

Only one sync runs at a time; a second invocation exits without doing
anything while the first holds the lock. The lock is renewed after every
chunk.
"""

from argparse import ArgumentParser

from django.core.management.base import BaseCommand, CommandError

from catalog.conf import catalog_setting
from catalog.exceptions import CatalogError
from catalog.sync import run_sync
from inventory.contextmanagers import cache_lock, refresh_cache_lock

SYNC_LOCK_ID = "catalog-sync"


class Command(BaseCommand):
    help = "Sync pending catalog chunks into the database"  # NOQA: A003

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument(
            "--file",
            dest="single_file",
            default=None,
            help="Sync this one file instead of the pending chunks",
        )
        parser.add_argument(
            "--skip-prices",
            action="store_true",
            help="Do not create price records",
        )
        parser.add_argument(
            "--allow-partial-reconcile",
            action="store_true",
            help="Deactivate missing items even if the latest batch is incomplete",
        )
        parser.add_argument(
            "--storage-path",
            default=catalog_setting("CATALOG_STORAGE_PATH"),
            help="Directory holding pending/ and processed/ (default=%(default)s)",
        )

    def handle(
        self,
        *,
        single_file,
        skip_prices: bool,
        allow_partial_reconcile: bool,
        storage_path: str,
        **options,
    ):
        with cache_lock(
            SYNC_LOCK_ID, lock_duration=catalog_setting("CATALOG_SYNC_LOCK_SECONDS")
        ) as acquired:
            if not acquired:
                self.stdout.write("A catalog sync is already running")
                return

            try:
                run = run_sync(
                    storage_path=storage_path,
                    single_file=single_file,
                    skip_prices=skip_prices,
                    allow_partial=allow_partial_reconcile,
                    progress=self.report_progress,
                )
            except CatalogError as exc:
                raise CommandError(f"Catalog sync failed: {exc}") from exc

        if not single_file and not run.chunks_processed and not run.chunks_failed:
            self.stdout.write("No pending chunks to sync")

        self.stdout.write(
            "\n".join(
                [
                    "Sync complete:",
                    f"  Added:         {run.added}",
                    f"  Updated:       {run.updated}",
                    f"  Skipped:       {run.skipped}",
                    f"  Deactivated:   {run.deactivated}",
                    f"  Price records: {run.price_records_created}",
                    f"  Total:         {run.total}",
                    f"  Duration:      {run.duration:.2f}s",
                ]
            )
        )

        for chunk_name in run.failed_chunks:
            self.stderr.write(
                self.style.WARNING(f"Chunk {chunk_name} failed and was left pending")
            )

        if run.archive_failures:
            self.stderr.write(
                self.style.WARNING(
                    f"{run.archive_failures} synced chunks could not be moved to"
                    " processed/ and will be synced again"
                )
            )

        if run.reconciliation_withheld:
            self.stderr.write(
                self.style.WARNING(
                    "Missing items were not deactivated because the latest batch"
                    " is incomplete. Use --allow-partial-reconcile to override."
                )
            )

    def report_progress(self, index, count, chunk_file, stats):
        # Keep the lock alive for the rest of the run
        if not refresh_cache_lock(
            SYNC_LOCK_ID, lock_duration=catalog_setting("CATALOG_SYNC_LOCK_SECONDS")
        ):
            self.stderr.write(
                self.style.WARNING("The sync lock expired and could not be renewed")
            )
        self.stdout.write(
            f"  Chunk {index}/{count} {chunk_file.name}: {stats.added} added,"
            f" {stats.updated} updated, {stats.skipped} skipped"
        )
