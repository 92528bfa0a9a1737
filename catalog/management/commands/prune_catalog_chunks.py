"""
Delete old chunk files from the catalog storage directories.

Usage:
    python manage.py prune_catalog_chunks
    python manage.py prune_catalog_chunks --days 3
"""

from argparse import ArgumentParser

from django.core.management.base import BaseCommand, CommandError

from catalog.chunks import prune_chunk_files
from catalog.conf import catalog_setting


class Command(BaseCommand):
    help = "Delete catalog chunk files older than the retention period"  # NOQA: A003

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument(
            "--days",
            type=int,
            default=catalog_setting("CATALOG_RETENTION_DAYS"),
            help="Delete chunk files older than this many days (default=%(default)s)",
        )
        parser.add_argument(
            "--storage-path",
            default=catalog_setting("CATALOG_STORAGE_PATH"),
            help="Directory holding pending/ and processed/ (default=%(default)s)",
        )

    def handle(self, *, days: int, storage_path: str, **options):
        if days < 0:
            raise CommandError("--days cannot be negative")

        deleted = prune_chunk_files(storage_path, max_age_days=days)
        self.stdout.write(f"Deleted {deleted} chunk files older than {days} days")
