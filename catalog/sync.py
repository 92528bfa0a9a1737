"""
Sync chunk files from ``pending/`` into the database

Each chunk is committed in small transactions and archived to
``processed/`` once its records are in the database. Items missing from
the catalog are only deactivated after every pending chunk has been tried,
so one run sees the whole catalog before deciding what disappeared.
"""

import gc
import json
import resource
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from timeit import default_timer
from typing import Callable, Optional

from django.db import DatabaseError, reset_queries, transaction
from django.utils import timezone

from inventory.logging import StructuredLogger

from .chunks import (
    archive_chunk,
    ensure_directory,
    list_pending_chunks,
    parse_chunk_filename,
    pending_directory,
    processed_directory,
)
from .conf import catalog_setting
from .exceptions import ChunkParseError
from .mapping import build_item_price, populate_item_from_record
from .models import CatalogItem, ItemPrice
from .reconcile import reconcile
from .schema import ValidationError, parse_record

logger = getLogger(__name__)
structured_logger = StructuredLogger.get_logger(__name__)


@dataclass
class ChunkStats:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    deactivated: int = 0
    price_records_created: int = 0
    total: int = 0
    processed_external_ids: set = field(default_factory=set)

    def merge(self, other: "ChunkStats"):
        self.added += other.added
        self.updated += other.updated
        self.skipped += other.skipped
        self.deactivated += other.deactivated
        self.price_records_created += other.price_records_created
        self.total += other.total
        self.processed_external_ids.update(other.processed_external_ids)

    def as_dict(self):
        return {
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "deactivated": self.deactivated,
            "price_records_created": self.price_records_created,
            "total": self.total,
        }


@dataclass
class SyncRun(ChunkStats):
    """
    Totals for one invocation of the sync. Nothing here is persisted.
    """

    chunks_processed: int = 0
    chunks_failed: int = 0
    archive_failures: int = 0
    failed_chunks: list = field(default_factory=list)
    committed_chunks: list = field(default_factory=list)
    reconciliation_withheld: bool = False
    started_at: float = field(default_factory=default_timer)
    duration: float = 0.0

    def finish(self):
        self.duration = default_timer() - self.started_at
        return self


#: progress(index, chunk_count, chunk_file, stats)
SyncProgressCallback = Callable[[int, int, Path, ChunkStats], None]


def peak_memory_mb() -> float:
    # ru_maxrss is reported in kilobytes on Linux
    return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024


def load_chunk(chunk_file) -> list:
    """
    Read a chunk file and return its records.

    Raises:
        ChunkParseError: If the file cannot be read or does not contain a
            JSON array.
    """
    try:
        with open(chunk_file, "rb") as f:
            records = json.load(f)
    except OSError as exc:
        raise ChunkParseError(f"Unable to read {chunk_file}: {exc}") from exc
    except ValueError as exc:
        raise ChunkParseError(f"{chunk_file} is not valid JSON: {exc}") from exc

    if not isinstance(records, list):
        raise ChunkParseError(
            f"{chunk_file} should contain a JSON array, not {type(records).__name__}"
        )
    return records


def _save_record(existing, record, raw, synced_at, skip_prices):
    """
    Create or update the item for one record and add its price point.

    Returns an ``(item, created, price_created)`` tuple. Must be called inside a
    transaction so a failure leaves no partial rows behind.
    """
    item = existing.get(record.external_id)
    created = item is None
    if created:
        item = CatalogItem(external_id=record.external_id)

    populate_item_from_record(item, record, raw, synced_at)
    item.save()

    price_created = False
    if not skip_prices:
        price = build_item_price(item, record, synced_at)
        if (
            price is not None
            and not ItemPrice.objects.filter(
                item=item, price_date=price.price_date, source=price.source
            ).exists()
        ):
            price.save()
            price_created = True

    return item, created, price_created


def _sync_batch(raw_records, synced_at, skip_prices, log) -> ChunkStats:
    stats = ChunkStats(total=len(raw_records))

    records = []
    for raw in raw_records:
        try:
            records.append((parse_record(raw), raw))
        except ValidationError as exc:
            stats.skipped += 1
            logger.warning(
                "Skipping invalid catalog record %.100r: %s",
                raw,
                exc.errors(include_url=False, include_input=False),
            )

    with transaction.atomic():
        existing = CatalogItem.objects.in_bulk(
            {record.external_id for record, _ in records}, field_name="external_id"
        )

        for record, raw in records:
            try:
                with transaction.atomic():
                    item, created, price_created = _save_record(
                        existing, record, raw, synced_at, skip_prices
                    )
            except Exception as exc:
                stats.skipped += 1
                log.warning(
                    "Unable to save catalog record.",
                    event_code="catalog_record_save_failed",
                    reason=str(exc) or repr(exc),
                    reason_code=exc.__class__.__name__,
                    external_id=record.external_id,
                )
                continue

            existing[record.external_id] = item
            if created:
                stats.added += 1
            else:
                stats.updated += 1
            if price_created:
                stats.price_records_created += 1
            stats.processed_external_ids.add(record.external_id)

    return stats


def sync_chunk(
    chunk_file,
    defer_reconciliation: bool = True,
    skip_prices: bool = False,
    batch_size: Optional[int] = None,
) -> ChunkStats:
    """
    Upsert every record of one chunk file.

    Records are committed ``batch_size`` at a time. A batch which cannot be
    committed is counted as skipped and the rest of the chunk still runs, so
    the returned counters only ever describe committed work.

    With ``defer_reconciliation=False`` items missing from this file are
    deactivated straight away, which is only correct when the file holds the
    whole catalog.

    Raises:
        ChunkParseError: If the file cannot be read as a JSON array.
    """
    batch_size = batch_size or catalog_setting("CATALOG_SYNC_BATCH_SIZE")
    log = structured_logger.bind(chunk=chunk_file)

    records = load_chunk(chunk_file)
    stats = ChunkStats()
    synced_at = timezone.now()

    for offset in range(0, len(records), batch_size):
        batch = records[offset : offset + batch_size]
        try:
            batch_stats = _sync_batch(batch, synced_at, skip_prices, log)
        except DatabaseError as exc:
            stats.total += len(batch)
            stats.skipped += len(batch)
            log.error(
                "Unable to commit batch of catalog records.",
                event_code="catalog_batch_commit_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                batch_offset=offset,
                batch_records=len(batch),
            )
        else:
            stats.merge(batch_stats)

        del batch
        reset_queries()

    del records

    if not defer_reconciliation:
        stats.deactivated = reconcile(stats.processed_external_ids)

    log.info(
        "Chunk synced.",
        event_code="catalog_chunk_synced",
        **stats.as_dict(),
    )
    return stats


def missing_batch_sequences(committed_chunks) -> tuple[Optional[str], list[int]]:
    """
    Find the newest batch among ``committed_chunks`` and return its
    timestamp with the sequence numbers of that batch which are not in
    ``committed_chunks``.
    """
    names = [parse_chunk_filename(name) for name in committed_chunks]
    if not names:
        return None, []

    newest = max(name.batch_timestamp for name in names)
    batch = [name for name in names if name.batch_timestamp == newest]
    total = max(name.total for name in batch)
    committed = {name.sequence for name in batch}
    return newest, [seq for seq in range(1, total + 1) if seq not in committed]


def run_sync(
    storage_path=None,
    single_file=None,
    skip_prices: bool = False,
    allow_partial: bool = False,
    progress: Optional[SyncProgressCallback] = None,
) -> SyncRun:
    """
    Sync every pending chunk, archive what was committed and then deactivate
    items which did not appear in any chunk.

    ``single_file`` syncs just that file and deactivates right away, without
    looking at ``pending/`` or moving anything.

    Raises:
        ChunkStorageError: If ``processed/`` cannot be created.
        ChunkParseError: If ``single_file`` cannot be read.
    """
    run = SyncRun()

    if single_file:
        logger.info("Syncing single file %s", single_file)
        stats = sync_chunk(
            single_file, defer_reconciliation=False, skip_prices=skip_prices
        )
        run.merge(stats)
        run.chunks_processed = 1
        return run.finish()

    storage_path = Path(storage_path or catalog_setting("CATALOG_STORAGE_PATH"))
    processed_dir = ensure_directory(processed_directory(storage_path))
    chunk_files = list_pending_chunks(pending_directory(storage_path))

    if not chunk_files:
        logger.info("No pending chunks in %s", pending_directory(storage_path))
        return run.finish()

    structured_logger.info(
        "Catalog sync started.",
        event_code="catalog_sync_started",
        pending_chunks=len(chunk_files),
    )

    for index, chunk_file in enumerate(chunk_files, start=1):
        try:
            stats = sync_chunk(chunk_file, skip_prices=skip_prices)
        except ChunkParseError as exc:
            run.chunks_failed += 1
            run.failed_chunks.append(chunk_file.name)
            structured_logger.warning(
                "Skipping malformed chunk, leaving it in pending.",
                event_code="catalog_chunk_malformed",
                reason=str(exc),
                reason_code="chunk_parse_failed",
                chunk=chunk_file,
            )
            continue
        except Exception as exc:
            run.chunks_failed += 1
            run.failed_chunks.append(chunk_file.name)
            logger.exception("Unhandled error while syncing %s", chunk_file.name)
            structured_logger.error(
                "Chunk sync failed, leaving it in pending.",
                event_code="catalog_chunk_sync_failed",
                reason=str(exc) or repr(exc),
                reason_code=exc.__class__.__name__,
                chunk=chunk_file,
            )
            continue
        finally:
            reset_queries()
            gc.collect()

        run.merge(stats)
        run.chunks_processed += 1
        run.committed_chunks.append(chunk_file.name)

        if archive_chunk(chunk_file, processed_dir) is None:
            run.archive_failures += 1

        logger.info(
            "Chunk %d/%d done (%s), peak memory %.1f MB",
            index,
            len(chunk_files),
            chunk_file.name,
            peak_memory_mb(),
        )

        if progress is not None:
            progress(index, len(chunk_files), chunk_file, stats)

        del stats

    run.deactivated = _reconcile_run(run, allow_partial)
    run.finish()

    structured_logger.info(
        "Catalog sync finished.",
        event_code="catalog_sync_finished",
        chunks_processed=run.chunks_processed,
        chunks_failed=run.chunks_failed,
        archive_failures=run.archive_failures,
        duration_seconds=round(run.duration, 2),
        **run.as_dict(),
    )
    return run


def _reconcile_run(run: SyncRun, allow_partial: bool) -> int:
    if not run.processed_external_ids:
        return 0

    require_complete = catalog_setting("CATALOG_REQUIRE_COMPLETE_BATCH")
    if require_complete and not allow_partial:
        batch_timestamp, missing = missing_batch_sequences(run.committed_chunks)
        if missing:
            run.reconciliation_withheld = True
            structured_logger.warning(
                "Not deactivating items because the latest batch is incomplete.",
                event_code="catalog_reconcile_withheld",
                reason=(
                    f"Chunks {', '.join(map(str, missing))} of batch "
                    f"{batch_timestamp} were not synced in this run"
                ),
                reason_code="incomplete_batch",
                batch_timestamp=batch_timestamp,
                missing_chunks=missing,
            )
            return 0

    return reconcile(run.processed_external_ids)
