from dataclasses import dataclass, field
from datetime import datetime
from logging import getLogger
from math import ceil
from pathlib import Path
from timeit import default_timer
from typing import Callable, Optional

from inventory.logging import StructuredLogger

from .chunks import (
    build_chunk_filename,
    count_records,
    ensure_directory,
    find_recent_chunk,
    make_batch_timestamp,
    parse_chunk_filename,
    pending_directory,
    prune_chunk_files,
    write_chunk_file,
)
from .client import CatalogClient
from .conf import catalog_setting
from .exceptions import CatalogAPIError, CatalogDownloadError, ChunkStorageError

logger = getLogger(__name__)
structured_logger = StructuredLogger.get_logger(__name__)

#: progress(sequence, total_chunks, record_count, bytes_written)
ProgressCallback = Callable[[int, int, int, int], None]


@dataclass
class DownloadResult:
    batch_timestamp: str
    chunk_size: int
    total_chunks: int = 0
    chunk_files: list = field(default_factory=list)
    failed_pages: dict = field(default_factory=dict)
    records: int = 0
    bytes_written: int = 0
    duration: float = 0.0
    pruned: int = 0
    skipped_fresh: bool = False
    recent_chunk: Optional[Path] = None

    @property
    def is_partial(self):
        return bool(self.failed_pages)


class ChunkWriter:
    """
    Download the catalog one bounded page at a time

    Each page is written to ``pending/`` as soon as it arrives and is dropped
    before the next request, so memory use is bounded by the chunk size.
    """

    def __init__(
        self,
        storage_path,
        chunk_size: int,
        client: Optional[CatalogClient] = None,
        progress: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be a positive integer")

        self.storage_path = Path(storage_path)
        self.chunk_size = chunk_size
        self.client = client or CatalogClient()
        self.progress = progress
        self.result = DownloadResult(
            batch_timestamp=make_batch_timestamp(now), chunk_size=chunk_size
        )
        self.pending_dir = None
        self.log = structured_logger.bind(
            batch_timestamp=self.result.batch_timestamp, chunk_size=chunk_size
        )

    def run(self, force: bool = False) -> DownloadResult:
        result = self.result
        self.pending_dir = ensure_directory(pending_directory(self.storage_path))

        if not force:
            recent = find_recent_chunk(
                self.storage_path, catalog_setting("CATALOG_FRESHNESS_MINUTES")
            )
            if recent is not None:
                self.log.info(
                    "Recent chunk found, skipping download.",
                    event_code="catalog_download_skipped_fresh",
                    chunk=recent,
                )
                result.skipped_fresh = True
                result.recent_chunk = recent
                return result

        start_time = default_timer()
        self.log.info(
            "Catalog download started.", event_code="catalog_download_started"
        )

        try:
            first_page = self.client.fetch_page(self.chunk_size, 1)
            first_count = count_records(first_page.payload)
        except CatalogAPIError as exc:
            self.log.error(
                "Unable to fetch the first catalog page.",
                event_code="catalog_download_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
            )
            raise CatalogDownloadError(
                f"Unable to fetch the first catalog page: {exc}"
            ) from exc

        if first_count == 0:
            logger.warning("The catalog API returned no records on page 1")
            result.duration = default_timer() - start_time
            return result

        if first_page.total_count is not None:
            total_known = True
            total_chunks = max(1, ceil(first_page.total_count / self.chunk_size))
        elif first_count < self.chunk_size:
            total_known = True
            total_chunks = 1
        else:
            # Keep going until a short page; the estimate only names the files
            total_known = False
            total_chunks = max(
                2, ceil(catalog_setting("CATALOG_EXPECTED_SIZE") / self.chunk_size)
            )

        result.total_chunks = total_chunks

        try:
            self._write_page(1, first_page.payload, first_count)
        except OSError as exc:
            raise ChunkStorageError(
                f"Unable to write the first chunk to {self.pending_dir}: {exc}"
            ) from exc
        del first_page

        last_page_with_records = 1
        page_limit = total_chunks if total_known else total_chunks * 2
        page = 2

        while page <= page_limit:
            try:
                catalog_page = self.client.fetch_page(self.chunk_size, page)
                record_count = count_records(catalog_page.payload)
            except CatalogAPIError as exc:
                self._page_failed(page, exc, "fetch")
                page += 1
                continue

            if record_count == 0:
                break

            last_page_with_records = page

            try:
                self._write_page(page, catalog_page.payload, record_count)
            except OSError as exc:
                self._page_failed(page, exc, "write")
            del catalog_page

            if not total_known and record_count < self.chunk_size:
                break

            page += 1
        else:
            if not total_known:
                logger.warning(
                    "Stopped downloading after %d pages without reaching the end "
                    "of the catalog",
                    page_limit,
                )

        if not total_known:
            self._renumber_chunks(last_page_with_records)

        result.duration = default_timer() - start_time
        result.pruned = prune_chunk_files(
            self.storage_path, catalog_setting("CATALOG_RETENTION_DAYS")
        )

        self.log.info(
            "Catalog download finished.",
            event_code="catalog_download_finished",
            total_records=result.records,
            total_chunks=result.total_chunks,
            chunks_written=len(result.chunk_files),
            failed_pages=sorted(result.failed_pages),
            bytes_written=result.bytes_written,
            duration_seconds=round(result.duration, 2),
        )

        return result

    def _write_page(self, sequence: int, payload: bytes, record_count: int):
        result = self.result
        filename = build_chunk_filename(
            result.batch_timestamp, sequence, result.total_chunks
        )
        path = write_chunk_file(self.pending_dir, filename, payload)

        result.chunk_files.append(path)
        result.records += record_count
        result.bytes_written += len(payload)

        self.log.info(
            "Chunk downloaded.",
            event_code="catalog_chunk_downloaded",
            chunk=path,
            sequence=sequence,
            records_in_chunk=record_count,
            bytes=len(payload),
            total_records=result.records,
        )

        if self.progress is not None:
            self.progress(sequence, result.total_chunks, record_count, len(payload))

    def _page_failed(self, page: int, exc: Exception, stage: str):
        self.result.failed_pages[page] = str(exc)
        self.log.error(
            f"Unable to {stage} catalog page {page}, continuing with the next page.",
            event_code="catalog_page_failed",
            reason=str(exc),
            reason_code=f"page_{stage}_failed",
            page=page,
        )

    def _renumber_chunks(self, actual_total: int):
        """
        Rename the chunks written under an estimated total so their names
        carry the real number of chunks.
        """
        result = self.result
        if actual_total == result.total_chunks:
            return

        renamed = []
        for path in result.chunk_files:
            sequence = parse_chunk_filename(path).sequence
            new_path = path.with_name(
                build_chunk_filename(result.batch_timestamp, sequence, actual_total)
            )
            try:
                path.rename(new_path)
            except OSError as exc:
                logger.warning(
                    "Unable to rename %s to %s: %s", path.name, new_path.name, exc
                )
                renamed.append(path)
            else:
                renamed.append(new_path)

        logger.info(
            "Renamed chunks from an estimated %d to %d total chunks",
            result.total_chunks,
            actual_total,
        )
        result.chunk_files = renamed
        result.total_chunks = actual_total


def download_catalog(
    storage_path=None,
    chunk_size: Optional[int] = None,
    client: Optional[CatalogClient] = None,
    force: bool = False,
    now: Optional[datetime] = None,
    progress: Optional[ProgressCallback] = None,
) -> DownloadResult:
    """
    Download the catalog into ``<storage_path>/pending`` as numbered chunks.

    A page which fails after page 1 is logged, listed in
    ``DownloadResult.failed_pages`` and skipped.

    Raises:
        CatalogDownloadError: If the first page cannot be fetched.
        ChunkStorageError: If ``pending/`` or the first chunk cannot be
            written.
    """
    writer = ChunkWriter(
        storage_path or catalog_setting("CATALOG_STORAGE_PATH"),
        chunk_size or catalog_setting("CATALOG_CHUNK_SIZE"),
        client=client,
        progress=progress,
        now=now,
    )
    return writer.run(force=force)
