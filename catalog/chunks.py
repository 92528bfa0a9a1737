"""
Chunk files and the directories which hold them

A chunk is one page of the catalog saved verbatim as a JSON array. Its
filename carries everything else we know about it::

    chunk-{batch timestamp}-{sequence:03d}-of-{total:03d}.json

``pending/`` holds chunks waiting to be synced and ``processed/`` holds
chunks which have been committed to the database.
"""

import json
import os
import re
import time
from datetime import datetime
from logging import getLogger
from pathlib import Path
from typing import NamedTuple, Optional, Union

from inventory.logging import StructuredLogger

from .exceptions import CatalogResponseError, ChunkStorageError

logger = getLogger(__name__)
structured_logger = StructuredLogger.get_logger(__name__)

PENDING_DIRNAME = "pending"
PROCESSED_DIRNAME = "processed"

BATCH_TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M%S"

CHUNK_FILENAME_RE = re.compile(
    r"^chunk-(?P<batch_timestamp>\d{4}-\d{2}-\d{2}-\d{6})"
    r"-(?P<sequence>\d{3,})-of-(?P<total>\d{3,})\.json$"
)

PathLike = Union[str, os.PathLike]


class ChunkName(NamedTuple):
    batch_timestamp: str
    sequence: int
    total: int

    @property
    def filename(self):
        return build_chunk_filename(self.batch_timestamp, self.sequence, self.total)


def make_batch_timestamp(when: Optional[datetime] = None) -> str:
    return (when or datetime.now()).strftime(BATCH_TIMESTAMP_FORMAT)


def build_chunk_filename(batch_timestamp: str, sequence: int, total: int) -> str:
    return f"chunk-{batch_timestamp}-{sequence:03d}-of-{total:03d}.json"


def parse_chunk_filename(filename: PathLike) -> ChunkName:
    """
    Parse a chunk filename (or path) into its batch, sequence and total.

    Raises:
        ValueError: If the name does not follow the chunk naming scheme.
    """
    name = os.path.basename(os.fspath(filename))
    match = CHUNK_FILENAME_RE.match(name)
    if not match:
        raise ValueError(f"{name} is not a chunk filename")
    return ChunkName(
        batch_timestamp=match["batch_timestamp"],
        sequence=int(match["sequence"]),
        total=int(match["total"]),
    )


def is_chunk_filename(filename: PathLike) -> bool:
    try:
        parse_chunk_filename(filename)
    except ValueError:
        return False
    return True


def pending_directory(storage_path: PathLike) -> Path:
    return Path(storage_path) / PENDING_DIRNAME


def processed_directory(storage_path: PathLike) -> Path:
    return Path(storage_path) / PROCESSED_DIRNAME


def ensure_directory(path: PathLike) -> Path:
    """
    Create ``path`` (and parents) if it does not exist.

    Raises:
        ChunkStorageError: If the directory cannot be created.
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ChunkStorageError(f"Unable to create directory {path}: {exc}") from exc
    return path


def iter_chunk_files(directory: PathLike):
    directory = Path(directory)
    if not directory.is_dir():
        return
    for entry in directory.iterdir():
        if is_chunk_filename(entry.name) and entry.is_file():
            yield entry


def list_pending_chunks(pending_dir: PathLike) -> list[Path]:
    """
    Return the chunk files waiting in ``pending_dir``.

    Chunks are ordered by the sequence number in their filename, with ties
    (chunks left over from an earlier batch) broken by filename. A missing
    directory simply has no chunks.
    """
    return sorted(
        iter_chunk_files(pending_dir),
        key=lambda path: (parse_chunk_filename(path.name).sequence, path.name),
    )


def count_records(payload: bytes) -> int:
    """
    Return the number of records in a page payload.

    Raises:
        CatalogResponseError: If the payload is not a JSON array.
    """
    try:
        records = json.loads(payload)
    except ValueError as exc:
        raise CatalogResponseError(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(records, list):
        raise CatalogResponseError(
            f"Expected a JSON array of records, got {type(records).__name__}"
        )
    return len(records)


def write_chunk_file(directory: PathLike, filename: str, payload: bytes) -> Path:
    """
    Write ``payload`` to ``directory/filename`` and return the path.

    The data is written to a hidden temporary file first and then renamed, so
    an interrupted write never leaves a truncated chunk under a name that
    chunk discovery would pick up.
    """
    destination = Path(directory) / filename
    temporary = destination.with_name(f".{filename}.tmp")
    try:
        with open(temporary, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temporary, destination)
    except OSError:
        if temporary.exists():
            temporary.unlink()
        raise
    return destination


def archive_chunk(chunk_file: PathLike, processed_dir: PathLike) -> Optional[Path]:
    """
    Move a committed chunk into ``processed_dir``.

    The move is a single rename, which replaces a stale file of the same
    name. A failure is only logged: the chunk's records are already in the
    database, so leaving it pending means it is synced again next time.

    Returns:
        The new path, or None if the chunk could not be moved.
    """
    chunk_file = Path(chunk_file)
    destination = Path(processed_dir) / chunk_file.name
    try:
        Path(processed_dir).mkdir(parents=True, exist_ok=True)
        os.replace(chunk_file, destination)
    except OSError as exc:
        structured_logger.warning(
            "Could not move committed chunk to the processed directory.",
            event_code="catalog_chunk_archive_failed",
            reason=str(exc),
            reason_code="archive_move_failed",
            chunk=chunk_file,
            destination=str(destination),
        )
        return None

    logger.debug("Archived %s to %s", chunk_file.name, processed_dir)
    return destination


def find_recent_chunk(
    storage_path: PathLike, max_age_minutes: int, now: Optional[float] = None
) -> Optional[Path]:
    """
    Return the newest chunk file in ``pending/`` or ``processed/`` if it was
    written less than ``max_age_minutes`` ago.
    """
    now = now if now is not None else time.time()
    threshold = now - max_age_minutes * 60

    newest = None
    newest_mtime = None
    for directory in (
        pending_directory(storage_path),
        processed_directory(storage_path),
    ):
        for chunk_file in iter_chunk_files(directory):
            mtime = chunk_file.stat().st_mtime
            if newest_mtime is None or mtime > newest_mtime:
                newest, newest_mtime = chunk_file, mtime

    if newest is not None and newest_mtime > threshold:
        return newest
    return None


def prune_chunk_files(
    storage_path: PathLike, max_age_days: int = 7, now: Optional[float] = None
) -> int:
    """
    Delete chunk files older than ``max_age_days`` from both ``pending/``
    and ``processed/``. Symlinks and files which are not chunks are left
    alone.

    Returns:
        The number of files deleted.
    """
    now = now if now is not None else time.time()
    threshold = now - max_age_days * 24 * 60 * 60
    deleted = 0

    for directory in (
        pending_directory(storage_path),
        processed_directory(storage_path),
    ):
        for chunk_file in iter_chunk_files(directory):
            if chunk_file.is_symlink():
                continue
            if chunk_file.stat().st_mtime >= threshold:
                continue
            try:
                chunk_file.unlink()
            except OSError:
                logger.warning("Unable to delete expired chunk %s", chunk_file)
                continue
            deleted += 1

    if deleted:
        logger.info("Deleted %d chunk files older than %d days", deleted, max_age_days)

    return deleted
