import json
import os
import tempfile
import time
from pathlib import Path

from django.test import override_settings

from catalog.chunks import build_chunk_filename, pending_directory
from catalog.models import CatalogItem

BATCH_TIMESTAMP = "2025-11-18-040000"


def make_record(external_id, **kwargs):
    record = {
        "id": str(external_id),
        "markethashname": f"Item {external_id}",
        "marketname": f"Item {external_id}",
        "rarity": "Mil-Spec Grade",
        "quality": "Normal",
    }
    record.update(kwargs)
    return record


def make_records(start, count, **kwargs):
    return [
        make_record(f"item-{i:05d}", **kwargs) for i in range(start, start + count)
    ]


def write_chunk(
    storage_path,
    records,
    *,
    sequence=1,
    total=1,
    batch_timestamp=BATCH_TIMESTAMP,
    content=None,
    mtime=None,
):
    """
    Write a chunk into ``storage_path/pending`` and return its path.

    ``content`` replaces the serialized records, for malformed files.
    """
    directory = pending_directory(storage_path)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / build_chunk_filename(batch_timestamp, sequence, total)
    if content is None:
        content = json.dumps(records)
    path.write_text(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def age_file(path, seconds):
    mtime = time.time() - seconds
    os.utime(path, (mtime, mtime))


def create_catalog_item(
    *, external_id="item-00001", active=True, do_save=True, **kwargs
):
    item = CatalogItem(
        external_id=external_id,
        name=kwargs.pop("name", f"Item {external_id}"),
        active=active,
        **kwargs,
    )
    if do_save:
        item.save()
    return item


class CatalogStorageMixin:
    """
    Give each test its own empty storage directory, also configured as
    ``CATALOG_STORAGE_PATH``.
    """

    def setUp(self):
        super().setUp()
        tmp = tempfile.TemporaryDirectory(prefix="catalog-test-")
        self.addCleanup(tmp.cleanup)
        self.storage_path = Path(tmp.name)

        settings_override = override_settings(CATALOG_STORAGE_PATH=tmp.name)
        settings_override.enable()
        self.addCleanup(settings_override.disable)

    @property
    def pending_dir(self):
        return self.storage_path / "pending"

    @property
    def processed_dir(self):
        return self.storage_path / "processed"

    def pending_names(self):
        if not self.pending_dir.exists():
            return []
        return sorted(path.name for path in self.pending_dir.iterdir())

    def processed_names(self):
        if not self.processed_dir.exists():
            return []
        return sorted(path.name for path in self.processed_dir.iterdir())
