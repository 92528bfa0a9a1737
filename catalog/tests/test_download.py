import json
from datetime import datetime
from unittest import mock

from django.test import SimpleTestCase, override_settings

from catalog.chunks import parse_chunk_filename
from catalog.client import CatalogPage
from catalog.download import download_catalog
from catalog.exceptions import (
    CatalogDownloadError,
    CatalogHTTPError,
    CatalogNetworkError,
    ChunkStorageError,
)

from .utils import CatalogStorageMixin, age_file, make_records, write_chunk

NOW = datetime(2025, 11, 18, 4, 0, 0)


class FakeCatalogClient:
    """
    Serve ``record_count`` records in pages, optionally failing some pages
    """

    def __init__(self, record_count, report_total=True, failures=None):
        self.records = make_records(1, record_count)
        self.report_total = report_total
        self.failures = failures or {}
        self.requested_pages = []

    def fetch_page(self, page_size, page_number):
        self.requested_pages.append(page_number)
        if page_number in self.failures:
            raise self.failures[page_number]

        start = (page_number - 1) * page_size
        page = self.records[start : start + page_size]
        return CatalogPage(
            payload=json.dumps(page).encode("utf-8"),
            total_count=len(self.records) if self.report_total else None,
        )


def read_chunk(path):
    return json.loads(path.read_text())


class DownloadCatalogTests(CatalogStorageMixin, SimpleTestCase):
    def download(self, client, **kwargs):
        kwargs.setdefault("now", NOW)
        return download_catalog(self.storage_path, client=client, **kwargs)

    def test_writes_one_chunk_per_page(self):
        client = FakeCatalogClient(12000)

        result = self.download(client, chunk_size=5000)

        self.assertEqual(
            self.pending_names(),
            [
                "chunk-2025-11-18-040000-001-of-003.json",
                "chunk-2025-11-18-040000-002-of-003.json",
                "chunk-2025-11-18-040000-003-of-003.json",
            ],
        )
        self.assertEqual(
            [len(read_chunk(path)) for path in result.chunk_files], [5000, 5000, 2000]
        )
        self.assertEqual(client.requested_pages, [1, 2, 3])
        self.assertEqual(result.batch_timestamp, "2025-11-18-040000")
        self.assertEqual(result.total_chunks, 3)
        self.assertEqual(result.records, 12000)
        self.assertEqual(
            result.bytes_written, sum(p.stat().st_size for p in result.chunk_files)
        )
        self.assertEqual(result.failed_pages, {})
        self.assertFalse(result.skipped_fresh)

    def test_payload_is_written_verbatim(self):
        client = FakeCatalogClient(3)
        client.fetch_page = mock.Mock(
            return_value=CatalogPage(payload=b'[ {"id": "a"} ]', total_count=1)
        )

        result = self.download(client, chunk_size=10)

        self.assertEqual(result.chunk_files[0].read_bytes(), b'[ {"id": "a"} ]')

    def test_failed_page_is_skipped(self):
        client = FakeCatalogClient(
            25, failures={4: CatalogNetworkError("HTTP 503 after retrying")}
        )

        result = self.download(client, chunk_size=5)

        self.assertEqual(client.requested_pages, [1, 2, 3, 4, 5])
        self.assertEqual(
            [parse_chunk_filename(p).sequence for p in result.chunk_files],
            [1, 2, 3, 5],
        )
        self.assertEqual(len(self.pending_names()), 4)
        self.assertEqual(list(result.failed_pages), [4])
        self.assertTrue(result.is_partial)
        self.assertEqual(result.records, 20)

    def test_trailing_failed_pages(self):
        failures = {
            4: CatalogNetworkError("timed out"),
            5: CatalogHTTPError(400, "bad page"),
        }
        client = FakeCatalogClient(25, failures=failures)

        result = self.download(client, chunk_size=5)

        self.assertEqual(len(self.pending_names()), 3)
        self.assertEqual(sorted(result.failed_pages), [4, 5])
        self.assertEqual(
            [parse_chunk_filename(name).total for name in self.pending_names()],
            [5, 5, 5],
        )

    def test_first_page_failure_is_fatal(self):
        client = FakeCatalogClient(
            25, failures={1: CatalogNetworkError("connection refused")}
        )

        with self.assertRaises(CatalogDownloadError):
            self.download(client, chunk_size=5)

        self.assertEqual(self.pending_names(), [])
        self.assertEqual(client.requested_pages, [1])

    def test_first_page_with_invalid_body_is_fatal(self):
        client = FakeCatalogClient(0)
        client.fetch_page = mock.Mock(
            return_value=CatalogPage(payload=b"<html>", total_count=None)
        )

        with self.assertRaises(CatalogDownloadError):
            self.download(client, chunk_size=5)

    def test_write_failure_on_later_page_is_skipped(self):
        client = FakeCatalogClient(15)

        with mock.patch(
            "catalog.download.write_chunk_file",
            side_effect=[
                self.pending_dir / "first",
                OSError("disk full"),
                self.pending_dir / "third",
            ],
        ):
            result = self.download(client, chunk_size=5)

        self.assertEqual(list(result.failed_pages), [2])
        self.assertEqual(len(result.chunk_files), 2)

    def test_write_failure_on_first_page_is_fatal(self):
        with mock.patch(
            "catalog.download.write_chunk_file", side_effect=OSError("disk full")
        ):
            with self.assertRaises(ChunkStorageError):
                self.download(FakeCatalogClient(15), chunk_size=5)

    def test_unwritable_storage_is_fatal(self):
        blocker = self.storage_path / "blocker"
        blocker.write_text("")

        with self.assertRaises(ChunkStorageError):
            download_catalog(blocker, chunk_size=5, client=FakeCatalogClient(5))

    def test_short_first_page_without_total_is_one_chunk(self):
        client = FakeCatalogClient(3, report_total=False)

        result = self.download(client, chunk_size=5)

        self.assertEqual(client.requested_pages, [1])
        self.assertEqual(
            self.pending_names(), ["chunk-2025-11-18-040000-001-of-001.json"]
        )
        self.assertEqual(result.total_chunks, 1)

    @override_settings(CATALOG_EXPECTED_SIZE=20)
    def test_estimated_total_is_corrected(self):
        client = FakeCatalogClient(32, report_total=False)

        result = self.download(client, chunk_size=5)

        self.assertEqual(client.requested_pages, [1, 2, 3, 4, 5, 6, 7])
        self.assertEqual(result.total_chunks, 7)
        self.assertEqual(result.records, 32)
        self.assertEqual(
            self.pending_names(),
            [f"chunk-2025-11-18-040000-{seq:03d}-of-007.json" for seq in range(1, 8)],
        )
        self.assertEqual([p.name for p in result.chunk_files], self.pending_names())

    @override_settings(CATALOG_EXPECTED_SIZE=100)
    def test_estimated_total_stops_at_empty_page(self):
        client = FakeCatalogClient(10, report_total=False)

        result = self.download(client, chunk_size=5)

        self.assertEqual(client.requested_pages, [1, 2, 3])
        self.assertEqual(result.total_chunks, 2)
        self.assertEqual(
            self.pending_names(),
            [
                "chunk-2025-11-18-040000-001-of-002.json",
                "chunk-2025-11-18-040000-002-of-002.json",
            ],
        )

    def test_empty_catalog_writes_nothing(self):
        result = self.download(FakeCatalogClient(0), chunk_size=5)
        self.assertEqual(result.chunk_files, [])
        self.assertEqual(self.pending_names(), [])

    def test_progress_callback(self):
        progress = mock.Mock()

        self.download(FakeCatalogClient(7), chunk_size=5, progress=progress)

        self.assertEqual(progress.call_count, 2)
        sequence, total, records, size = progress.call_args_list[1][0]
        self.assertEqual((sequence, total, records), (2, 2, 2))
        self.assertGreater(size, 0)

    def test_recent_chunks_skip_download(self):
        existing = write_chunk(
            self.storage_path, [], batch_timestamp="2025-11-18-033000"
        )
        client = FakeCatalogClient(10)

        result = self.download(client, chunk_size=5)

        self.assertTrue(result.skipped_fresh)
        self.assertEqual(result.recent_chunk, existing)
        self.assertEqual(client.requested_pages, [])

    def test_force_ignores_recent_chunks(self):
        write_chunk(
            self.storage_path, [], batch_timestamp="2025-11-18-033000"
        )
        client = FakeCatalogClient(10)

        result = self.download(client, chunk_size=5, force=True)

        self.assertFalse(result.skipped_fresh)
        self.assertEqual(len(result.chunk_files), 2)

    def test_stale_chunks_do_not_skip_download(self):
        existing = write_chunk(
            self.storage_path, [], batch_timestamp="2025-11-18-033000"
        )
        age_file(existing, 60 * 60)

        result = self.download(FakeCatalogClient(10), chunk_size=5)

        self.assertFalse(result.skipped_fresh)
        self.assertEqual(len(result.chunk_files), 2)

    def test_expired_chunks_are_pruned(self):
        expired = write_chunk(
            self.storage_path, [], batch_timestamp="2025-11-01-040000"
        )
        age_file(expired, 10 * 24 * 60 * 60)

        result = self.download(FakeCatalogClient(5), chunk_size=5)

        self.assertEqual(result.pruned, 1)
        self.assertFalse(expired.exists())

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            self.download(FakeCatalogClient(5), chunk_size=-1)
