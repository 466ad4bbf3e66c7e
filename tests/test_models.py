"""Tests for entry_import models."""
import pytest
from entry_import.models import (
    EntryRecord,
    ImportBatch,
    ImportConfig,
    ImportResult,
    ImportStatus,
    MiB,
    ParsedTable,
    SourceRow,
)


class TestSourceRow:
    def test_preserves_order(self):
        row = SourceRow((("b", "2"), ("a", "1")))
        assert row.keys() == ["b", "a"]
        assert list(row) == ["b", "a"]
        assert row.items() == [("b", "2"), ("a", "1")]

    def test_get_and_contains(self):
        row = SourceRow.from_dict({"id": "a1", "name": "Item"})
        assert row.get("id") == "a1"
        assert row.get("missing") is None
        assert row.get("missing", "x") == "x"
        assert "name" in row
        assert "missing" not in row
        assert len(row) == 2

    def test_to_dict(self):
        row = SourceRow((("id", "a1"),))
        assert row.to_dict() == {"id": "a1"}


class TestParsedTable:
    def test_truncated(self):
        rows = (SourceRow((("id", "1"),)),)
        assert ParsedTable(("id",), rows, total_rows=5).is_truncated is True
        assert ParsedTable(("id",), rows, total_rows=1).is_truncated is False

    def test_total_cannot_be_smaller_than_preview(self):
        rows = (SourceRow((("id", "1"),)), SourceRow((("id", "2"),)))
        with pytest.raises(ValueError):
            ParsedTable(("id",), rows, total_rows=1)


class TestEntryRecord:
    def test_wire_shape(self):
        entry = EntryRecord("a1", display_name="Item", raw_data={"color": "red"})
        assert entry.to_dict() == {
            "external_id": "a1",
            "display_name": "Item",
            "external_url": None,
            "raw_data": {"color": "red"},
        }

    def test_wire_shape_null_raw_data(self):
        assert EntryRecord("a1").to_dict()["raw_data"] is None


class TestImportBatch:
    def test_digest_depends_on_content(self):
        first = ImportBatch(0, (EntryRecord("a1"), EntryRecord("a2")))
        same = ImportBatch(7, (EntryRecord("a1"), EntryRecord("a2")))
        other = ImportBatch(0, (EntryRecord("a1"), EntryRecord("a3")))

        assert len(first.digest) == 64
        assert first.digest == same.digest
        assert first.digest != other.digest

    def test_payload(self):
        batch = ImportBatch(0, (EntryRecord("a1"),))
        assert len(batch) == 1
        assert batch.to_payload()[0]["external_id"] == "a1"


class TestImportResult:
    def test_ok_result(self):
        result = ImportResult.ok(created=1300, total_batches=3)
        assert result.success is True
        assert result.status == ImportStatus.SUCCESS
        assert result.committed_batches == 3
        assert result.failed_batch is None

    def test_fail_without_commits(self):
        result = ImportResult.fail(
            created=0,
            total_batches=3,
            committed_batches=0,
            failed_batch=0,
            exception=RuntimeError("boom"),
        )
        assert result.success is False
        assert result.status == ImportStatus.FAILED
        assert result.error == "boom"

    def test_fail_after_commits_is_partial(self):
        result = ImportResult.fail(
            created=500,
            total_batches=3,
            committed_batches=1,
            failed_batch=1,
            exception=RuntimeError("boom"),
        )
        assert result.status == ImportStatus.PARTIAL
        assert result.created == 500

    def test_error_falls_back_to_exception_name(self):
        result = ImportResult.fail(0, 1, 0, 0, TimeoutError())
        assert result.error == "TimeoutError"

    def test_immutable(self):
        result = ImportResult.ok(1, 1)
        with pytest.raises(Exception):
            result.created = 2


class TestImportConfig:
    def test_defaults(self):
        config = ImportConfig()
        assert config.worker_threshold_bytes == 1 * MiB
        assert config.preview_rows == 1000
        assert config.batch_size == 500
        assert config.max_concurrency == 3
        assert config.progress_every == 1000

    def test_use_worker(self):
        config = ImportConfig()
        assert config.use_worker(MiB - 1) is False
        assert config.use_worker(MiB) is True

    @pytest.mark.parametrize("field", ["preview_rows", "progress_every", "batch_size", "max_concurrency"])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValueError):
            ImportConfig(**{field: 0})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ENTRY_IMPORT_BATCH_SIZE", "100")
        monkeypatch.setenv("ENTRY_IMPORT_DELIMITER", ";")
        monkeypatch.delenv("ENTRY_IMPORT_MAX_CONCURRENCY", raising=False)

        config = ImportConfig.from_env()
        assert config.batch_size == 100
        assert config.delimiter == ";"
        assert config.max_concurrency == 3

    def test_from_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("ENTRY_IMPORT_BATCH_SIZE", "100")
        config = ImportConfig.from_env(batch_size=20, max_concurrency=None)
        assert config.batch_size == 20
        assert config.max_concurrency == 3

    def test_from_env_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("ENTRY_IMPORT_BATCH_SIZE", "lots")
        with pytest.raises(ValueError, match="ENTRY_IMPORT_BATCH_SIZE"):
            ImportConfig.from_env()
