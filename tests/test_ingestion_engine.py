"""Tests for the ingestion engine and its parse runners."""
import pytest
from unittest.mock import MagicMock

from entry_import.errors import ParseCancelled, ParseError
from entry_import.ingestion import (
    IngestionEngine,
    InlineParseRunner,
    ProcessParseRunner,
    select_runner,
)
from entry_import.models import ImportConfig, MiB


def write_csv(path, rows, headers=("id", "name")):
    lines = [",".join(headers)]
    lines.extend(",".join(row) for row in rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def numbered_rows(count, prefix="e"):
    return [(f"{prefix}{i}", f"Item {i}") for i in range(count)]


class TestSelectRunner:
    def test_size_threshold(self):
        config = ImportConfig()
        assert isinstance(select_runner(MiB - 1, config), InlineParseRunner)
        assert isinstance(select_runner(MiB, config), ProcessParseRunner)

    def test_engine_uses_injected_runners(self):
        inline, background = MagicMock(), MagicMock()
        engine = IngestionEngine(
            ImportConfig(worker_threshold_bytes=10),
            inline_runner=inline,
            background_runner=background,
        )
        assert engine.select_runner(9) is inline
        assert engine.select_runner(10) is background


class TestInlineParse:
    @pytest.mark.asyncio
    async def test_parse_small_file(self, tmp_path):
        path = write_csv(tmp_path / "small.csv", [("a1", "Item 1"), ("a2", "Item 2")])
        engine = IngestionEngine(ImportConfig())

        table = await engine.parse(path)

        assert table.headers == ("id", "name")
        assert table.total_rows == 2
        assert [row.get("id") for row in table.rows] == ["a1", "a2"]
        assert engine.table is table
        assert engine.is_parsing is False
        assert engine.progress.percent == 100
        assert engine.progress.background is False

    @pytest.mark.asyncio
    async def test_preview_cap_keeps_all_rows(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(25))
        engine = IngestionEngine(ImportConfig(preview_rows=10))

        table = await engine.parse(path)

        assert len(table.rows) == 10
        assert table.total_rows == 25
        assert len(engine.get_all_rows()) == 25
        assert engine.get_all_rows()[-1].get("id") == "e24"

    @pytest.mark.asyncio
    async def test_progress_reports(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(5))
        engine = IngestionEngine(ImportConfig(progress_every=2))
        reports = []
        engine.on_progress(lambda p: reports.append((p.rows_processed, p.percent)))

        await engine.parse(path)

        assert reports == [(2, 5), (4, 10), (5, 100)]

    @pytest.mark.asyncio
    async def test_progress_capped_before_completion(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(40))
        engine = IngestionEngine(ImportConfig(progress_every=1))
        percents = []
        engine.on_progress(lambda p: percents.append(p.percent))

        await engine.parse(path)

        assert max(percents[:-1]) == 90
        assert percents[-1] == 100
        assert percents == sorted(percents)

    @pytest.mark.asyncio
    async def test_complete_event(self, tmp_path):
        path = write_csv(tmp_path / "small.csv", [("a1", "x")])
        engine = IngestionEngine()
        completed = []
        engine.on_complete(completed.append)

        table = await engine.parse(path)

        assert completed == [table]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        engine = IngestionEngine()
        errors = []
        engine.on_error(errors.append)

        with pytest.raises(ParseError):
            await engine.parse(tmp_path / "missing.csv")

        assert len(errors) == 1
        assert engine.table is None
        assert engine.error is not None

    @pytest.mark.asyncio
    async def test_malformed_file_yields_no_table(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text('id,name\na1,ok\na2,"unterminated\n', encoding="utf-8")
        engine = IngestionEngine()

        with pytest.raises(ParseError):
            await engine.parse(path)

        assert engine.table is None
        assert engine.get_all_rows() == []

    @pytest.mark.asyncio
    async def test_reset_from_progress_cancels(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(50))
        engine = IngestionEngine(ImportConfig(progress_every=10))
        reports = []
        completed = []

        def on_progress(progress):
            reports.append(progress.rows_processed)
            engine.reset()

        engine.on_progress(on_progress)
        engine.on_complete(completed.append)

        with pytest.raises(ParseCancelled):
            await engine.parse(path)

        assert reports == [10]
        assert completed == []
        assert engine.table is None


class TestBackgroundParse:
    @pytest.mark.asyncio
    async def test_worker_matches_inline(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(120))
        inline_engine = IngestionEngine(ImportConfig(preview_rows=50))
        worker_engine = IngestionEngine(ImportConfig(preview_rows=50, worker_threshold_bytes=0))

        inline_table = await inline_engine.parse(path)
        worker_table = await worker_engine.parse(path)

        assert worker_engine.progress.background is True
        assert worker_table == inline_table
        assert worker_engine.get_all_rows() == inline_engine.get_all_rows()

    @pytest.mark.asyncio
    async def test_worker_reports_progress(self, tmp_path):
        path = write_csv(tmp_path / "rows.csv", numbered_rows(30))
        engine = IngestionEngine(ImportConfig(worker_threshold_bytes=0, progress_every=10))
        rows_seen = []
        engine.on_progress(lambda p: rows_seen.append(p.rows_processed))

        await engine.parse(path)

        assert rows_seen == [10, 20, 30, 30]

    @pytest.mark.asyncio
    async def test_worker_error(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_bytes(b"id,name\na1,\xff\xfe\n")
        engine = IngestionEngine(ImportConfig(worker_threshold_bytes=0))

        with pytest.raises(ParseError):
            await engine.parse(path)

        assert engine.table is None

    @pytest.mark.asyncio
    async def test_reset_terminates_worker(self, tmp_path):
        path = write_csv(tmp_path / "big.csv", numbered_rows(20000))
        engine = IngestionEngine(ImportConfig(worker_threshold_bytes=0, progress_every=100))
        handles = []
        late = []
        completed = []

        def on_progress(progress):
            if handles:
                late.append(progress)
                return
            handles.append(engine._handle)
            engine.reset()

        engine.on_progress(on_progress)
        engine.on_complete(completed.append)

        with pytest.raises(ParseCancelled):
            await engine.parse(path)

        handle = handles[0]
        assert handle.is_alive() is False
        assert late == []
        assert completed == []
        assert engine.is_parsing is False
        assert engine.get_all_rows() == []

    @pytest.mark.asyncio
    async def test_no_residue_after_reset(self, tmp_path):
        first = write_csv(tmp_path / "first.csv", numbered_rows(30, prefix="old"), headers=("id", "name"))
        second = tmp_path / "second.csv"
        second.write_text("sku,title\nnew1,New\n", encoding="utf-8")
        engine = IngestionEngine(ImportConfig(worker_threshold_bytes=0))

        await engine.parse(first)
        engine.reset()
        assert engine.table is None
        assert engine.progress.percent == 0

        table = await engine.parse(second)

        assert table.headers == ("sku", "title")
        assert table.total_rows == 1
        assert [row.get("sku") for row in engine.get_all_rows()] == ["new1"]

    @pytest.mark.asyncio
    async def test_terminate_before_wait_reaps_worker(self, tmp_path):
        path = write_csv(tmp_path / "big.csv", numbered_rows(20000))
        handle = ProcessParseRunner(ImportConfig()).submit(path)

        handle.terminate()
        with pytest.raises(ParseCancelled):
            await handle.wait()

        assert handle.is_alive() is False
