"""Tests for entry_import CLI helpers."""
import logging
import os

import httpx
import pytest

from entry_import import cli
from entry_import.cli import (
    CLIError,
    _load_env_file,
    _parse_mapping_overrides,
    _setup_logging,
    run_cli,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    # setenv first so teardown also removes values written by _load_env_file
    for name in ("ENTRY_IMPORT_API_URL", "ENTRY_IMPORT_BATCH_SIZE", "LOG_LEVEL"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    yield
    logging.disable(logging.NOTSET)


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "entries.csv"
    path.write_text("id,name,color\na1,Item 1,red\n,Invalid,blue\na2,Item 2,green\n", encoding="utf-8")
    return path


def fake_backend(monkeypatch, fail_bulk=False):
    """Route HTTPAPIClient through an in-memory transport."""
    requests = []

    def handler(request):
        requests.append(request)
        if request.method == "GET":
            if request.url.path == "/datasets/missing":
                return httpx.Response(404, json={"detail": "Dataset not found"})
            return httpx.Response(200, json={"id": "ds-1"})
        if fail_bulk:
            return httpx.Response(500, json={"detail": "database unavailable"})
        return httpx.Response(201, json={"created": 2})

    original = cli.HTTPAPIClient

    def build(base_url, **kwargs):
        return original(base_url, transport=httpx.MockTransport(handler), max_retries=1, **kwargs)

    monkeypatch.setattr(cli, "HTTPAPIClient", build)
    return requests


def test_load_env_file(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "# comment",
                "ENTRY_IMPORT_API_URL=http://localhost:8000",
                "export ENTRY_IMPORT_BATCH_SIZE='250'",
            ]
        ),
        encoding="utf-8",
    )
    _load_env_file(env_path)

    assert os.environ["ENTRY_IMPORT_API_URL"] == "http://localhost:8000"
    assert os.environ["ENTRY_IMPORT_BATCH_SIZE"] == "250"


def test_load_env_file_does_not_override(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("ENTRY_IMPORT_API_URL=http://from-file\n", encoding="utf-8")
    monkeypatch.setenv("ENTRY_IMPORT_API_URL", "http://from-shell")

    _load_env_file(env_path)

    assert os.environ["ENTRY_IMPORT_API_URL"] == "http://from-shell"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError):
        _load_env_file(tmp_path / "nope.env")


def test_parse_mapping_overrides():
    assert _parse_mapping_overrides(None) == []
    assert _parse_mapping_overrides(["SKU=external_id", "a=b=Display_Name"]) == [
        ("SKU", "external_id"),
        ("a=b", "display_name"),
    ]


@pytest.mark.parametrize("raw", ["SKU", "=external_id", "SKU=price"])
def test_parse_mapping_overrides_rejects(raw):
    with pytest.raises(CLIError):
        _parse_mapping_overrides([raw])


def test_setup_logging_defaults_to_silent():
    mode = _setup_logging(debug=False, silent=False, log_level=None)
    assert mode == "silent"
    assert logging.getLogger().isEnabledFor(logging.ERROR) is False


def test_setup_logging_debug_mode():
    mode = _setup_logging(debug=True, silent=False, log_level=None)
    assert mode == "DEBUG"
    assert logging.getLogger().isEnabledFor(logging.DEBUG) is True


def test_setup_logging_explicit_level():
    mode = _setup_logging(debug=False, silent=False, log_level="warning")
    assert mode == "WARNING"
    assert logging.getLogger().isEnabledFor(logging.INFO) is False


class TestRunCli:
    def test_no_source_prints_help(self, capsys):
        assert run_cli([]) == 0
        assert "entry-import" in capsys.readouterr().out

    def test_missing_source(self, tmp_path):
        assert run_cli([str(tmp_path / "missing.csv"), "--dataset", "ds-1"]) == 1

    def test_dataset_required(self, csv_file):
        assert run_cli([str(csv_file)]) == 1

    def test_missing_api_url(self, csv_file):
        assert run_cli([str(csv_file), "--dataset", "ds-1"]) == 1

    def test_dry_run_sends_nothing(self, csv_file, monkeypatch):
        requests = fake_backend(monkeypatch)
        assert run_cli([str(csv_file), "--dataset", "ds-1", "--dry-run"]) == 0
        assert requests == []

    def test_dry_run_without_external_id(self, tmp_path):
        path = tmp_path / "colors.csv"
        path.write_text("color\nred\n", encoding="utf-8")
        assert run_cli([str(path), "--dataset", "ds-1", "--dry-run"]) == 1

    def test_map_override(self, tmp_path):
        path = tmp_path / "colors.csv"
        path.write_text("color\nred\n", encoding="utf-8")
        assert run_cli([str(path), "--dataset", "ds-1", "--dry-run", "--map", "color=external_id"]) == 0

    def test_map_unknown_column(self, csv_file):
        assert run_cli([str(csv_file), "--dataset", "ds-1", "--dry-run", "--map", "price=skip"]) == 1

    def test_import_success(self, csv_file, monkeypatch):
        requests = fake_backend(monkeypatch)
        monkeypatch.setenv("ENTRY_IMPORT_API_URL", "http://api.test")

        assert run_cli([str(csv_file), "--dataset", "ds-1"]) == 0

        posts = [r for r in requests if r.method == "POST"]
        assert len(posts) == 1
        assert posts[0].url.path == "/datasets/ds-1/entries/bulk"

    def test_import_failure(self, csv_file, monkeypatch):
        fake_backend(monkeypatch, fail_bulk=True)
        assert run_cli([str(csv_file), "--dataset", "ds-1", "--api-url", "http://api.test"]) == 1

    def test_partial_import(self, csv_file, monkeypatch):
        calls = []

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"id": "ds-1"})
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(201, json={"created": 1})
            return httpx.Response(422, json={"detail": "duplicate external_id"})

        original = cli.HTTPAPIClient
        monkeypatch.setattr(
            cli,
            "HTTPAPIClient",
            lambda base_url, **kw: original(base_url, transport=httpx.MockTransport(handler), **kw),
        )

        code = run_cli(
            [str(csv_file), "--dataset", "ds-1", "--api-url", "http://api.test", "--batch-size", "1", "--concurrency", "1"]
        )

        assert code == 2
        assert len(calls) == 2

    def test_unknown_dataset(self, csv_file, monkeypatch):
        fake_backend(monkeypatch)
        assert run_cli([str(csv_file), "--dataset", "missing", "--api-url", "http://api.test"]) == 1

    def test_invalid_batch_size(self, csv_file):
        assert run_cli([str(csv_file), "--dataset", "ds-1", "--dry-run", "--batch-size", "0"]) == 1

    def test_resume_uses_ledger(self, csv_file, monkeypatch, tmp_path):
        monkeypatch.setattr("entry_import.services.batch_ledger.DEFAULT_LEDGER_DIR", tmp_path / "ledger")
        requests = fake_backend(monkeypatch)
        args = [str(csv_file), "--dataset", "ds-1", "--api-url", "http://api.test", "--resume"]

        assert run_cli(args) == 0
        assert run_cli(args) == 0

        posts = [r for r in requests if r.method == "POST"]
        assert len(posts) == 1
