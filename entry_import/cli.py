"""Command line interface for entry_import package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    ImportProgressDisplay,
    ParseProgressDisplay,
    console,
    render_configuration_summary,
    render_mapping,
    render_validation,
)
from .errors import ApiError, EntryImportError, NetworkError
from .ingestion import IngestionEngine
from .models import EntryField, ImportConfig, ImportStatus
from .services import BatchLedger, DatasetsService, HTTPAPIClient
from .wizard import ImportWizard, WizardState, WizardStep

API_URL_ENV = "ENTRY_IMPORT_API_URL"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        name = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
        level = getattr(logging, name, logging.INFO)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _parse_mapping_overrides(values: Optional[Sequence[str]]) -> List[Tuple[str, str]]:
    """Parse repeated --map HEADER=FIELD options, keeping their order."""
    overrides: List[Tuple[str, str]] = []
    for raw in values or ():
        if "=" not in raw:
            raise CLIError(f"invalid --map {raw!r}: expected HEADER=FIELD")
        header, field = raw.rsplit("=", 1)
        header = _strip_optional_quotes(header.strip())
        field = field.strip().lower()
        if not header:
            raise CLIError(f"invalid --map {raw!r}: empty header")
        try:
            EntryField(field)
        except ValueError:
            choices = ", ".join(f.value for f in EntryField)
            raise CLIError(f"invalid --map {raw!r}: field must be one of {choices}") from None
        overrides.append((header, field))
    return overrides


def _exit_code(state: WizardState) -> int:
    if state.step == WizardStep.COMPLETE:
        return EXIT_OK
    if state.result is not None and state.result.status == ImportStatus.PARTIAL:
        return EXIT_PARTIAL
    return EXIT_ERROR


async def _prepare(
    wizard: ImportWizard,
    engine: IngestionEngine,
    source: Path,
    overrides: Sequence[Tuple[str, str]],
) -> WizardState:
    """Parse, map and validate. Returns the state at the validation step."""
    parse_display = ParseProgressDisplay(source.name)
    engine.on_progress(parse_display.update)

    state = await wizard.load_file(source)
    if state.error or state.table is None:
        parse_display.fail(state.error)
        raise CLIError(state.error or f"could not parse {source}")
    parse_display.complete(state.table)

    for header, field in overrides:
        if header not in state.mapping:
            raise CLIError(f"--map references unknown column {header!r}")
        state = await wizard.edit_mapping(header, field)
    render_mapping(state.mapping, state.table)

    state = await wizard.validate()
    if state.step != WizardStep.VALIDATION:
        raise CLIError(
            "no column is mapped to external_id; use --map HEADER=external_id"
        )
    render_validation(state.valid_entries, state.invalid_count)
    return state


async def _import(wizard: ImportWizard) -> WizardState:
    display: Optional[ImportProgressDisplay] = None

    def on_change(state: WizardState):
        nonlocal display
        job = wizard.job
        if state.step != WizardStep.IMPORTING or job is None or display is not None:
            return
        display = ImportProgressDisplay(len(state.valid_entries), job.total_batches)
        job.on_start(display.start)
        job.on_progress(display.on_progress)
        job.on_batch_complete(display.on_batch_complete)
        job.on_batch_skipped(display.on_batch_skipped)
        job.on_batch_fail(display.on_batch_fail)
        job.on_finish(display.on_finish)

    wizard.on_change(on_change)
    return await wizard.start_import()


async def _run_import(
    source: Path,
    dataset_id: str,
    api_url: Optional[str],
    config: ImportConfig,
    overrides: Sequence[Tuple[str, str]],
    resume: bool,
    dry_run: bool,
) -> int:
    engine = IngestionEngine(config)

    if dry_run:
        wizard = ImportWizard(engine, _DryRunUploader(), dataset_id, config)
        await _prepare(wizard, engine, source, overrides)
        console.print("[dim]Dry run: nothing was sent.[/dim]")
        return EXIT_OK

    if not api_url:
        raise CLIError(f"{API_URL_ENV} environment variable is not set")

    ledger: Optional[BatchLedger] = None
    if resume:
        ledger = BatchLedger()
        await ledger.load()

    async with HTTPAPIClient(api_url) as client:
        service = DatasetsService(client)
        try:
            await service.get_dataset(dataset_id)
        except ApiError as exc:
            if exc.is_not_found():
                raise CLIError(f"dataset not found: {dataset_id}") from exc
            raise CLIError(str(exc)) from exc
        except NetworkError as exc:
            raise CLIError(f"cannot reach {api_url}: {exc}") from exc

        wizard = ImportWizard(engine, service, dataset_id, config, ledger)
        state = await _prepare(wizard, engine, source, overrides)
        if not state.can_import:
            raise CLIError("no valid entries to import")

        state = await _import(wizard)
        return _exit_code(state)


class _DryRunUploader:
    """Uploader for --dry-run; the wizard never reaches the import step."""

    async def create_entries_bulk(self, dataset_id, entries) -> int:
        raise CLIError("dry run does not upload")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entry-import",
        description="Import entries from a CSV file into a dataset.",
    )
    parser.add_argument("source", nargs="?", type=Path, help="CSV file with a header row")
    parser.add_argument("-d", "--dataset", default=None, help="Target dataset id")
    parser.add_argument(
        "--api-url",
        default=None,
        help=f"Backend API URL (default from {API_URL_ENV})",
    )
    parser.add_argument(
        "-m",
        "--map",
        action="append",
        default=None,
        metavar="HEADER=FIELD",
        help="Override the detected field for a column (repeatable). "
        "FIELD is one of external_id, display_name, external_url, skip",
    )
    parser.add_argument("-b", "--batch-size", type=int, default=None, help="Entries per request (default 500)")
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=None,
        help="Requests in flight per wave (default 3)",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Record committed batches and skip those already recorded for this dataset",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse, map and validate without uploading",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"entry-import {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return EXIT_ERROR

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.source is None:
        parser.print_help()
        return EXIT_OK

    source = Path(args.source).expanduser()
    if not source.is_file():
        print(f"ERROR: source is not a file: {source}", file=sys.stderr)
        return EXIT_ERROR
    if not args.dataset:
        print("ERROR: --dataset is required", file=sys.stderr)
        return EXIT_ERROR

    try:
        overrides = _parse_mapping_overrides(args.map)
        config = ImportConfig.from_env(
            batch_size=args.batch_size,
            max_concurrency=args.concurrency,
        )
    except (CLIError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR

    api_url = args.api_url or os.getenv(API_URL_ENV)
    render_configuration_summary(
        {
            "Source": str(source),
            "Dataset": args.dataset,
            "API": api_url or "(missing)",
            "Batch Size": config.batch_size,
            "Concurrency": config.max_concurrency,
            "Mapping Overrides": ", ".join(f"{h}={f}" for h, f in overrides) or "-",
            "Resume": "yes" if args.resume else "no",
            "Dry Run": "yes" if args.dry_run else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_import(
                source=source,
                dataset_id=args.dataset,
                api_url=api_url,
                config=config,
                overrides=overrides,
                resume=args.resume,
                dry_run=args.dry_run,
            )
        )
    except (CLIError, EntryImportError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return EXIT_CANCELLED


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
