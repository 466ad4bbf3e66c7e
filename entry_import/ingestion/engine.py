"""Ingestion engine - turns an uploaded file into a ParsedTable."""
import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..errors import ParseCancelled, ParseError
from ..models import ImportConfig, ParsedTable, SourceRow
from ..protocols import IParseHandle, IParseRunner
from ..utils.events import EventEmitter, ParseProgress
from .runners import InlineParseRunner, ProcessParseRunner, select_runner

logger = logging.getLogger(__name__)

PROGRESS_STEP = 5
PROGRESS_CEILING = 90


class IngestionEngine:
    """
    Parses delimited files, choosing inline or worker-process parsing by size.

    Owns the full row buffer of the last successful parse; the table it
    returns only carries the preview. reset() terminates a live worker and
    bumps the generation so late results from it are discarded.

    Usage:
        engine = IngestionEngine(config)
        engine.on_progress(lambda p: print(f"{p.percent}%"))
        table = await engine.parse(path)
        rows = engine.get_all_rows()
    """

    def __init__(
        self,
        config: Optional[ImportConfig] = None,
        inline_runner: Optional[IParseRunner] = None,
        background_runner: Optional[IParseRunner] = None,
    ):
        self._config = config or ImportConfig()
        self._inline_runner = inline_runner or InlineParseRunner(self._config)
        self._background_runner = background_runner or ProcessParseRunner(self._config)
        self._events = EventEmitter()
        self._generation = 0
        self._handle: Optional[IParseHandle] = None
        self._table: Optional[ParsedTable] = None
        self._all_rows: List[SourceRow] = []
        self._progress = ParseProgress()
        self._error: Optional[str] = None

    # Event subscription methods
    def on_progress(self, callback: Callable[[ParseProgress], None]):
        """Called every progress report. Receives ParseProgress."""
        self._events.on("progress", callback)

    def on_complete(self, callback: Callable[[ParsedTable], None]):
        """Called when a parse completes. Receives ParsedTable."""
        self._events.on("complete", callback)

    def on_error(self, callback: Callable[[ParseError], None]):
        """Called when a parse fails. Receives ParseError."""
        self._events.on("error", callback)

    # State properties
    @property
    def is_parsing(self) -> bool:
        return self._handle is not None

    @property
    def table(self) -> Optional[ParsedTable]:
        return self._table

    @property
    def progress(self) -> ParseProgress:
        return self._progress

    @property
    def error(self) -> Optional[str]:
        return self._error

    def get_all_rows(self) -> List[SourceRow]:
        """Every parsed row, regardless of the preview cap."""
        return self._all_rows

    def select_runner(self, file_size: int) -> IParseRunner:
        return select_runner(file_size, self._config, self._inline_runner, self._background_runner)

    async def parse(self, path: Union[str, Path]) -> ParsedTable:
        """
        Parse a file into a table.

        Raises:
            ParseError: file missing, unreadable or malformed
            ParseCancelled: reset() was called before the parse finished
        """
        path = Path(path)
        self._terminate_handle()
        self._generation += 1
        generation = self._generation
        self._clear()

        try:
            file_size = path.stat().st_size
        except OSError as e:
            error = ParseError(f"Cannot read {path.name}: {e}", str(path))
            await self._fail(error)
            raise error from e

        runner = self.select_runner(file_size)
        background = bool(getattr(runner, "background", False))
        self._progress = ParseProgress(background=background)
        logger.info(
            f"Parsing {path.name} ({file_size} bytes) "
            f"{'in worker process' if background else 'inline'}"
        )

        async def handle_progress(rows: int):
            if generation != self._generation:
                return
            percent = min(PROGRESS_CEILING, self._progress.percent + PROGRESS_STEP)
            self._progress = ParseProgress(rows_processed=rows, percent=percent, background=background)
            await self._events.emit("progress", self._progress)

        handle = runner.submit(path, on_progress=handle_progress)
        self._handle = handle
        try:
            table = await handle.wait()
        except ParseCancelled:
            logger.info(f"Parse of {path.name} cancelled")
            raise
        except ParseError as e:
            if generation == self._generation:
                await self._fail(e)
            raise
        finally:
            if self._handle is handle:
                self._handle = None

        if generation != self._generation:
            raise ParseCancelled(f"Parse of {path.name} was superseded")

        self._table = table
        self._all_rows = handle.all_rows()
        self._progress = ParseProgress(rows_processed=table.total_rows, percent=100, background=background)
        logger.info(f"Parsed {path.name}: {len(table.headers)} columns, {table.total_rows} rows")
        await self._events.emit("progress", self._progress)
        await self._events.emit("complete", table)
        return table

    def reset(self) -> None:
        """Terminate any live parse and drop all parsed data."""
        self._generation += 1
        self._terminate_handle()
        self._clear()

    def _terminate_handle(self) -> None:
        if self._handle is not None:
            self._handle.terminate()
            self._handle = None

    def _clear(self) -> None:
        self._table = None
        self._all_rows = []
        self._progress = ParseProgress()
        self._error = None

    async def _fail(self, error: ParseError) -> None:
        self._error = str(error)
        self._progress = ParseProgress()
        logger.error(f"Parse failed: {error}")
        await self._events.emit("error", error)
