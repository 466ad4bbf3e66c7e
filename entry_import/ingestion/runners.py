"""
Parse runners - the background task capability behind the ingestion engine.

InlineParseRunner parses in the caller's event loop; ProcessParseRunner hands
the file to a separate worker process that posts progress/complete/error
messages back over a queue. select_runner() picks one by file size.
"""
import asyncio
import inspect
import logging
import multiprocessing
import queue
from pathlib import Path
from typing import Any, Callable, List, Optional

from ..errors import ParseCancelled, ParseError
from ..models import ImportConfig, ParsedTable, SourceRow
from ..protocols import IParseHandle, IParseRunner
from .reader import TableBuilder, open_csv

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Any]


async def _notify(callback: Optional[ProgressCallback], rows: int) -> None:
    if callback is None:
        return
    result = callback(rows)
    if inspect.isawaitable(result):
        await result


def parse_worker(
    path: str,
    encoding: str,
    delimiter: str,
    progress_every: int,
    out: "multiprocessing.Queue",
) -> None:
    """Worker process entry point. Posts ('progress', n), ('complete', headers, rows) or ('error', msg)."""
    try:
        with open_csv(Path(path), encoding, delimiter) as (headers, rows):
            builder = TableBuilder(headers, preview_rows=1, progress_every=progress_every)
            for row in rows:
                if builder.add(row):
                    out.put(("progress", builder.total_rows))
        out.put(("complete", list(builder.headers), builder.all_rows))
    except ParseError as e:
        out.put(("error", str(e)))
    except Exception as e:
        out.put(("error", f"Parser worker failed: {type(e).__name__}: {e}"))


class InlineParseHandle(IParseHandle):
    """Parses synchronously in the interactive context."""

    def __init__(self, path: Path, config: ImportConfig, on_progress: Optional[ProgressCallback]):
        self._path = Path(path)
        self._config = config
        self._on_progress = on_progress
        self._terminated = False
        self._rows: List[SourceRow] = []

    async def wait(self) -> ParsedTable:
        config = self._config
        with open_csv(self._path, config.encoding, config.delimiter) as (headers, rows):
            builder = TableBuilder(headers, config.preview_rows, config.progress_every)
            for row in rows:
                if self._terminated:
                    raise ParseCancelled(f"Parse of {self._path.name} was terminated")
                if builder.add(row):
                    await _notify(self._on_progress, builder.total_rows)

        if self._terminated:
            raise ParseCancelled(f"Parse of {self._path.name} was terminated")
        self._rows = builder.all_rows
        return builder.build()

    def terminate(self) -> None:
        self._terminated = True
        self._on_progress = None

    def all_rows(self) -> List[SourceRow]:
        return self._rows


class ProcessParseHandle(IParseHandle):
    """Parses in a spawned worker process and relays its messages."""

    def __init__(
        self,
        path: Path,
        config: ImportConfig,
        on_progress: Optional[ProgressCallback],
        poll_interval: float = 0.1,
    ):
        self._path = Path(path)
        self._config = config
        self._on_progress = on_progress
        self._poll_interval = poll_interval
        self._terminated = False
        self._waiting = False
        self._closed = False
        self._rows: List[SourceRow] = []

        ctx = multiprocessing.get_context("spawn")
        self._queue = ctx.Queue()
        self._process = ctx.Process(
            target=parse_worker,
            args=(str(self._path), config.encoding, config.delimiter, config.progress_every, self._queue),
            name=f"entry-import-parse:{self._path.name}",
            daemon=True,
        )
        self._process.start()
        logger.debug(f"Started parser worker pid={self._process.pid} for {self._path.name}")

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid

    def is_alive(self) -> bool:
        return self._process.is_alive()

    async def _next_message(self) -> Optional[tuple]:
        try:
            return await asyncio.to_thread(self._queue.get, True, self._poll_interval)
        except queue.Empty:
            pass

        if self._terminated or self._process.is_alive():
            return None

        # Worker exited; its last message may still be in flight
        try:
            return await asyncio.to_thread(self._queue.get, True, self._poll_interval)
        except queue.Empty:
            raise ParseError(
                f"Parser worker exited unexpectedly (exit code {self._process.exitcode})",
                str(self._path),
            )

    async def wait(self) -> ParsedTable:
        self._waiting = True
        try:
            while True:
                if self._terminated:
                    raise ParseCancelled(f"Parse of {self._path.name} was terminated")

                message = await self._next_message()
                if message is None or self._terminated:
                    continue

                kind = message[0]
                if kind == "progress":
                    await _notify(self._on_progress, message[1])
                elif kind == "complete":
                    _, headers, rows = message
                    self._rows = rows
                    return ParsedTable(
                        headers=tuple(headers),
                        rows=tuple(rows[: self._config.preview_rows]),
                        total_rows=len(rows),
                    )
                elif kind == "error":
                    raise ParseError(message[1], str(self._path))
                else:
                    raise ParseError(f"Unexpected worker message: {kind!r}", str(self._path))
        finally:
            self._waiting = False
            if self._process.is_alive():
                self._process.terminate()
            await asyncio.to_thread(self._process.join, 5)
            if not self._closed:
                self._closed = True
                self._close_queue()

    def terminate(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._on_progress = None
        if self._process.is_alive():
            logger.info(f"Terminating parser worker pid={self._process.pid}")
            self._process.terminate()
        if not self._waiting and not self._closed:
            # Only poll here; wait() joins the worker off the event loop
            self._closed = True
            self._process.join(0)
            self._close_queue()

    def _close_queue(self) -> None:
        self._queue.close()
        self._queue.cancel_join_thread()

    def all_rows(self) -> List[SourceRow]:
        return self._rows


class InlineParseRunner(IParseRunner):
    """Runs parses in the interactive context."""

    background = False

    def __init__(self, config: Optional[ImportConfig] = None):
        self._config = config or ImportConfig()

    def submit(self, path: Path, on_progress: Optional[ProgressCallback] = None) -> InlineParseHandle:
        return InlineParseHandle(path, self._config, on_progress)


class ProcessParseRunner(IParseRunner):
    """Runs each parse in its own worker process."""

    background = True

    def __init__(self, config: Optional[ImportConfig] = None, poll_interval: float = 0.1):
        self._config = config or ImportConfig()
        self._poll_interval = poll_interval

    def submit(self, path: Path, on_progress: Optional[ProgressCallback] = None) -> ProcessParseHandle:
        return ProcessParseHandle(path, self._config, on_progress, self._poll_interval)


def select_runner(
    file_size: int,
    config: ImportConfig,
    inline: Optional[IParseRunner] = None,
    background: Optional[IParseRunner] = None,
) -> IParseRunner:
    """Size-keyed strategy: small files inline, large files in a worker process."""
    if config.use_worker(file_size):
        return background or ProcessParseRunner(config)
    return inline or InlineParseRunner(config)
