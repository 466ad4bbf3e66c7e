"""
CSV reading shared by the inline and worker-process runners.

Rows become SourceRow values keyed by the (deduplicated) header row. Blank
lines are skipped, cells past the header width are dropped, and short rows
simply lack their trailing cells.
"""
import codecs
import csv
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from ..errors import ParseError
from ..models import ParsedTable, SourceRow

logger = logging.getLogger(__name__)


def unique_headers(raw: Sequence[str]) -> List[str]:
    """Suffix repeated header names with _1, _2, ... so every key is unique."""
    seen = set(raw)
    counts = {}
    headers = []
    for name in raw:
        if name not in counts:
            counts[name] = 0
            headers.append(name)
            continue
        counts[name] += 1
        candidate = f"{name}_{counts[name]}"
        while candidate in seen:
            counts[name] += 1
            candidate = f"{name}_{counts[name]}"
        seen.add(candidate)
        headers.append(candidate)
    return headers


def _python_encoding(encoding: str) -> str:
    # utf-8-sig strips a leading BOM and is otherwise identical to utf-8
    if codecs.lookup(encoding).name == "utf-8":
        return "utf-8-sig"
    return encoding


@contextmanager
def open_csv(
    path: Path,
    encoding: str = "utf-8",
    delimiter: str = ",",
) -> Iterator[Tuple[List[str], Iterator[SourceRow]]]:
    """
    Open a delimited file and yield (headers, rows).

    Any read, decode or quoting problem surfaces as ParseError, including
    those hit while iterating rows.
    """
    path = Path(path)
    try:
        handle = open(path, "r", encoding=_python_encoding(encoding), newline="")
    except (OSError, LookupError) as e:
        raise ParseError(f"Cannot open {path.name}: {e}", str(path)) from e

    with handle:
        reader = csv.reader(handle, delimiter=delimiter, strict=True)
        try:
            raw_headers = next((row for row in reader if row), None)
        except (csv.Error, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed header in {path.name}: {e}", str(path)) from e

        if raw_headers is None:
            raise ParseError(f"{path.name} has no header row", str(path))

        headers = unique_headers(raw_headers)
        if headers != list(raw_headers):
            logger.debug(f"Renamed duplicate headers in {path.name}: {raw_headers} -> {headers}")

        def rows() -> Iterator[SourceRow]:
            dropped = 0
            try:
                for values in reader:
                    if not values:
                        continue
                    if len(values) > len(headers):
                        dropped += 1
                    yield SourceRow(tuple(zip(headers, values)))
            except (csv.Error, UnicodeDecodeError) as e:
                raise ParseError(
                    f"Malformed CSV in {path.name} near line {reader.line_num}: {e}",
                    str(path),
                ) from e
            if dropped:
                logger.debug(f"{dropped} row(s) in {path.name} had more cells than headers")

        yield headers, rows()


class TableBuilder:
    """Accumulates rows, keeping a capped preview and the full row set."""

    def __init__(self, headers: Sequence[str], preview_rows: int, progress_every: int):
        self.headers = tuple(headers)
        self.all_rows: List[SourceRow] = []
        self._preview_rows = preview_rows
        self._progress_every = progress_every

    @property
    def total_rows(self) -> int:
        return len(self.all_rows)

    def add(self, row: SourceRow) -> bool:
        """Append a row; returns True when a progress report is due."""
        self.all_rows.append(row)
        return self.total_rows % self._progress_every == 0

    def build(self) -> ParsedTable:
        return ParsedTable(
            headers=self.headers,
            rows=tuple(self.all_rows[: self._preview_rows]),
            total_rows=self.total_rows,
        )
