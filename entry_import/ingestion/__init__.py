"""Ingestion package - parses uploaded files into tables."""
from .engine import IngestionEngine
from .reader import TableBuilder, open_csv, unique_headers
from .runners import (
    InlineParseRunner,
    ProcessParseRunner,
    select_runner,
)

__all__ = [
    "IngestionEngine",
    "InlineParseRunner",
    "ProcessParseRunner",
    "TableBuilder",
    "open_csv",
    "select_runner",
    "unique_headers",
]
