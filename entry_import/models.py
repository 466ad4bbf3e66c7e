"""
Models for entry_import module.

Immutable dataclasses shared by the parser, transformer, orchestrator and wizard.
"""
import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from blake3 import blake3


MiB = 1024 * 1024


class EntryField(str, Enum):
    """Target field a source column can be mapped to."""
    EXTERNAL_ID = "external_id"
    DISPLAY_NAME = "display_name"
    EXTERNAL_URL = "external_url"
    SKIP = "skip"


@dataclass(frozen=True)
class SourceRow:
    """One parsed row as ordered (header, value) pairs.

    Cells missing from a short row are absent rather than empty.
    """
    cells: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRow":
        return cls(tuple(data.items()))

    def get(self, header: str, default: Any = None) -> Any:
        for key, value in self.cells:
            if key == header:
                return value
        return default

    def __contains__(self, header: object) -> bool:
        return any(key == header for key, _ in self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def keys(self) -> List[str]:
        return [key for key, _ in self.cells]

    def items(self) -> List[Tuple[str, Any]]:
        return list(self.cells)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.cells)


@dataclass(frozen=True)
class ParsedTable:
    """Header row, a capped preview of rows and the total row count."""
    headers: Tuple[str, ...]
    rows: Tuple[SourceRow, ...]
    total_rows: int

    def __post_init__(self):
        if self.total_rows < len(self.rows):
            raise ValueError(
                f"total_rows ({self.total_rows}) cannot be smaller than preview ({len(self.rows)})"
            )

    @property
    def is_truncated(self) -> bool:
        return self.total_rows > len(self.rows)


@dataclass(frozen=True)
class EntryRecord:
    """Normalized entry derived from one source row."""
    external_id: str
    display_name: Optional[str] = None
    external_url: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape expected by the bulk endpoint."""
        return {
            "external_id": self.external_id,
            "display_name": self.display_name,
            "external_url": self.external_url,
            "raw_data": dict(self.raw_data) if self.raw_data is not None else None,
        }


@dataclass(frozen=True)
class ImportBatch:
    """Contiguous slice of entries sent in one request."""
    index: int
    entries: Tuple[EntryRecord, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def to_payload(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    @property
    def digest(self) -> str:
        """BLAKE3 of the canonical JSON of the batch entries."""
        canonical = json.dumps(
            self.to_payload(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )
        return blake3(canonical.encode("utf-8")).hexdigest()


class ImportStatus(Enum):
    """Terminal outcome of an import job."""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"  # Failed after some batches were committed


@dataclass(frozen=True)
class ImportResult:
    """Immutable result of an import job."""
    status: ImportStatus
    created: int = 0
    total_batches: int = 0
    committed_batches: int = 0
    skipped_batches: int = 0
    failed_batch: Optional[int] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @property
    def success(self) -> bool:
        return self.status == ImportStatus.SUCCESS

    @classmethod
    def ok(cls, created: int, total_batches: int, skipped_batches: int = 0):
        return cls(
            status=ImportStatus.SUCCESS,
            created=created,
            total_batches=total_batches,
            committed_batches=total_batches - skipped_batches,
            skipped_batches=skipped_batches,
        )

    @classmethod
    def fail(
        cls,
        created: int,
        total_batches: int,
        committed_batches: int,
        failed_batch: Optional[int],
        exception: BaseException,
        skipped_batches: int = 0,
    ):
        # Any committed or previously skipped batch means the dataset already holds part of the file
        partial = committed_batches > 0 or skipped_batches > 0
        return cls(
            status=ImportStatus.PARTIAL if partial else ImportStatus.FAILED,
            created=created,
            total_batches=total_batches,
            committed_batches=committed_batches,
            skipped_batches=skipped_batches,
            failed_batch=failed_batch,
            error=str(exception) or type(exception).__name__,
            exception=exception,
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class ImportConfig:
    """Immutable configuration for parse and import operations."""
    worker_threshold_bytes: int = 1 * MiB  # Files at or above this parse in a worker process
    preview_rows: int = 1000
    progress_every: int = 1000  # Rows between parse progress reports
    batch_size: int = 500
    max_concurrency: int = 3  # Batches in flight per wave
    encoding: str = "utf-8"
    delimiter: str = ","

    ENV_PREFIX = "ENTRY_IMPORT_"

    def __post_init__(self):
        for name in ("preview_rows", "progress_every", "batch_size", "max_concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if len(self.delimiter) != 1:
            raise ValueError("delimiter must be a single character")

    def use_worker(self, file_size: int) -> bool:
        """Whether a file of this size should be parsed in the background."""
        return file_size >= self.worker_threshold_bytes

    @classmethod
    def from_env(cls, **overrides) -> "ImportConfig":
        """Build config from ENTRY_IMPORT_* variables; keyword overrides win."""
        prefix = cls.ENV_PREFIX
        values = {
            "worker_threshold_bytes": _env_int(f"{prefix}WORKER_THRESHOLD_BYTES", 1 * MiB),
            "preview_rows": _env_int(f"{prefix}PREVIEW_ROWS", 1000),
            "progress_every": _env_int(f"{prefix}PROGRESS_EVERY", 1000),
            "batch_size": _env_int(f"{prefix}BATCH_SIZE", 500),
            "max_concurrency": _env_int(f"{prefix}MAX_CONCURRENCY", 3),
            "encoding": os.getenv(f"{prefix}ENCODING") or "utf-8",
            "delimiter": os.getenv(f"{prefix}DELIMITER") or ",",
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
