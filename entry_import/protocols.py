"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces at the seams the wizard and orchestrator depend on.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .models import EntryRecord, ParsedTable, SourceRow


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for API operations."""

    async def post(self, endpoint: str, json: Dict) -> Any:
        """POST request to API."""
        ...

    async def get(self, endpoint: str) -> Any:
        """GET request to API."""
        ...


@runtime_checkable
class IEntryUploader(Protocol):
    """Remote collaborator that creates entries in a dataset."""

    async def create_entries_bulk(self, dataset_id: str, entries: Sequence[EntryRecord]) -> int:
        """Create entries and return how many the backend reports as created."""
        ...


class IParseHandle(ABC):
    """Handle to one submitted parse."""

    @abstractmethod
    async def wait(self) -> ParsedTable:
        """Suspend until the parse completes; raises ParseError or ParseCancelled."""
        pass

    @abstractmethod
    def terminate(self) -> None:
        """Stop the parse and release its resources. No callback fires afterwards."""
        pass

    @abstractmethod
    def all_rows(self) -> List[SourceRow]:
        """Full row set, available once wait() has returned."""
        pass


class IParseRunner(ABC):
    """Background task capability used by the ingestion engine."""

    @abstractmethod
    def submit(
        self,
        path: Path,
        on_progress: Optional[Callable[[int], Any]] = None,
    ) -> IParseHandle:
        """Start parsing a file; on_progress receives cumulative row counts."""
        pass
