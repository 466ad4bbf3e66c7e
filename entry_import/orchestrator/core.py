"""Batch upload orchestrator - coordinates bulk entry imports."""
import logging
from typing import Callable, List, Optional, Sequence

from ..models import EntryRecord, ImportBatch, ImportConfig, ImportResult
from ..protocols import IEntryUploader
from ..services.batch_ledger import BatchLedger
from .batching import partition
from .job import ImportJob

logger = logging.getLogger(__name__)


class BatchUploadOrchestrator:
    """
    Partitions entries into batches and sends them in bounded waves.

    At most `max_concurrency` requests are in flight at any instant. Nothing
    is rolled back on failure, and without a ledger nothing is deduplicated:
    re-running a failed import re-sends every batch.

    Usage:
        orchestrator = BatchUploadOrchestrator(datasets_service, batch_size=500, max_concurrency=3)
        result = await orchestrator.run(dataset_id, entries, on_progress=print)
    """

    def __init__(
        self,
        uploader: IEntryUploader,
        batch_size: int = 500,
        max_concurrency: int = 3,
        ledger: Optional[BatchLedger] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            uploader: Remote collaborator implementing create_entries_bulk
            batch_size: Maximum entries per request
            max_concurrency: Maximum requests per wave
            ledger: Optional ledger of committed batches for resuming
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._uploader = uploader
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency
        self._ledger = ledger

    @classmethod
    def from_config(
        cls,
        uploader: IEntryUploader,
        config: ImportConfig,
        ledger: Optional[BatchLedger] = None,
    ) -> "BatchUploadOrchestrator":
        return cls(uploader, config.batch_size, config.max_concurrency, ledger)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def partition(self, entries: Sequence[EntryRecord]) -> List[ImportBatch]:
        return partition(entries, self._batch_size)

    def create_job(self, dataset_id: str, entries: Sequence[EntryRecord]) -> ImportJob:
        """
        Build a job for entries without starting it.

        Subscribe to its events, then `await job.wait()`.
        """
        batches = self.partition(entries)
        logger.debug(
            f"Partitioned {len(entries)} entries into {len(batches)} batch(es) of <= {self._batch_size}"
        )
        return ImportJob(self._uploader, dataset_id, batches, self._max_concurrency, self._ledger)

    async def run(
        self,
        dataset_id: str,
        entries: Sequence[EntryRecord],
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> ImportResult:
        """Import entries and wait for the terminal result."""
        job = self.create_job(dataset_id, entries)
        if on_progress:
            job.on_progress(on_progress)
        return await job.wait()
