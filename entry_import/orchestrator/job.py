from enum import Enum
from typing import Callable, List, Optional
import asyncio
import logging

from ..models import ImportBatch, ImportResult
from ..protocols import IEntryUploader
from ..services.batch_ledger import BatchLedger
from ..utils.events import BatchProgress, EventEmitter
from .batching import progress_percent

logger = logging.getLogger(__name__)


class JobState(Enum):
    """State of an import job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportJob:
    """
    One bulk import: ordered batches sent in waves of bounded concurrency.

    Each wave sends up to `concurrency` batches at once and waits for all of
    them to settle. The first failure stops further waves; batches already
    accepted stay committed on the backend.

    Usage:
        job = orchestrator.create_job(dataset_id, entries)
        job.on_progress(lambda percent: print(f"{percent}%"))
        job.on_batch_fail(lambda batch: print(f"batch {batch.index}: {batch.error}"))
        result = await job.wait()
    """

    def __init__(
        self,
        uploader: IEntryUploader,
        dataset_id: str,
        batches: List[ImportBatch],
        concurrency: int,
        ledger: Optional[BatchLedger] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._uploader = uploader
        self._dataset_id = dataset_id
        self._batches = batches
        self._concurrency = concurrency
        self._ledger = ledger
        self._events = EventEmitter()
        self._state = JobState.PENDING
        self._task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._result: Optional[ImportResult] = None

        self._progress = 0
        self._created = 0
        self._committed = 0
        self._skipped = 0
        self._in_flight = 0
        self._peak_in_flight = 0

    # Event subscription methods
    def on_start(self, callback: Callable[[], None]):
        """Called when the job starts."""
        self._events.on("start", callback)

    def on_progress(self, callback: Callable[[int], None]):
        """Called after every wave. Receives percent (0-100)."""
        self._events.on("progress", callback)

    def on_batch_complete(self, callback: Callable[[BatchProgress], None]):
        """Called when a batch is accepted. Receives BatchProgress."""
        self._events.on("batch_complete", callback)

    def on_batch_skipped(self, callback: Callable[[BatchProgress], None]):
        """Called for batches the ledger already holds. Receives BatchProgress."""
        self._events.on("batch_skipped", callback)

    def on_batch_fail(self, callback: Callable[[BatchProgress], None]):
        """Called when a batch request fails. Receives BatchProgress."""
        self._events.on("batch_fail", callback)

    def on_finish(self, callback: Callable[[ImportResult], None]):
        """Called once with the terminal result. Receives ImportResult."""
        self._events.on("finish", callback)

    # Control methods
    async def start(self):
        """Start the job (non-blocking)."""
        if self._state != JobState.PENDING:
            raise RuntimeError(f"Cannot start job in state: {self._state}")

        self._state = JobState.RUNNING
        self._task = asyncio.create_task(self._run())
        await self._events.emit("start")

    def stop(self):
        """Dispatch no further waves. Requests already sent are left to settle."""
        self._stop_requested = True

    async def wait(self) -> ImportResult:
        """Wait for the job to reach a terminal state and return its result."""
        if self._state == JobState.PENDING:
            await self.start()

        if self._task:
            await self._task

        if self._result is None:
            raise RuntimeError(f"Import job ended without a result (state: {self._state})")
        return self._result

    # State properties
    @property
    def state(self) -> JobState:
        return self._state

    @property
    def dataset_id(self) -> str:
        return self._dataset_id

    @property
    def batches(self) -> List[ImportBatch]:
        return list(self._batches)

    @property
    def total_batches(self) -> int:
        return len(self._batches)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def progress(self) -> int:
        """Percent of batches settled, never decreasing."""
        return self._progress

    @property
    def created(self) -> int:
        """Running total of entries the backend reported as created."""
        return self._created

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    @property
    def result(self) -> Optional[ImportResult]:
        return self._result

    @property
    def is_finished(self) -> bool:
        return self._state in (JobState.COMPLETED, JobState.FAILED)

    # Internal methods
    async def _send(self, batch: ImportBatch) -> int:
        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        try:
            logger.debug(f"[{batch.index + 1}/{self.total_batches}] Sending {len(batch)} entries")
            return await self._uploader.create_entries_bulk(self._dataset_id, batch.entries)
        finally:
            self._in_flight -= 1

    async def _set_progress(self, settled: int):
        percent = progress_percent(settled, self.total_batches)
        if percent > self._progress:
            self._progress = percent
        await self._events.emit("progress", self._progress)

    async def _finish(self, result: ImportResult):
        self._result = result
        self._state = JobState.COMPLETED if result.success else JobState.FAILED
        await self._events.emit("finish", result)

    async def _run(self):
        try:
            await self._run_waves()
        except Exception as e:
            logger.error(f"Import job crashed: {e}", exc_info=True)
            await self._finish(ImportResult.fail(
                created=self._created,
                total_batches=self.total_batches,
                committed_batches=self._committed,
                failed_batch=None,
                exception=e,
                skipped_batches=self._skipped,
            ))

    async def _save_ledger(self):
        if self._ledger is None:
            return
        try:
            await self._ledger.save()
        except OSError as e:
            # Batches are committed on the backend either way
            logger.warning(f"Could not write batch ledger {self._ledger.path}: {e}")

    async def _run_waves(self):
        total = self.total_batches
        pending: List[ImportBatch] = []

        for batch in self._batches:
            if self._ledger is not None and self._ledger.is_committed(self._dataset_id, batch.digest):
                self._skipped += 1
                await self._events.emit("batch_skipped", BatchProgress(batch.index, len(batch), status="skipped"))
            else:
                pending.append(batch)

        skipped = self._skipped
        if skipped:
            logger.info(f"Skipping {skipped}/{total} batch(es) already committed to {self._dataset_id}")

        logger.info(
            f"Importing {sum(len(b) for b in pending)} entries into {self._dataset_id}: "
            f"{len(pending)} batch(es), {self._concurrency} per wave"
        )

        for wave_start in range(0, len(pending), self._concurrency):
            if self._stop_requested:
                logger.info("Import stopped before dispatching remaining waves")
                await self._finish(ImportResult.fail(
                    created=self._created,
                    total_batches=total,
                    committed_batches=self._committed,
                    failed_batch=pending[wave_start].index,
                    exception=RuntimeError("Import stopped"),
                    skipped_batches=skipped,
                ))
                return

            wave = pending[wave_start:wave_start + self._concurrency]
            outcomes = await asyncio.gather(*(self._send(batch) for batch in wave), return_exceptions=True)

            failure = None
            for batch, outcome in zip(wave, outcomes):
                if isinstance(outcome, BaseException):
                    error = str(outcome) or type(outcome).__name__
                    logger.error(f"[{batch.index + 1}/{total}] Batch failed: {error}")
                    if failure is None:
                        failure = (batch, outcome)
                    await self._events.emit(
                        "batch_fail",
                        BatchProgress(batch.index, len(batch), status="failed", error=error),
                    )
                    continue

                self._created += outcome
                self._committed += 1
                if self._ledger is not None:
                    self._ledger.record(self._dataset_id, batch.digest, outcome, len(batch))
                await self._events.emit(
                    "batch_complete",
                    BatchProgress(batch.index, len(batch), created=outcome, status="committed"),
                )

            await self._save_ledger()

            await self._set_progress(skipped + self._committed)

            if failure is not None:
                batch, exc = failure
                await self._finish(ImportResult.fail(
                    created=self._created,
                    total_batches=total,
                    committed_batches=self._committed,
                    failed_batch=batch.index,
                    exception=exc,
                    skipped_batches=skipped,
                ))
                return

        await self._set_progress(total)
        logger.info(f"Import complete: {self._created} entries created in {self._committed} batch(es)")
        await self._finish(ImportResult.ok(self._created, total, skipped_batches=skipped))
