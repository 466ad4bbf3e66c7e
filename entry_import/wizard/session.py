"""Import wizard session - runs state machine effects against real collaborators."""
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..errors import ParseCancelled, ParseError
from ..ingestion import IngestionEngine
from ..models import EntryField, ImportConfig
from ..orchestrator import BatchUploadOrchestrator, ImportJob
from ..protocols import IEntryUploader
from ..services.batch_ledger import BatchLedger
from ..utils.events import EventEmitter, ParseProgress
from .state import (
    BackRequested,
    FileParsed,
    ImportFailed,
    ImportProgressed,
    ImportRequested,
    ImportSucceeded,
    MappingEdited,
    ParseFailed,
    ParseProgressed,
    ParseStarted,
    Reset,
    StartImport,
    StopImport,
    TerminateParse,
    ValidateRequested,
    WizardState,
    WizardStep,
    transition,
)

logger = logging.getLogger(__name__)


class ImportWizard:
    """
    One bulk import session for a dataset.

    Owns the engine's row buffer and at most one import job. Every public
    method feeds an event through transition() and executes the resulting
    effects; the returned state is the new snapshot.

    Usage:
        wizard = ImportWizard(engine, datasets_service, dataset_id)
        wizard.on_change(lambda state: print(state.step))
        await wizard.load_file("entries.csv")
        await wizard.edit_mapping("SKU", "external_id")
        await wizard.validate()
        state = await wizard.start_import()
    """

    def __init__(
        self,
        engine: IngestionEngine,
        uploader: IEntryUploader,
        dataset_id: str,
        config: Optional[ImportConfig] = None,
        ledger: Optional[BatchLedger] = None,
    ):
        self._engine = engine
        self._dataset_id = dataset_id
        self._orchestrator = BatchUploadOrchestrator.from_config(uploader, config or ImportConfig(), ledger)
        self._state = WizardState()
        self._job: Optional[ImportJob] = None
        self._events = EventEmitter()

        self._engine.on_progress(self._on_parse_progress)

    def on_change(self, callback: Callable[[WizardState], None]):
        """Called after every state change. Receives WizardState."""
        self._events.on("change", callback)

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def dataset_id(self) -> str:
        return self._dataset_id

    @property
    def job(self) -> Optional[ImportJob]:
        """Import job in flight, if any."""
        return self._job

    async def load_file(self, path: Union[str, Path]) -> WizardState:
        """
        Parse a file and move to mapping with an auto-detected mapping.

        A parse error leaves the wizard in upload with state.error set. A
        reset during the parse leaves the fresh upload state untouched.
        """
        await self._apply(ParseStarted())
        try:
            table = await self._engine.parse(path)
        except ParseCancelled:
            return self._state
        except ParseError as e:
            await self._apply(ParseFailed(str(e)))
            return self._state

        await self._apply(FileParsed(table))
        return self._state

    async def edit_mapping(self, header: str, field: Union[EntryField, str]) -> WizardState:
        await self._apply(MappingEdited(header, EntryField(field).value))
        return self._state

    async def validate(self) -> WizardState:
        """Classify the full row set. Stays in mapping if external_id is unmapped."""
        await self._apply(ValidateRequested(self._engine.get_all_rows()))
        return self._state

    async def back(self) -> WizardState:
        await self._apply(BackRequested())
        return self._state

    async def start_import(self) -> WizardState:
        """
        Import the valid entries and wait for the job to settle.

        Success moves to complete; failure returns to validation with the
        result attached so the import can be retried.
        """
        await self._apply(ImportRequested())
        job = self._job
        if job is None:
            return self._state

        result = await job.wait()
        if self._job is not job:
            # Reset while importing
            return self._state

        self._job = None
        if result.success:
            await self._apply(ImportSucceeded(result))
        else:
            await self._apply(ImportFailed(result))
        return self._state

    async def reset(self) -> WizardState:
        """Drop everything and return to upload, terminating any background parse."""
        await self._apply(Reset())
        return self._state

    # Internal methods
    async def _apply(self, event: Any):
        self._state, effects = transition(self._state, event)
        for effect in effects:
            self._execute(effect)
        await self._events.emit("change", self._state)

    def _execute(self, effect: Any):
        if isinstance(effect, TerminateParse):
            self._engine.reset()
        elif isinstance(effect, StopImport):
            if self._job is not None:
                logger.info("Stopping import; batches already sent are not retracted")
                self._job.stop()
                self._job = None
        elif isinstance(effect, StartImport):
            job = self._orchestrator.create_job(self._dataset_id, effect.entries)

            async def on_job_progress(percent: int):
                if self._job is job:
                    await self._apply(ImportProgressed(percent))

            job.on_progress(on_job_progress)
            self._job = job
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    async def _on_parse_progress(self, progress: ParseProgress):
        if self._state.step == WizardStep.UPLOAD and self._state.parsing:
            await self._apply(ParseProgressed(progress.percent))
