"""
Entry import - bulk CSV ingestion into datasets.

Parses a delimited file (inline or in a worker process, by size), maps its
columns to entry fields, classifies rows and uploads the valid entries in
bounded-concurrency waves of batches.

Usage:
    from entry_import import (
        DatasetsService, HTTPAPIClient, ImportConfig, ImportWizard, IngestionEngine,
    )

    config = ImportConfig.from_env()
    async with HTTPAPIClient(api_url) as client:
        wizard = ImportWizard(IngestionEngine(config), DatasetsService(client), dataset_id, config)
        await wizard.load_file("entries.csv")
        await wizard.edit_mapping("SKU", "external_id")
        await wizard.validate()
        state = await wizard.start_import()
        print(state.step, state.result)

    # Without the wizard
    valid, invalid_count = transform(rows, auto_detect(headers))
    result = await BatchUploadOrchestrator(service).run(dataset_id, valid)
"""
__version__ = "0.1.0"

from .errors import (
    ApiError,
    EntryImportError,
    InvalidTransition,
    NetworkError,
    ParseCancelled,
    ParseError,
)
from .ingestion import IngestionEngine, InlineParseRunner, ProcessParseRunner, select_runner
from .mapping import (
    FIELD_OPTIONS,
    ColumnMapping,
    assign_field,
    auto_detect,
    column_for_field,
    is_valid,
    transform,
)
from .models import (
    EntryField,
    EntryRecord,
    ImportBatch,
    ImportConfig,
    ImportResult,
    ImportStatus,
    ParsedTable,
    SourceRow,
)
from .orchestrator import BatchUploadOrchestrator, ImportJob, JobState, partition
from .services import BatchLedger, DatasetsService, HTTPAPIClient
from .wizard import ImportWizard, WizardState, WizardStep, transition

__all__ = [
    # Main
    "ImportWizard",
    "IngestionEngine",
    "BatchUploadOrchestrator",
    # Pipeline
    "auto_detect",
    "assign_field",
    "column_for_field",
    "is_valid",
    "transform",
    "partition",
    "select_runner",
    "transition",
    "FIELD_OPTIONS",
    "ColumnMapping",
    "InlineParseRunner",
    "ProcessParseRunner",
    "ImportJob",
    "JobState",
    "WizardState",
    "WizardStep",
    # Models
    "EntryField",
    "EntryRecord",
    "ImportBatch",
    "ImportConfig",
    "ImportResult",
    "ImportStatus",
    "ParsedTable",
    "SourceRow",
    # Services
    "BatchLedger",
    "DatasetsService",
    "HTTPAPIClient",
    # Errors
    "EntryImportError",
    "ParseError",
    "ParseCancelled",
    "InvalidTransition",
    "ApiError",
    "NetworkError",
]
