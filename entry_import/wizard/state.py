"""
Wizard state machine.

WizardState is an immutable value; transition() is a pure function that
returns the next state plus the effects a session must carry out. Nothing
here touches files, processes or the network.

    upload -> mapping -> validation -> importing -> complete
                 ^           |  ^          |
                 +-- back ---+  +- failed -+

Reset goes back to a fresh upload state from anywhere.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Type

from ..errors import InvalidTransition
from ..mapping import ColumnMapping, assign_field, auto_detect, is_valid, transform
from ..models import EntryRecord, ImportResult, ParsedTable, SourceRow


class WizardStep(Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    VALIDATION = "validation"
    IMPORTING = "importing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class WizardState:
    """Snapshot of one import session."""
    step: WizardStep = WizardStep.UPLOAD
    table: Optional[ParsedTable] = None
    mapping: ColumnMapping = field(default_factory=dict)
    valid_entries: Tuple[EntryRecord, ...] = ()
    invalid_count: int = 0
    parsing: bool = False
    parse_progress: int = 0
    import_progress: int = 0
    result: Optional[ImportResult] = None
    error: Optional[str] = None

    @property
    def can_validate(self) -> bool:
        return self.step == WizardStep.MAPPING and is_valid(self.mapping)

    @property
    def can_import(self) -> bool:
        return self.step == WizardStep.VALIDATION and len(self.valid_entries) > 0


# Events

@dataclass(frozen=True)
class ParseStarted:
    pass


@dataclass(frozen=True)
class ParseProgressed:
    percent: int


@dataclass(frozen=True)
class FileParsed:
    table: ParsedTable


@dataclass(frozen=True)
class ParseFailed:
    message: str


@dataclass(frozen=True)
class MappingEdited:
    header: str
    field: str


@dataclass(frozen=True)
class ValidateRequested:
    """Carries the full row set, not the preview."""
    rows: Sequence[SourceRow]


@dataclass(frozen=True)
class BackRequested:
    pass


@dataclass(frozen=True)
class ImportRequested:
    pass


@dataclass(frozen=True)
class ImportProgressed:
    percent: int


@dataclass(frozen=True)
class ImportSucceeded:
    result: ImportResult


@dataclass(frozen=True)
class ImportFailed:
    result: ImportResult


@dataclass(frozen=True)
class Reset:
    pass


# Effects

@dataclass(frozen=True)
class StartImport:
    entries: Tuple[EntryRecord, ...]


@dataclass(frozen=True)
class TerminateParse:
    pass


@dataclass(frozen=True)
class StopImport:
    """Dispatch no further waves; requests already sent are not retracted."""


Effects = Tuple[Any, ...]
Transition = Tuple[WizardState, Effects]


def _parse_started(state: WizardState, event: ParseStarted) -> Transition:
    return replace(state, table=None, parsing=True, parse_progress=0, error=None), ()


def _parse_progressed(state: WizardState, event: ParseProgressed) -> Transition:
    percent = max(state.parse_progress, min(100, event.percent))
    return replace(state, parse_progress=percent), ()


def _file_parsed(state: WizardState, event: FileParsed) -> Transition:
    return replace(
        state,
        step=WizardStep.MAPPING,
        table=event.table,
        mapping=auto_detect(event.table.headers),
        parsing=False,
        parse_progress=100,
        error=None,
    ), ()


def _parse_failed(state: WizardState, event: ParseFailed) -> Transition:
    return replace(state, table=None, parsing=False, parse_progress=0, error=event.message), ()


def _mapping_edited(state: WizardState, event: MappingEdited) -> Transition:
    if event.header not in state.mapping:
        raise ValueError(f"Unknown column: {event.header!r}")
    return replace(state, mapping=assign_field(state.mapping, event.header, event.field)), ()


def _validate_requested(state: WizardState, event: ValidateRequested) -> Transition:
    if not is_valid(state.mapping):
        return state, ()
    valid, invalid_count = transform(event.rows, state.mapping)
    return replace(
        state,
        step=WizardStep.VALIDATION,
        valid_entries=tuple(valid),
        invalid_count=invalid_count,
        import_progress=0,
        result=None,
        error=None,
    ), ()


def _back_requested(state: WizardState, event: BackRequested) -> Transition:
    return replace(
        state,
        step=WizardStep.MAPPING,
        valid_entries=(),
        invalid_count=0,
        import_progress=0,
        result=None,
        error=None,
    ), ()


def _import_requested(state: WizardState, event: ImportRequested) -> Transition:
    if not state.valid_entries:
        return state, ()
    next_state = replace(state, step=WizardStep.IMPORTING, import_progress=0, result=None, error=None)
    return next_state, (StartImport(state.valid_entries),)


def _import_progressed(state: WizardState, event: ImportProgressed) -> Transition:
    percent = max(state.import_progress, min(100, event.percent))
    return replace(state, import_progress=percent), ()


def _import_succeeded(state: WizardState, event: ImportSucceeded) -> Transition:
    return replace(state, step=WizardStep.COMPLETE, import_progress=100, result=event.result, error=None), ()


def _import_failed(state: WizardState, event: ImportFailed) -> Transition:
    # Mapping and valid entries survive so the user can retry without re-uploading
    return replace(state, step=WizardStep.VALIDATION, result=event.result, error=event.result.error), ()


_HANDLERS: Dict[Type, Tuple[Tuple[WizardStep, ...], Callable[[WizardState, Any], Transition]]] = {
    ParseStarted: ((WizardStep.UPLOAD,), _parse_started),
    ParseProgressed: ((WizardStep.UPLOAD,), _parse_progressed),
    FileParsed: ((WizardStep.UPLOAD,), _file_parsed),
    ParseFailed: ((WizardStep.UPLOAD,), _parse_failed),
    MappingEdited: ((WizardStep.MAPPING,), _mapping_edited),
    ValidateRequested: ((WizardStep.MAPPING,), _validate_requested),
    BackRequested: ((WizardStep.VALIDATION,), _back_requested),
    ImportRequested: ((WizardStep.VALIDATION,), _import_requested),
    ImportProgressed: ((WizardStep.IMPORTING,), _import_progressed),
    ImportSucceeded: ((WizardStep.IMPORTING,), _import_succeeded),
    ImportFailed: ((WizardStep.IMPORTING,), _import_failed),
}


def transition(state: WizardState, event: Any) -> Transition:
    """
    Apply one event.

    Gates (invalid mapping, no valid entries) return the state unchanged.

    Raises:
        InvalidTransition: event does not belong to the current step
        ValueError: MappingEdited names an unknown column or field
    """
    if isinstance(event, Reset):
        effects: Effects = (TerminateParse(),)
        if state.step == WizardStep.IMPORTING:
            effects += (StopImport(),)
        return WizardState(), effects

    entry = _HANDLERS.get(type(event))
    if entry is None or state.step not in entry[0]:
        raise InvalidTransition(state.step.value, event)
    _, handler = entry
    return handler(state, event)
