"""Wizard package - sequences parse, mapping, validation and import."""
from .session import ImportWizard
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

__all__ = [
    "ImportWizard",
    "WizardState",
    "WizardStep",
    "transition",
    "ParseStarted",
    "ParseProgressed",
    "FileParsed",
    "ParseFailed",
    "MappingEdited",
    "ValidateRequested",
    "BackRequested",
    "ImportRequested",
    "ImportProgressed",
    "ImportSucceeded",
    "ImportFailed",
    "Reset",
    "StartImport",
    "StopImport",
    "TerminateParse",
]
