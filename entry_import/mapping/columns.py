"""
Column mapping resolver.

A mapping is a plain dict of header -> field tag. Detection is a pure
function of the header list; the only validity rule is that some header
targets external_id.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from ..models import EntryField

ColumnMapping = Dict[str, str]

EXTERNAL_ID_EXACT = frozenset({"id", "ext_id", "externalid"})
DISPLAY_NAME_EXACT = frozenset({"label"})
DISPLAY_NAME_CONTAINS = ("name", "title")
EXTERNAL_URL_CONTAINS = ("url", "link", "href")


@dataclass(frozen=True)
class FieldOption:
    value: EntryField
    label: str
    required: bool = False


FIELD_OPTIONS: Tuple[FieldOption, ...] = (
    FieldOption(EntryField.EXTERNAL_ID, "External ID (required)", required=True),
    FieldOption(EntryField.DISPLAY_NAME, "Display Name"),
    FieldOption(EntryField.EXTERNAL_URL, "External URL"),
    FieldOption(EntryField.SKIP, "Skip this column"),
)


def detect_field(header: str) -> EntryField:
    """Classify one header. Rules are checked in priority order; first match wins."""
    lower = header.strip().lower()

    if lower in EXTERNAL_ID_EXACT or "external_id" in lower:
        return EntryField.EXTERNAL_ID
    if any(token in lower for token in DISPLAY_NAME_CONTAINS) or lower in DISPLAY_NAME_EXACT:
        return EntryField.DISPLAY_NAME
    if any(token in lower for token in EXTERNAL_URL_CONTAINS):
        return EntryField.EXTERNAL_URL
    return EntryField.SKIP


def auto_detect(headers: Iterable[str]) -> ColumnMapping:
    """Map every header to a field tag, preserving header order."""
    return {header: detect_field(header).value for header in headers}


def is_valid(mapping: Mapping[str, str]) -> bool:
    """True iff some header is mapped to external_id."""
    return EntryField.EXTERNAL_ID.value in mapping.values()


def column_for_field(mapping: Mapping[str, str], field: Union[EntryField, str]) -> Optional[str]:
    """First header (in mapping order) mapped to field, or None."""
    target = EntryField(field).value
    for header, value in mapping.items():
        if value == target:
            return header
    return None


def assign_field(mapping: Mapping[str, str], header: str, field: Union[EntryField, str]) -> ColumnMapping:
    """
    Return a copy of mapping with header set to field.

    Named fields stay one-to-one: a header that already held field is moved
    back to skip.

    Raises:
        ValueError: field is not a known tag
    """
    target = EntryField(field)
    updated = dict(mapping)
    if target is not EntryField.SKIP:
        for other, value in mapping.items():
            if other != header and value == target.value:
                updated[other] = EntryField.SKIP.value
    updated[header] = target.value
    return updated
