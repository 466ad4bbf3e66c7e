"""Row transformer - raw rows + mapping -> entry records."""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import EntryField, EntryRecord, SourceRow
from .columns import column_for_field

UNMAPPED = (None, EntryField.SKIP.value)


def _optional_text(row: SourceRow, column: Optional[str]) -> Optional[str]:
    if column is None:
        return None
    value = row.get(column)
    if not value:
        return None
    return str(value)


def transform(
    rows: Sequence[SourceRow],
    mapping: Mapping[str, str],
) -> Tuple[List[EntryRecord], int]:
    """
    Convert rows into entry records.

    A row is invalid when external_id is unmapped, or its value is missing,
    not a string, or blank. Columns mapped to skip (or not mapped at all)
    land in raw_data untouched. Every row is counted exactly once:
    invalid_count + len(valid) == len(rows).

    Returns:
        (valid_entries, invalid_count)
    """
    external_id_column = column_for_field(mapping, EntryField.EXTERNAL_ID)
    if external_id_column is None:
        return [], len(rows)

    display_name_column = column_for_field(mapping, EntryField.DISPLAY_NAME)
    external_url_column = column_for_field(mapping, EntryField.EXTERNAL_URL)

    valid: List[EntryRecord] = []
    invalid_count = 0

    for row in rows:
        external_id = row.get(external_id_column)
        if not isinstance(external_id, str) or not external_id.strip():
            invalid_count += 1
            continue

        raw_data: Dict[str, Any] = {
            key: value
            for key, value in row.items()
            if mapping.get(key) in UNMAPPED
        }

        valid.append(EntryRecord(
            external_id=external_id.strip(),
            display_name=_optional_text(row, display_name_column),
            external_url=_optional_text(row, external_url_column),
            raw_data=raw_data or None,
        ))

    return valid, invalid_count
