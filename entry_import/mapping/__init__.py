"""Column mapping and row transformation."""
from .columns import (
    FIELD_OPTIONS,
    ColumnMapping,
    FieldOption,
    assign_field,
    auto_detect,
    column_for_field,
    detect_field,
    is_valid,
)
from .transformer import transform

__all__ = [
    "FIELD_OPTIONS",
    "ColumnMapping",
    "FieldOption",
    "assign_field",
    "auto_detect",
    "column_for_field",
    "detect_field",
    "is_valid",
    "transform",
]
