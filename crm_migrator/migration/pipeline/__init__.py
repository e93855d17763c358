"""
Migration pipeline stages: map columns, normalize, validate, import.
"""

from .column_mapper import ColumnMapping, map_columns, mapping_from_override, normalize_header
from .importer import ImportSummary, import_rows, new_batch_id
from .normalize import (
    NormalizedRow,
    normalize_date,
    normalize_email,
    normalize_money,
    normalize_phone,
    normalize_row,
    normalize_rows,
    normalize_status,
    normalize_tags,
)
from .store import TenantStore, UpsertOutcome, split_contact_name
from .validate import ROW_INDEX_OFFSET, ValidationOutcome, validate_rows

__all__ = [
    "ColumnMapping",
    "ImportSummary",
    "NormalizedRow",
    "ROW_INDEX_OFFSET",
    "TenantStore",
    "UpsertOutcome",
    "ValidationOutcome",
    "import_rows",
    "map_columns",
    "mapping_from_override",
    "new_batch_id",
    "normalize_date",
    "normalize_email",
    "normalize_header",
    "normalize_money",
    "normalize_phone",
    "normalize_row",
    "normalize_rows",
    "normalize_status",
    "normalize_tags",
    "split_contact_name",
    "validate_rows",
]
