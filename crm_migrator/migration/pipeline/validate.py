"""Row validation: required-field presence and email shape."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..contracts import EntityType, get_required_fields
from ..errors import RowValidationError

_EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# 1-based row numbers plus the header row, matching spreadsheet numbering.
ROW_INDEX_OFFSET = 2


@dataclass
class ValidationOutcome:
    valid: list[dict[str, Any]] = field(default_factory=list)
    invalid: list[RowValidationError] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.valid) + len(self.invalid)


def row_errors(row: Mapping[str, Any], entity: EntityType | str) -> list[str]:
    errors: list[str] = []
    for field_name in get_required_fields(entity):
        if row.get(field_name) is None:
            errors.append(f"Missing required field: {field_name}")
    email = row.get("email")
    if email is not None and not _EMAIL_REGEX.match(str(email)):
        errors.append(f"Invalid email: {email}")
    return errors


def validate_rows(rows: Sequence[Mapping[str, Any]], entity: EntityType | str) -> ValidationOutcome:
    """
    Partition normalized rows into valid rows and per-row error records.

    A row with any error is excluded from ``valid`` entirely.
    """

    entity_type = EntityType.coerce(entity)
    outcome = ValidationOutcome()
    for position, row in enumerate(rows):
        errors = row_errors(row, entity_type)
        if errors:
            outcome.invalid.append(
                RowValidationError(row_index=position + ROW_INDEX_OFFSET, row=dict(row), errors=tuple(errors))
            )
        else:
            outcome.valid.append(dict(row))
    return outcome
