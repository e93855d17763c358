from __future__ import annotations

from crm_migrator.migration.pipeline.validate import ROW_INDEX_OFFSET, validate_rows


def test_valid_rows_pass_through():
    outcome = validate_rows(
        [{"first_name": "John", "last_name": "Smith", "email": "john@x.com"}],
        "contacts",
    )

    assert outcome.valid == [{"first_name": "John", "last_name": "Smith", "email": "john@x.com"}]
    assert outcome.invalid == []
    assert outcome.total_rows == 1


def test_missing_required_field_is_reported_with_spreadsheet_row_number():
    outcome = validate_rows(
        [
            {"first_name": "John", "last_name": "Smith"},
            {"first_name": "Jane", "last_name": None},
        ],
        "contact",
    )

    assert len(outcome.valid) == 1
    [error] = outcome.invalid
    assert error.row_index == 1 + ROW_INDEX_OFFSET == 3
    assert error.errors == ("Missing required field: last_name",)
    assert error.row["first_name"] == "Jane"


def test_unmapped_required_field_counts_as_missing():
    outcome = validate_rows([{"first_name": "Solo"}], "contacts")

    assert outcome.invalid[0].errors == ("Missing required field: last_name",)


def test_invalid_email_is_rejected():
    outcome = validate_rows(
        [{"first_name": "Bad", "last_name": "Email", "email": "not-an-email"}],
        "contacts",
    )

    assert outcome.valid == []
    assert outcome.invalid[0].errors == ("Invalid email: not-an-email",)
    assert outcome.invalid[0].row_index == 2


def test_all_errors_for_a_row_are_collected():
    outcome = validate_rows([{"first_name": None, "last_name": None, "email": "nope"}], "contacts")

    assert outcome.invalid[0].errors == (
        "Missing required field: first_name",
        "Missing required field: last_name",
        "Invalid email: nope",
    )


def test_invoice_requires_amount():
    outcome = validate_rows(
        [
            {"invoice_number": "INV-1", "amount": 120.0},
            {"invoice_number": "INV-2", "amount": None},
        ],
        "invoices",
    )

    assert [row["invoice_number"] for row in outcome.valid] == ["INV-1"]
    assert outcome.invalid[0].errors == ("Missing required field: amount",)


def test_job_requires_title_only():
    outcome = validate_rows([{"title": "Roof replacement", "contact_email": None}], "job")

    assert len(outcome.valid) == 1


def test_error_record_serialises():
    outcome = validate_rows([{"title": None}], "job")

    assert outcome.invalid[0].as_dict() == {
        "row_index": 2,
        "row": {"title": None},
        "errors": ["Missing required field: title"],
    }
