from __future__ import annotations

import pytest

from crm_migrator.migration.adapters.csv_reader import RawRow
from crm_migrator.migration.pipeline.column_mapper import ColumnMapping
from crm_migrator.migration.pipeline.normalize import (
    normalize_date,
    normalize_email,
    normalize_money,
    normalize_phone,
    normalize_row,
    normalize_status,
    normalize_tags,
)


@pytest.mark.parametrize(
    "raw, entity, expected",
    [
        ("Closed Won", "job", "completed"),
        ("In Progress", "job", "active"),
        ("Active Customer", "contact", "client"),
        ("New Lead", "contact", "lead"),
        ("Past Due", "invoice", "overdue"),
        ("Payment Received", "invoice", "paid"),
        ("VOIDED", "invoice", "cancelled"),
        ("Closed Lost", "job", "cancelled"),
        ("Closed Lost", "contact", "inactive"),
    ],
)
def test_status_maps_onto_taxonomy(raw, entity, expected):
    assert normalize_status(raw, entity) == expected


def test_status_prefers_the_row_entity_buckets():
    # "open" is both an active job and a sent invoice.
    assert normalize_status("Open", "job") == "active"
    assert normalize_status("Open", "invoice") == "sent"


def test_status_without_entity_uses_global_order():
    assert normalize_status("Open") == "active"


def test_unrecognised_status_passes_through_trimmed():
    assert normalize_status("  On Hold ", "job") == "On Hold"


def test_blank_status_is_none():
    assert normalize_status("   ", "job") is None


def test_date_is_rendered_as_utc_iso():
    assert normalize_date("2024-01-15") == "2024-01-15T00:00:00+00:00"
    assert normalize_date("01/15/2024 10:30") == "2024-01-15T10:30:00+00:00"


def test_date_with_offset_is_converted_to_utc():
    assert normalize_date("2024-01-15T10:00:00-05:00") == "2024-01-15T15:00:00+00:00"


def test_unparsable_date_is_none():
    assert normalize_date("not a date") is None
    assert normalize_date("") is None


@pytest.mark.parametrize(
    "raw",
    ["9999-12-31 23:00 -05:00", "12/31/9999 11pm -0500", "0001-01-01 00:00 +05:00"],
)
def test_date_out_of_range_after_utc_conversion_is_none(raw):
    assert normalize_date(raw) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.50", 1234.5),
        ("€ 99", 99.0),
        ("-12.75", -12.75),
        ("1 000", 1000.0),
    ],
)
def test_money_strips_currency_noise(raw, expected):
    assert normalize_money(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["abc", "", None, "inf", "12.3.4"])
def test_unparsable_money_is_none(raw):
    assert normalize_money(raw) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("555-123-4567", "(555) 123-4567"),
        ("+1 (555) 123 4567", "(555) 123-4567"),
        ("5551234567", "(555) 123-4567"),
        ("12345", "12345"),
        (" +44 20 7946 0958 ", "+44 20 7946 0958"),
    ],
)
def test_phone_formatting(raw, expected):
    assert normalize_phone(raw) == expected


def test_email_is_lowercased_and_trimmed():
    assert normalize_email("  John@Example.COM ") == "john@example.com"
    assert normalize_email(" ") is None


def test_tags_are_tidied():
    assert normalize_tags(" roof , , gutters ") == "roof,gutters"
    assert normalize_tags(" , ") is None


def test_normalize_row_only_emits_mapped_fields():
    mapping = ColumnMapping(
        fields={
            "first_name": "First Name",
            "last_name": "Last Name",
            "email": "Email",
            "phone": "Phone",
        }
    )
    raw = RawRow(
        position=0,
        source_line=2,
        values={"First Name": "John", "Last Name": "Smith", "Email": "JOHN@X.COM", "Phone": "555-123-4567"},
    )

    assert normalize_row(raw, mapping, "contacts") == {
        "first_name": "John",
        "last_name": "Smith",
        "email": "john@x.com",
        "phone": "(555) 123-4567",
    }


def test_normalize_row_missing_or_blank_cells_become_none():
    mapping = ColumnMapping(fields={"title": "Job", "value": "Total", "start_date": "Start"})

    row = normalize_row({"Job": "Roof", "Total": "  "}, mapping, "job")

    assert row == {"title": "Roof", "start_date": None, "value": None}


@pytest.mark.parametrize(
    "coerce, raw",
    [
        (normalize_date, "01/15/2024 10:30"),
        (normalize_date, "2024-01-15T10:00:00-05:00"),
        (normalize_email, "  John@Example.COM "),
        (normalize_phone, "1-555-123-4567"),
        (normalize_phone, " +44 20 7946 0958 "),
        (normalize_tags, " roof , , gutters "),
        (normalize_money, "$1,250.00"),
    ],
)
def test_normalizing_twice_changes_nothing(coerce, raw):
    once = coerce(raw)

    assert once is not None
    assert coerce(once) == once


@pytest.mark.parametrize("raw, entity", [("Closed Won", "job"), ("Past Due", "invoice"), ("prospect", "contact")])
def test_status_normalizing_twice_changes_nothing(raw, entity):
    once = normalize_status(raw, entity)

    assert normalize_status(once, entity) == once
