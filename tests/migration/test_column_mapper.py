from __future__ import annotations

import pytest

from crm_migrator.migration.catalog import DEFAULT_CATALOG_PATH, load_alias_catalog
from crm_migrator.migration.contracts import get_field_names
from crm_migrator.migration.errors import InvalidUpload
from crm_migrator.migration.pipeline.column_mapper import ColumnMapping, map_columns, mapping_from_override


@pytest.fixture(scope="module")
def catalog():
    return load_alias_catalog(DEFAULT_CATALOG_PATH)


def test_jobber_contact_headers_map_to_canonical_fields(catalog):
    mapping = map_columns(
        ["First Name", "Last Name", "Email", "Phone"],
        catalog.lookup("jobber", "contacts"),
        "contacts",
    )

    assert dict(mapping.fields) == {
        "first_name": "First Name",
        "last_name": "Last Name",
        "email": "Email",
        "phone": "Phone",
    }
    assert "company" in mapping.unmapped_fields
    assert mapping.unclaimed_columns == ()
    assert mapping.overridden is False


def test_matching_ignores_case_and_surrounding_whitespace():
    mapping = map_columns([" EMAIL ", "first NAME"], {"email": ["Email"], "first_name": ["First Name"]}, "contact")

    assert mapping.source_for("email") == " EMAIL "
    assert mapping.source_for("first_name") == "first NAME"


def test_first_candidate_wins_over_header_order():
    mapping = map_columns(
        ["Email", "Email Address"],
        {"email": ["Email Address", "Email"]},
        "contact",
    )

    assert mapping.source_for("email") == "Email Address"
    assert mapping.unclaimed_columns == ("Email",)


def test_one_header_may_serve_several_fields():
    mapping = map_columns(
        ["Name"],
        {"title": ["Name"], "contact_name": ["Name"]},
        "job",
    )

    assert mapping.source_for("title") == "Name"
    assert mapping.source_for("contact_name") == "Name"
    assert mapping.unclaimed_columns == ()


def test_unclaimed_columns_keep_file_order():
    mapping = map_columns(
        ["Referral", "First Name", "Favourite Colour", "Last Name"],
        {"first_name": ["First Name"], "last_name": ["Last Name"]},
        "contact",
    )

    assert mapping.unclaimed_columns == ("Referral", "Favourite Colour")


def test_empty_alias_table_leaves_every_field_unmapped():
    mapping = map_columns(["Whatever"], {}, "invoices")

    assert mapping.fields == {}
    assert mapping.unmapped_fields == get_field_names("invoice")
    assert mapping.unclaimed_columns == ("Whatever",)


def test_override_replaces_detection():
    mapping = mapping_from_override(
        {"first_name": "Given", "last_name": " Surname ", "email": ""},
        "contacts",
    )

    assert dict(mapping.fields) == {"first_name": "Given", "last_name": "Surname"}
    assert mapping.overridden is True
    assert mapping.unmapped_fields == ()
    assert mapping.unclaimed_columns == ()


def test_override_rejects_unknown_fields():
    with pytest.raises(InvalidUpload, match="shoe_size"):
        mapping_from_override({"first_name": "Given", "shoe_size": "Size"}, "contacts")


def test_override_rejects_non_string_columns():
    with pytest.raises(InvalidUpload):
        mapping_from_override({"first_name": 3}, "contacts")


def test_mapping_survives_serialisation():
    mapping = map_columns(["First Name", "Extra"], {"first_name": ["First Name"]}, "contact")

    restored = ColumnMapping.from_dict(mapping.as_dict())

    assert restored == mapping
