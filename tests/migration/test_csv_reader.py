from __future__ import annotations

import pytest

from crm_migrator.migration.adapters.csv_reader import read_csv_bytes
from crm_migrator.migration.errors import EmptyInput


def test_reads_headers_and_rows():
    parsed = read_csv_bytes(b"First Name,Last Name\nJohn,Smith\nJane,Doe\n")

    assert parsed.headers == ("First Name", "Last Name")
    assert [row.values for row in parsed.rows] == [
        {"First Name": "John", "Last Name": "Smith"},
        {"First Name": "Jane", "Last Name": "Doe"},
    ]
    assert [row.position for row in parsed.rows] == [0, 1]


def test_byte_order_mark_is_stripped_from_first_header():
    parsed = read_csv_bytes("\ufeffEmail,Phone\na@b.co,1\n".encode("utf-8"))

    assert parsed.headers == ("Email", "Phone")


def test_blank_lines_are_skipped():
    parsed = read_csv_bytes(b"Email\n\na@b.co\n,\nc@d.co\n")

    assert [row.values["Email"] for row in parsed.rows] == ["a@b.co", "c@d.co"]
    assert parsed.statistics.rows_skipped_blank == 2


def test_cells_are_trimmed_and_short_rows_padded():
    parsed = read_csv_bytes(b"A,B,C\n  x  ,y\n")

    assert parsed.rows[0].values == {"A": "x", "B": "y", "C": None}


def test_duplicate_headers_keep_first_column():
    parsed = read_csv_bytes(b"Email,Email\nfirst@x.co,second@x.co\n")

    assert parsed.rows[0].values == {"Email": "first@x.co"}
    assert parsed.statistics.duplicate_headers == ["Email"]


def test_windows_1252_exports_decode():
    parsed = read_csv_bytes("Name\nJosé\n".encode("cp1252"))

    assert parsed.rows[0].values["Name"] == "José"


@pytest.mark.parametrize("payload", [b"", b"\n\n", b"First Name,Last Name\n"])
def test_no_data_rows_is_empty_input(payload):
    with pytest.raises(EmptyInput):
        read_csv_bytes(payload)
