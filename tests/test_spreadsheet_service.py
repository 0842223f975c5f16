"""
Unit tests for spreadsheet parsing and column mapping.
"""
import io
from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from app.core.exceptions import SpreadsheetError, ValidationFailedError
from app.services.spreadsheet_service import (
    build_certificate_rows,
    preview_rows,
    read_spreadsheet,
    to_scalar,
    validate_mapping,
)

CSV = (
    "Full Name,Score,Mail,Course\n"
    "Ana Lima,95,ana@example.com,Python\n"
    "Bo Chen,,not-an-email,Python\n"
    "\n"
    "Cy Diaz,88.5,cy@example.com,\n"
).encode()

MAPPING = {"name": "Full Name", "score": "Score", "email": "Mail", "course": "Course"}
PLACEHOLDERS = ["name", "score", "email", "course"]


class TestReadSpreadsheet:
    def test_reads_csv_and_drops_empty_rows(self):
        df = read_spreadsheet(CSV, "people.csv")
        assert list(df.columns) == ["Full Name", "Score", "Mail", "Course"]
        assert len(df) == 3

    def test_reads_xlsx(self):
        buffer = io.BytesIO()
        pd.DataFrame({"Name": ["Ana"], "Score": [95]}).to_excel(buffer, index=False, engine="openpyxl")

        df = read_spreadsheet(buffer.getvalue(), "people.xlsx")

        assert list(df.columns) == ["Name", "Score"]
        assert df.iloc[0]["Name"] == "Ana"

    def test_rejects_unknown_extension(self):
        with pytest.raises(SpreadsheetError):
            read_spreadsheet(b"x", "people.pdf")

    def test_rejects_header_only_file(self):
        with pytest.raises(SpreadsheetError):
            read_spreadsheet(b"Name,Score\n", "people.csv")

    def test_rejects_corrupt_workbook(self):
        with pytest.raises(SpreadsheetError):
            read_spreadsheet(b"definitely not a zip", "people.xlsx")


class TestToScalar:
    def test_numpy_values_become_python(self):
        assert to_scalar(np.int64(7)) == 7
        assert type(to_scalar(np.int64(7))) is int
        assert to_scalar(np.bool_(True)) is True

    def test_empty_cells_are_none(self):
        assert to_scalar(float("nan")) is None
        assert to_scalar(None) is None
        assert to_scalar("   ") is None
        assert to_scalar(pd.NaT) is None

    def test_dates_become_iso_text(self):
        assert to_scalar(pd.Timestamp("2024-05-01")) == "2024-05-01"
        assert to_scalar(datetime(2024, 5, 1, 9, 30)) == "2024-05-01T09:30:00"

    def test_nested_values_are_rejected(self):
        with pytest.raises(ValidationFailedError):
            to_scalar({"a": 1})
        with pytest.raises(ValidationFailedError):
            to_scalar([1, 2])


class TestMapping:
    def test_every_placeholder_must_be_mapped(self):
        with pytest.raises(ValidationFailedError) as exc:
            validate_mapping(["name", "score"], {"name": "Full Name"}, ["Full Name", "Score"])
        assert exc.value.details["unmapped"] == ["score"]

    def test_mapped_columns_must_exist(self):
        with pytest.raises(ValidationFailedError) as exc:
            validate_mapping(["name"], {"name": "Nombre"}, ["Full Name"])
        assert exc.value.details["unknown_columns"] == {"name": "Nombre"}

    def test_builds_one_row_per_record(self):
        df = read_spreadsheet(CSV, "people.csv")

        rows = build_certificate_rows(df, PLACEHOLDERS, MAPPING)

        assert [r.recipient_name for r in rows] == ["Ana Lima", "Bo Chen", "Cy Diaz"]
        assert rows[0].certificate_data == {
            "name": "Ana Lima",
            "score": 95.0,
            "email": "ana@example.com",
            "course": "Python",
        }
        assert str(rows[0].recipient_email) == "ana@example.com"

    def test_empty_cells_are_left_out(self):
        rows = build_certificate_rows(read_spreadsheet(CSV, "people.csv"), PLACEHOLDERS, MAPPING)
        assert "score" not in rows[1].certificate_data
        assert "course" not in rows[2].certificate_data

    def test_invalid_email_is_dropped(self):
        rows = build_certificate_rows(read_spreadsheet(CSV, "people.csv"), PLACEHOLDERS, MAPPING)
        assert rows[1].recipient_email is None
        assert rows[1].certificate_data["email"] == "not-an-email"

    def test_recipient_name_prefers_recipient_name_placeholder(self):
        df = pd.DataFrame({"Who": ["Dee"], "Alias": ["D"]})
        rows = build_certificate_rows(df, ["recipientName", "name"], {"recipientName": "Who", "name": "Alias"})
        assert rows[0].recipient_name == "Dee"

    def test_recipient_name_falls_back_to_unknown(self):
        df = pd.DataFrame({"Course": ["Python"]})
        rows = build_certificate_rows(df, ["course"], {"course": "Course"})
        assert rows[0].recipient_name == "Unknown"


def test_preview_rows():
    preview = preview_rows(read_spreadsheet(CSV, "people.csv"), limit=2)
    assert preview["columns"] == ["Full Name", "Score", "Mail", "Course"]
    assert preview["row_count"] == 3
    assert len(preview["rows"]) == 2
    assert preview["rows"][1]["Score"] is None
