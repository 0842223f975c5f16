"""
services/spreadsheet_service.py
Parses uploaded CSV/XLSX files and maps their columns onto template placeholders.
"""
import io
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd
from pydantic import EmailStr, TypeAdapter, ValidationError

from app.core.config import settings
from app.core.exceptions import SpreadsheetError, ValidationFailedError
from app.models.certificate_model import CertificateCreate
from app.services.template_renderer import Scalar, format_value
from app.utils.helpers import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")
NAME_KEYS = ("recipientName", "name")
EMAIL_KEY = "email"

_email_adapter = TypeAdapter(EmailStr)


def read_spreadsheet(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """
    Load the first sheet of an upload into a DataFrame.

    Column names are stripped; fully empty rows are dropped.
    """
    extension = Path(filename or "").suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetError(f"Unsupported file type {extension or '(none)'}; use .csv or .xlsx.")

    try:
        if extension == ".csv":
            df = pd.read_csv(io.BytesIO(file_bytes))
        else:
            df = pd.read_excel(io.BytesIO(file_bytes), sheet_name=0, engine="openpyxl")
    except Exception as e:
        logger.error(f"Spreadsheet parsing failed: {e}")
        raise SpreadsheetError(f"Failed to parse spreadsheet: {e}") from e

    df.columns = [str(col).strip() for col in df.columns]
    df = df.dropna(how="all")

    if df.empty:
        raise SpreadsheetError("The spreadsheet appears to be empty.")
    if len(df) > settings.MAX_UPLOAD_ROWS:
        raise SpreadsheetError(f"Too many rows: {len(df)} (limit {settings.MAX_UPLOAD_ROWS}).")

    logger.info(f"Parsed {len(df)} rows with columns {list(df.columns)} from {filename}.")
    return df


def to_scalar(value: Any) -> Optional[Scalar]:
    """
    Convert a cell to a plain str/int/float/bool, or None for an empty cell.

    Nested values are rejected so they never reach substitution.
    """
    if isinstance(value, (list, tuple, dict, set)):
        raise ValidationFailedError(f"Nested values are not supported: {value!r}")
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, datetime):
        if pd.isna(value):
            return None
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    if pd.isna(value):
        return None
    return str(value)


def preview_rows(df: pd.DataFrame, limit: int = 5) -> Dict[str, Any]:
    """Columns, row count and the first rows, for the column-mapping step."""
    rows = []
    for record in df.head(limit).to_dict(orient="records"):
        rows.append({key: to_scalar(value) for key, value in record.items()})
    return {"columns": list(df.columns), "row_count": int(len(df)), "rows": rows}


def validate_mapping(placeholders: List[str], mapping: Mapping[str, str], columns: List[str]) -> None:
    """Every placeholder must be mapped to a column that exists."""
    unmapped = [p for p in placeholders if not mapping.get(p)]
    unknown = {p: mapping[p] for p in placeholders if mapping.get(p) and mapping[p] not in columns}
    if unmapped or unknown:
        raise ValidationFailedError(
            "Every placeholder must be mapped to a spreadsheet column.",
            details={"unmapped": unmapped, "unknown_columns": unknown},
        )


def _clean_email(value: Optional[Scalar], row_number: int) -> Optional[str]:
    if value is None:
        return None
    try:
        return str(_email_adapter.validate_python(str(value)))
    except ValidationError:
        logger.warning(f"Row {row_number}: ignoring invalid email {value!r}")
        return None


def build_certificate_rows(
    df: pd.DataFrame,
    placeholders: List[str],
    mapping: Mapping[str, str],
) -> List[CertificateCreate]:
    """
    Turn each spreadsheet row into a recipient record.

    certificate_data holds one value per placeholder; empty cells are left
    out so their markers stay visible in the output.
    """
    validate_mapping(placeholders, mapping, list(df.columns))

    rows: List[CertificateCreate] = []
    for row_number, record in enumerate(df.to_dict(orient="records"), start=1):
        data: Dict[str, Scalar] = {}
        for placeholder in placeholders:
            value = to_scalar(record.get(mapping[placeholder]))
            if value is not None:
                data[placeholder] = value

        name = next((data[key] for key in NAME_KEYS if key in data), None)
        rows.append(
            CertificateCreate(
                recipient_name=format_value(name) if name is not None else "Unknown",
                recipient_email=_clean_email(data.get(EMAIL_KEY), row_number),
                certificate_data=data,
            )
        )

    logger.info(f"Mapped {len(rows)} rows onto placeholders {placeholders}.")
    return rows
