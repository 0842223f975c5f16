"""
api/spreadsheets.py
Spreadsheet preview for the column-mapping step.
"""
from fastapi import APIRouter, File, UploadFile

from app.services.spreadsheet_service import preview_rows, read_spreadsheet

router = APIRouter(prefix="/api/spreadsheets", tags=["Spreadsheets"])


@router.post("/preview")
async def preview_spreadsheet(file: UploadFile = File(...), rows: int = 5):
    """Columns, row count and the first rows of an uploaded CSV/XLSX."""
    df = read_spreadsheet(await file.read(), file.filename)
    return preview_rows(df, limit=rows)
