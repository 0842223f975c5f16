"""
api/batches.py
FastAPI router for certificate batches: creation from a spreadsheet, queued
generation, progress, retries, archives and email delivery.
"""
import json
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Response, UploadFile

from app.api.deps import Services, get_services
from app.core.exceptions import ValidationFailedError
from app.models.certificate_model import CertificateStatus
from app.services.email_service import DEFAULT_BODY, DEFAULT_SUBJECT
from app.services.spreadsheet_service import build_certificate_rows, read_spreadsheet
from app.utils.helpers import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api/batches", tags=["Batches"])


def parse_mapping(raw: str) -> Dict[str, str]:
    """The mapping form field is a JSON object of placeholder -> column."""
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationFailedError(f"Mapping is not valid JSON: {e}") from e
    if not isinstance(mapping, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
    ):
        raise ValidationFailedError("Mapping must be an object of placeholder names to column names.")
    return mapping


# ── Create ─────────────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_batch(
    template_id: str = Form(...),
    batch_name: str = Form(...),
    mapping: str = Form(...),
    file: UploadFile = File(...),
    auto_start: bool = Form(False),
    services: Services = Depends(get_services),
):
    """
    Upload a spreadsheet and create a pending batch from it.
    With auto_start the batch is queued for generation right away.
    """
    template = await services.batch_service.get_template(template_id)
    column_mapping = parse_mapping(mapping)

    df = read_spreadsheet(await file.read(), file.filename)
    rows = build_certificate_rows(df, template.placeholders, column_mapping)

    batch = await services.batch_service.create_batch(template.id, batch_name, rows)
    queued = services.workers.enqueue(batch.id) if auto_start else False
    return {**batch.to_dict(), "queued": queued}


# ── Read ───────────────────────────────────────────────────────────────────────

@router.get("")
async def list_batches(
    search: Optional[str] = None,
    limit: int = 100,
    services: Services = Depends(get_services),
):
    return {"batches": await services.batch_service.list_batches(search=search, limit=limit)}


@router.get("/{batch_id}")
async def get_batch(batch_id: str, services: Services = Depends(get_services)):
    batch = await services.batch_service.get_batch(batch_id)
    return {**batch.to_dict(), "active": services.workers.is_active(batch_id)}


@router.get("/{batch_id}/certificates")
async def list_certificates(
    batch_id: str,
    status: Optional[CertificateStatus] = None,
    skip: int = 0,
    limit: int = 100,
    services: Services = Depends(get_services),
):
    """Paginated list of certificate records for a batch."""
    await services.batch_service.get_batch(batch_id)
    records = await services.certificates.list_by_batch(batch_id, status=status, skip=skip, limit=limit)
    return {"records": [r.to_dict() for r in records]}


@router.get("/{batch_id}/progress")
async def get_progress(batch_id: str, services: Services = Depends(get_services)):
    """Return current batch progress counts."""
    return await services.batch_service.progress(batch_id)


# ── Generation ─────────────────────────────────────────────────────────────────

@router.post("/{batch_id}/generate", status_code=202)
async def generate(batch_id: str, services: Services = Depends(get_services)):
    """Queue the batch on the worker pool."""
    await services.batch_service.get_batch(batch_id)
    queued = services.workers.enqueue(batch_id)
    return {"batch_id": batch_id, "queued": queued}


@router.post("/{batch_id}/cancel")
async def cancel(batch_id: str, services: Services = Depends(get_services)):
    if not services.workers.cancel(batch_id):
        raise HTTPException(status_code=404, detail="Batch is not queued or running.")
    return {"batch_id": batch_id, "cancelled": True}


@router.post("/{batch_id}/retry", status_code=202)
async def retry_failed(batch_id: str, services: Services = Depends(get_services)):
    """Reset failed records to PENDING and re-queue the batch."""
    count = await services.batch_service.reset_failed(batch_id)
    queued = services.workers.enqueue(batch_id)
    return {"message": f"Retrying {count} failed records.", "reset": count, "queued": queued}


# ── Archive / email ────────────────────────────────────────────────────────────

@router.post("/{batch_id}/archive")
async def archive(batch_id: str, services: Services = Depends(get_services)):
    """Publish a ZIP of all generated certificates and store its URL on the batch."""
    url = await services.batch_service.build_archive(batch_id)
    return {"batch_id": batch_id, "batch_zip_url": url}


@router.post("/{batch_id}/send-emails", status_code=202)
async def send_emails(
    batch_id: str,
    background_tasks: BackgroundTasks,
    email_subject: str = Form(DEFAULT_SUBJECT),
    email_body: str = Form(DEFAULT_BODY),
    services: Services = Depends(get_services),
):
    """Email certificate links to recipients in the background."""
    await services.batch_service.get_batch(batch_id)
    background_tasks.add_task(services.batch_service.send_emails, batch_id, email_subject, email_body)
    return {"batch_id": batch_id, "message": "Sending emails."}


# ── Delete ─────────────────────────────────────────────────────────────────────

@router.delete("/{batch_id}", status_code=204)
async def delete_batch(batch_id: str, services: Services = Depends(get_services)):
    await services.batch_service.delete_batch(batch_id)
    return Response(status_code=204)
