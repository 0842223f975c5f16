"""
services/batch_service.py
Batch lifecycle around the generation run: creation from spreadsheet rows,
progress, retries, archives, email delivery and cascading deletes.
"""
import asyncio
import io
import zipfile
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from app.core.config import settings
from app.core.exceptions import BatchBusyError, NotFoundError, ValidationFailedError
from app.models.batch_model import BatchDocument, BatchStatus
from app.models.certificate_model import (
    CertificateCreate,
    CertificateDocument,
    CertificateProgress,
    CertificateStatus,
)
from app.models.template_model import TemplateDocument
from app.repositories.base import BatchRepository, CertificateRepository, TemplateRepository
from app.services.email_service import send_certificate_email
from app.services.storage_service import ContentPublisher
from app.services.template_renderer import Scalar, render_template
from app.utils.helpers import batch_archive_key, get_logger, safe_filename, utcnow

logger = get_logger(__name__)

PAGE_SIZE = 500

EmailSender = Callable[[str, str, str, Mapping[str, Scalar]], Awaitable[None]]


class BatchService:
    def __init__(
        self,
        templates: TemplateRepository,
        batches: BatchRepository,
        certificates: CertificateRepository,
        publisher: ContentPublisher,
        email_sender: EmailSender = send_certificate_email,
        escape_values: bool = settings.ESCAPE_PLACEHOLDER_VALUES,
    ):
        self.templates = templates
        self.batches = batches
        self.certificates = certificates
        self.publisher = publisher
        self.email_sender = email_sender
        self.escape_values = escape_values

    # ── Lookups ────────────────────────────────────────────────────────────────

    async def get_template(self, template_id: str) -> TemplateDocument:
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        return template

    async def get_batch(self, batch_id: str) -> BatchDocument:
        batch = await self.batches.get(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    async def list_batches(self, search: Optional[str] = None, limit: int = 100) -> List[dict]:
        """Batches newest first, each with its template name; search matches either name."""
        template_ids = None
        if search:
            template_ids = [t.id for t in await self.templates.list(search=search, limit=1000)]
        batches = await self.batches.list(search=search, template_ids=template_ids, limit=limit)
        names: Dict[str, Optional[str]] = {}
        items = []
        for batch in batches:
            if batch.template_id not in names:
                template = await self.templates.get(batch.template_id)
                names[batch.template_id] = template.name if template else None
            items.append({**batch.to_dict(), "template_name": names[batch.template_id]})
        return items

    async def iter_certificates(
        self, batch_id: str, status: Optional[CertificateStatus] = None
    ) -> List[CertificateDocument]:
        """All certificates of a batch, fetched page by page."""
        results: List[CertificateDocument] = []
        skip = 0
        while True:
            page = await self.certificates.list_by_batch(batch_id, status=status, skip=skip, limit=PAGE_SIZE)
            results.extend(page)
            if len(page) < PAGE_SIZE:
                return results
            skip += PAGE_SIZE

    # ── Creation ───────────────────────────────────────────────────────────────

    async def create_batch(
        self,
        template_id: str,
        batch_name: str,
        rows: Sequence[CertificateCreate],
    ) -> BatchDocument:
        """Create a pending batch and one pending certificate per row."""
        template = await self.get_template(template_id)
        if not template.is_active:
            raise ValidationFailedError(f"Template {template_id} is not active.")
        if not batch_name.strip():
            raise ValidationFailedError("Batch name is required.")
        if not rows:
            raise ValidationFailedError("A batch needs at least one certificate row.")

        batch = BatchDocument(
            template_id=template.id,
            batch_name=batch_name.strip(),
            total_certificates=len(rows),
        )
        await self.batches.create(batch)

        certificates = [
            CertificateDocument(
                batch_id=batch.id,
                recipient_name=row.recipient_name,
                recipient_email=str(row.recipient_email) if row.recipient_email else None,
                certificate_data=row.certificate_data,
            )
            for row in rows
        ]
        try:
            await self.certificates.create_many(certificates)
        except Exception:
            logger.error(f"Batch {batch.id}: inserting certificates failed; removing batch.")
            await self.batches.delete_many([batch.id])
            raise

        logger.info(f"Batch {batch.id}: {len(certificates)} records inserted.")
        return batch

    # ── Progress / retry ───────────────────────────────────────────────────────

    async def progress(self, batch_id: str) -> CertificateProgress:
        await self.get_batch(batch_id)
        counts = await self.certificates.count_by_status(batch_id)
        generated = counts.get(CertificateStatus.GENERATED.value, 0)
        failed = counts.get(CertificateStatus.FAILED.value, 0)
        pending = counts.get(CertificateStatus.PENDING.value, 0)
        total = generated + failed + pending
        return CertificateProgress(
            batch_id=batch_id,
            total=total,
            generated=generated,
            failed=failed,
            pending=pending,
            done=pending == 0 and total > 0,
        )

    async def reset_failed(self, batch_id: str) -> int:
        """Put failed certificates back to pending so the next run retries them."""
        batch = await self.get_batch(batch_id)
        if batch.status == BatchStatus.PROCESSING:
            raise BatchBusyError(batch_id, batch.status)
        count = await self.certificates.reset_failed(batch_id)
        if count == 0:
            raise NotFoundError("Failed certificates for batch", batch_id)
        logger.info(f"[{batch_id}] Reset {count} failed certificates to pending.")
        return count

    # ── Archive ────────────────────────────────────────────────────────────────

    async def build_archive(self, batch_id: str) -> str:
        """
        Zip every generated certificate of the batch and publish the archive.

        The HTML is rendered again from the stored data; rendering is
        deterministic so it matches what was published per certificate.
        """
        batch = await self.get_batch(batch_id)
        template = await self.get_template(batch.template_id)
        generated = await self.iter_certificates(batch_id, status=CertificateStatus.GENERATED)
        if not generated:
            raise ValidationFailedError("Batch has no generated certificates to archive.")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for certificate in generated:
                html = render_template(
                    template.template_content or "",
                    certificate.certificate_data,
                    escape=self.escape_values,
                )
                arcname = f"{safe_filename(certificate.recipient_name)}_{certificate.id[:8]}.html"
                zf.writestr(arcname, html)

        url = await self.publisher.publish(batch_archive_key(batch_id), buffer.getvalue(), "application/zip")
        await self.batches.set_archive_url(batch_id, url)
        logger.info(f"[{batch_id}] Archived {len(generated)} certificates: {url}")
        return url

    # ── Email ──────────────────────────────────────────────────────────────────

    async def send_emails(self, batch_id: str, subject: str, body: str) -> Dict[str, int]:
        """
        Email each generated certificate's link to its recipient.

        Records without an address, or already emailed, are skipped. A failed
        send is logged and counted; the loop continues.
        """
        await self.get_batch(batch_id)
        sent = failed = skipped = 0
        for certificate in await self.iter_certificates(batch_id, status=CertificateStatus.GENERATED):
            if not certificate.recipient_email or certificate.emailed_at is not None:
                skipped += 1
                continue
            data: Dict[str, Scalar] = {
                **certificate.certificate_data,
                "name": certificate.recipient_name,
                "certificate_url": certificate.certificate_url or "",
            }
            try:
                await self.email_sender(certificate.recipient_email, subject, body, data)
                await self.certificates.mark_emailed(certificate.id)
                sent += 1
            except Exception as e:
                failed += 1
                logger.error(f"[{batch_id}] Email to {certificate.recipient_email} failed: {e}")
            finally:
                # Delay between sends (batch-safe)
                await asyncio.sleep(settings.EMAIL_DELAY_SECONDS)

        logger.info(f"[{batch_id}] Emails sent={sent} failed={failed} skipped={skipped}")
        return {"sent": sent, "failed": failed, "skipped": skipped}

    # ── Deletion ───────────────────────────────────────────────────────────────

    async def delete_batch(self, batch_id: str) -> None:
        batch = await self.get_batch(batch_id)
        if batch.status == BatchStatus.PROCESSING:
            raise BatchBusyError(batch_id, batch.status)
        removed = await self.certificates.delete_by_batches([batch_id])
        await self.batches.delete_many([batch_id])
        logger.info(f"[{batch_id}] Deleted batch and {removed} certificates.")

    async def delete_template(self, template_id: str) -> None:
        """Delete a template together with its batches and their certificates."""
        await self.get_template(template_id)
        batch_ids = await self.batches.list_ids_by_template(template_id)
        for batch_id in batch_ids:
            batch = await self.batches.get(batch_id)
            if batch is not None and batch.status == BatchStatus.PROCESSING:
                raise BatchBusyError(batch_id, batch.status)
        await self.certificates.delete_by_batches(batch_ids)
        await self.batches.delete_many(batch_ids)
        await self.templates.delete(template_id)
        logger.info(f"Deleted template {template_id} with {len(batch_ids)} batches.")

    async def dashboard(self, recent: int = 5) -> dict:
        return {
            "template_count": await self.templates.count(active_only=True),
            "batch_count": await self.batches.count(),
            "recent_templates": [t.to_dict() for t in await self.templates.list(active_only=True, limit=recent)],
            "recent_batches": await self.list_batches(limit=recent),
            "generated_at": utcnow(),
        }
