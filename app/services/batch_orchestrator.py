"""
services/batch_orchestrator.py
Runs certificate generation for one batch.

A run claims the batch, renders and publishes every pending certificate one
at a time, and finally writes the aggregate status. A failing certificate is
marked failed and the loop moves on; only lookup and finalization errors
reach the caller.
"""
import asyncio
from typing import Optional

from app.core.config import settings
from app.core.exceptions import BatchBusyError, BatchFinalizationError, NotFoundError
from app.models.batch_model import CLAIMABLE_STATUSES, BatchDocument, BatchResult, BatchStatus
from app.models.certificate_model import CertificateDocument, CertificateStatus
from app.models.template_model import TemplateDocument
from app.repositories.base import BatchRepository, CertificateRepository, TemplateRepository
from app.services.batch_status import aggregate_batch_status, summarize_failures
from app.services.storage_service import ContentPublisher
from app.services.template_renderer import malformed_placeholders, render_template, undeclared_placeholders
from app.utils.helpers import certificate_object_key, get_logger

logger = get_logger(__name__)

HTML_CONTENT_TYPE = "text/html"


class BatchOrchestrator:
    def __init__(
        self,
        templates: TemplateRepository,
        batches: BatchRepository,
        certificates: CertificateRepository,
        publisher: ContentPublisher,
        record_timeout: Optional[float] = settings.RECORD_TIMEOUT_SECONDS,
        escape_values: bool = settings.ESCAPE_PLACEHOLDER_VALUES,
    ):
        self.templates = templates
        self.batches = batches
        self.certificates = certificates
        self.publisher = publisher
        self.record_timeout = record_timeout
        self.escape_values = escape_values

    async def run_batch(self, batch_id: str, cancel_event: Optional[asyncio.Event] = None) -> BatchResult:
        """
        Generate all pending certificates of a batch.

        Raises:
            NotFoundError: batch or its template does not exist
            BatchBusyError: another run holds the batch
            BatchFinalizationError: the closing batch update failed
        """
        batch = await self.batches.get(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        template = await self.templates.get(batch.template_id)
        if template is None:
            raise NotFoundError("Template", batch.template_id)

        claimed = await self.batches.claim(batch_id, CLAIMABLE_STATUSES)
        if claimed is None:
            raise BatchBusyError(batch_id, batch.status)

        try:
            return await self._process(claimed, template, cancel_event)
        except asyncio.CancelledError:
            logger.warning(f"[{batch_id}] Run interrupted; releasing batch.")
            await self._release(batch_id, BatchStatus.PARTIAL, "Generation was interrupted")
            raise
        except Exception as e:
            logger.error(f"[{batch_id}] Run failed: {e}", exc_info=True)
            await self._release(batch_id, BatchStatus.FAILED, str(e))
            raise

    async def _process(
        self,
        batch: BatchDocument,
        template: TemplateDocument,
        cancel_event: Optional[asyncio.Event],
    ) -> BatchResult:
        body = template.template_content or ""
        unknown = undeclared_placeholders(body, template.placeholders)
        if unknown:
            logger.warning(f"[{batch.id}] Template {template.id} uses undeclared placeholders: {unknown}")
        spaced = malformed_placeholders(body)
        if spaced:
            logger.warning(f"[{batch.id}] Template {template.id} has markers that will not be substituted: {spaced}")

        pending = await self.certificates.list_pending(batch.id)
        logger.info(f"[{batch.id}] Processing {len(pending)} certificates")
        if not pending:
            return await self._finish_empty(batch)

        attempted = 0
        succeeded = 0
        cancelled = False
        for certificate in pending:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.warning(f"[{batch.id}] Cancelled after {attempted} of {len(pending)} certificates")
                break
            attempted += 1
            if await self._process_record(batch.id, body, certificate):
                succeeded += 1

        if cancelled:
            status = BatchStatus.PARTIAL
            error_message = f"Cancelled after {attempted} of {len(pending)} certificates"
        else:
            status = aggregate_batch_status(attempted, succeeded)
            error_message = summarize_failures(attempted, succeeded)

        await self._finalize(batch.id, status, error_message)
        logger.info(f"[{batch.id}] Finished: {succeeded}/{attempted} generated, status={status.value}")
        return BatchResult(
            success=True,
            processed=succeeded,
            total=attempted,
            batch_id=batch.id,
            cancelled=cancelled,
        )

    async def _process_record(self, batch_id: str, body: str, certificate: CertificateDocument) -> bool:
        try:
            url = await asyncio.wait_for(self._generate(body, certificate), timeout=self.record_timeout)
            logger.info(f"[{batch_id}] Generated certificate {certificate.id}: {url}")
            return True
        except asyncio.TimeoutError:
            message = f"Timed out after {self.record_timeout:g}s"
        except Exception as e:
            message = str(e) or type(e).__name__

        logger.error(f"[{batch_id}] Failed for certificate {certificate.id}: {message}")
        try:
            await self.certificates.update_status(
                certificate.id, CertificateStatus.FAILED, error_message=message
            )
        except Exception as e:
            logger.error(f"[{batch_id}] Could not mark certificate {certificate.id} as failed: {e}")
        return False

    async def _generate(self, body: str, certificate: CertificateDocument) -> str:
        rendered = render_template(body, certificate.certificate_data, escape=self.escape_values)
        url = await self.publisher.publish(
            certificate_object_key(certificate.id),
            rendered.encode("utf-8"),
            HTML_CONTENT_TYPE,
        )
        updated = await self.certificates.update_status(
            certificate.id, CertificateStatus.GENERATED, certificate_url=url
        )
        if not updated:
            raise NotFoundError("Certificate", certificate.id)
        return url

    async def _finish_empty(self, batch: BatchDocument) -> BatchResult:
        """
        No pending records: an empty batch completes, anything else gets back
        the status and message it had when it was claimed.
        """
        if batch.total_certificates == 0:
            await self._finalize(batch.id, BatchStatus.COMPLETED, None)
        else:
            logger.info(f"[{batch.id}] Nothing pending; restoring status {batch.status}")
            if not await self.batches.set_status(batch.id, BatchStatus(batch.status), batch.error_message):
                raise BatchFinalizationError(batch.id, "batch no longer exists")
        return BatchResult(success=True, processed=0, total=0, batch_id=batch.id)

    async def _finalize(self, batch_id: str, status: BatchStatus, error_message: Optional[str]) -> None:
        try:
            counts = await self.certificates.count_by_status(batch_id)
            updated = await self.batches.finalize(
                batch_id,
                status,
                generated_count=counts.get(CertificateStatus.GENERATED.value, 0),
                error_message=error_message,
            )
        except Exception as e:
            raise BatchFinalizationError(batch_id, str(e)) from e
        if not updated:
            raise BatchFinalizationError(batch_id, "batch no longer exists")

    async def _release(self, batch_id: str, status: BatchStatus, message: str) -> None:
        """Best effort: do not leave a batch stuck in PROCESSING."""
        try:
            await self.batches.set_status(batch_id, status, message)
        except Exception as e:
            logger.error(f"[{batch_id}] Could not release batch: {e}")
