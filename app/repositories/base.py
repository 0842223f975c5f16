"""
repositories/base.py
Narrow storage contracts the services depend on.

The orchestrator only sees these protocols, never a database client, so the
MongoDB implementations can be swapped for in-memory ones in tests.
"""
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from app.models.batch_model import BatchDocument, BatchStatus
from app.models.certificate_model import CertificateDocument, CertificateStatus
from app.models.template_model import TemplateDocument


class TemplateRepository(Protocol):
    async def create(self, template: TemplateDocument) -> TemplateDocument:
        ...

    async def get(self, template_id: str) -> Optional[TemplateDocument]:
        ...

    async def list(
        self,
        search: Optional[str] = None,
        active_only: bool = False,
        limit: int = 100,
    ) -> List[TemplateDocument]:
        ...

    async def delete(self, template_id: str) -> bool:
        ...

    async def count(self, active_only: bool = False) -> int:
        ...


class BatchRepository(Protocol):
    async def create(self, batch: BatchDocument) -> BatchDocument:
        ...

    async def get(self, batch_id: str) -> Optional[BatchDocument]:
        ...

    async def list(
        self,
        search: Optional[str] = None,
        template_ids: Optional[Sequence[str]] = None,
        limit: int = 100,
    ) -> List[BatchDocument]:
        ...

    async def list_ids_by_template(self, template_id: str) -> List[str]:
        ...

    async def claim(self, batch_id: str, from_statuses: Iterable[BatchStatus]) -> Optional[BatchDocument]:
        """
        Atomically move the batch to PROCESSING if its status is one of
        from_statuses. Returns the batch as it was just before the claim,
        or None if not claimed.
        """
        ...

    async def set_status(self, batch_id: str, status: BatchStatus, error_message: Optional[str] = None) -> bool:
        ...

    async def finalize(
        self,
        batch_id: str,
        status: BatchStatus,
        generated_count: int,
        error_message: Optional[str] = None,
    ) -> bool:
        ...

    async def set_archive_url(self, batch_id: str, url: str) -> bool:
        ...

    async def delete_many(self, batch_ids: Sequence[str]) -> int:
        ...

    async def count(self) -> int:
        ...


class CertificateRepository(Protocol):
    async def create_many(self, certificates: Sequence[CertificateDocument]) -> int:
        ...

    async def list_pending(self, batch_id: str) -> List[CertificateDocument]:
        ...

    async def list_by_batch(
        self,
        batch_id: str,
        status: Optional[CertificateStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[CertificateDocument]:
        ...

    async def update_status(
        self,
        certificate_id: str,
        status: CertificateStatus,
        certificate_url: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        ...

    async def count_by_status(self, batch_id: str) -> Dict[str, int]:
        ...

    async def reset_failed(self, batch_id: str) -> int:
        ...

    async def mark_emailed(self, certificate_id: str) -> bool:
        ...

    async def delete_by_batches(self, batch_ids: Sequence[str]) -> int:
        ...
