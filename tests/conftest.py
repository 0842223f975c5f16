"""
Test configuration and fixtures.
"""
import os
from typing import AsyncGenerator, List

import pytest
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("EMAIL_DELAY_SECONDS", "0")

from app.api.deps import Services, build_services, get_services
from app.core.config import settings
from app.models.batch_model import BatchDocument
from app.models.certificate_model import CertificateDocument
from app.models.template_model import TemplateDocument
from app.services.batch_orchestrator import BatchOrchestrator
from tests.mocks.factories import SCORE_TEMPLATE, fake
from tests.mocks.fake_stores import (
    FakePublisher,
    InMemoryBatchRepository,
    InMemoryCertificateRepository,
    InMemoryTemplateRepository,
)


@pytest.fixture(autouse=True)
def no_email_delay(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_DELAY_SECONDS", 0)


@pytest.fixture
def templates() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def batches() -> InMemoryBatchRepository:
    return InMemoryBatchRepository()


@pytest.fixture
def certificates() -> InMemoryCertificateRepository:
    return InMemoryCertificateRepository()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def orchestrator(templates, batches, certificates, publisher) -> BatchOrchestrator:
    return BatchOrchestrator(templates, batches, certificates, publisher, record_timeout=1.0, escape_values=False)


@pytest.fixture
async def score_template(templates) -> TemplateDocument:
    template = TemplateDocument(
        name="Course completion",
        template_content=SCORE_TEMPLATE,
        placeholders=["name", "score"],
    )
    await templates.create(template)
    return template


@pytest.fixture
def make_batch(batches, certificates):
    """Create a batch with one pending certificate per data row."""

    async def _make(template: TemplateDocument, rows: List[dict], **fields) -> tuple:
        batch = BatchDocument(
            template_id=template.id,
            batch_name=fields.pop("batch_name", fake.catch_phrase()),
            total_certificates=fields.pop("total_certificates", len(rows)),
            **fields,
        )
        await batches.create(batch)
        docs = [
            CertificateDocument(
                batch_id=batch.id,
                recipient_name=str(row.get("name", "Unknown")),
                recipient_email=row.get("email"),
                certificate_data=row,
            )
            for row in rows
        ]
        await certificates.create_many(docs)
        return batch, docs

    return _make


@pytest.fixture
async def services(templates, batches, certificates, publisher) -> AsyncGenerator[Services, None]:
    built = build_services(templates, batches, certificates, publisher)
    built.orchestrator.record_timeout = 1.0
    built.workers.start()
    yield built
    await built.workers.stop()


@pytest.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the in-memory services."""
    from app.main import app

    app.dependency_overrides[get_services] = lambda: services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
