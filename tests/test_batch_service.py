"""
Unit tests for batch lifecycle operations.
"""
import io
import zipfile
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import BatchBusyError, NotFoundError, ValidationFailedError
from app.models.batch_model import BatchStatus
from app.models.certificate_model import CertificateCreate, CertificateStatus
from app.models.template_model import TemplateDocument
from app.services.batch_service import BatchService
from app.utils.helpers import batch_archive_key, certificate_object_key
from tests.mocks.factories import recipient_rows


@pytest.fixture
def email_sender() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def batch_service(templates, batches, certificates, publisher, email_sender) -> BatchService:
    return BatchService(templates, batches, certificates, publisher, email_sender=email_sender)


class TestCreateBatch:
    async def test_creates_pending_batch_and_records(self, batch_service, score_template, batches, certificates):
        rows = [
            CertificateCreate(recipient_name="Ana", recipient_email="ana@example.com", certificate_data={"name": "Ana", "score": 95}),
            CertificateCreate(recipient_name="Bo", certificate_data={"name": "Bo"}),
        ]

        batch = await batch_service.create_batch(score_template.id, " Spring cohort ", rows)

        stored = batches.items[batch.id]
        assert stored.batch_name == "Spring cohort"
        assert stored.status == BatchStatus.PENDING
        assert stored.total_certificates == 2
        assert stored.generated_certificates == 0
        records = await certificates.list_by_batch(batch.id)
        assert [r.recipient_name for r in records] == ["Ana", "Bo"]
        assert all(r.status == CertificateStatus.PENDING for r in records)
        assert records[0].recipient_email == "ana@example.com"

    async def test_unknown_template(self, batch_service):
        with pytest.raises(NotFoundError):
            await batch_service.create_batch("nope", "Batch", [CertificateCreate(recipient_name="A")])

    async def test_inactive_template(self, batch_service, templates):
        template = TemplateDocument(name="Old", template_content="x", is_active=False)
        await templates.create(template)
        with pytest.raises(ValidationFailedError):
            await batch_service.create_batch(template.id, "Batch", [CertificateCreate(recipient_name="A")])

    async def test_requires_rows(self, batch_service, score_template):
        with pytest.raises(ValidationFailedError):
            await batch_service.create_batch(score_template.id, "Batch", [])

    async def test_failed_insert_removes_batch(self, batch_service, score_template, batches, certificates):
        certificates.create_many = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await batch_service.create_batch(score_template.id, "Batch", [CertificateCreate(recipient_name="A")])

        assert batches.items == {}


class TestProgressAndRetry:
    async def test_progress_counts(self, batch_service, orchestrator, score_template, make_batch, publisher):
        batch, docs = await make_batch(score_template, recipient_rows(3))
        publisher.fail_keys.add(certificate_object_key(docs[0].id))
        await orchestrator.run_batch(batch.id)

        progress = await batch_service.progress(batch.id)

        assert (progress.total, progress.generated, progress.failed, progress.pending) == (3, 2, 1, 0)
        assert progress.done is True

    async def test_reset_failed(self, batch_service, orchestrator, score_template, make_batch, publisher, certificates):
        batch, docs = await make_batch(score_template, recipient_rows(2))
        publisher.fail_keys.add(certificate_object_key(docs[0].id))
        await orchestrator.run_batch(batch.id)

        assert await batch_service.reset_failed(batch.id) == 1
        assert certificates.items[docs[0].id].status == CertificateStatus.PENDING.value
        assert certificates.items[docs[0].id].error_message is None

    async def test_reset_without_failures(self, batch_service, score_template, make_batch):
        batch, _ = await make_batch(score_template, recipient_rows(1))
        with pytest.raises(NotFoundError):
            await batch_service.reset_failed(batch.id)

    async def test_reset_refused_while_processing(self, batch_service, score_template, make_batch):
        batch, _ = await make_batch(score_template, recipient_rows(1), status=BatchStatus.PROCESSING)
        with pytest.raises(BatchBusyError):
            await batch_service.reset_failed(batch.id)


class TestArchive:
    async def test_archive_contains_generated_certificates(self, batch_service, orchestrator, score_template, make_batch, publisher, batches):
        batch, docs = await make_batch(score_template, [{"name": "Ana Lima", "score": 95}, {"name": "Bo", "score": 70}])
        publisher.fail_keys.add(certificate_object_key(docs[1].id))
        await orchestrator.run_batch(batch.id)

        url = await batch_service.build_archive(batch.id)

        key = batch_archive_key(batch.id)
        assert url == f"https://cdn.test/{key}"
        assert publisher.content_types[key] == "application/zip"
        assert batches.items[batch.id].batch_zip_url == url
        with zipfile.ZipFile(io.BytesIO(publisher.objects[key])) as zf:
            names = zf.namelist()
            assert names == [f"Ana_Lima_{docs[0].id[:8]}.html"]
            assert zf.read(names[0]) == publisher.objects[certificate_object_key(docs[0].id)]

    async def test_archive_needs_generated_certificates(self, batch_service, score_template, make_batch):
        batch, _ = await make_batch(score_template, recipient_rows(1))
        with pytest.raises(ValidationFailedError):
            await batch_service.build_archive(batch.id)


class TestSendEmails:
    async def test_emails_generated_recipients_once(self, batch_service, orchestrator, score_template, make_batch, email_sender, certificates):
        rows = [
            {"name": "Ana", "score": 95, "email": "ana@example.com"},
            {"name": "Bo", "score": 80},
        ]
        batch, docs = await make_batch(score_template, rows)
        await orchestrator.run_batch(batch.id)

        summary = await batch_service.send_emails(batch.id, "Hi {{name}}", "Link: {{certificate_url}}")

        assert summary == {"sent": 1, "failed": 0, "skipped": 1}
        recipient, subject, body, data = email_sender.await_args.args
        assert recipient == "ana@example.com"
        assert (subject, body) == ("Hi {{name}}", "Link: {{certificate_url}}")
        assert data["certificate_url"] == certificates.items[docs[0].id].certificate_url
        assert certificates.items[docs[0].id].emailed_at is not None

        again = await batch_service.send_emails(batch.id, "Hi", "Body")
        assert again == {"sent": 0, "failed": 0, "skipped": 2}

    async def test_send_failure_does_not_stop_loop(self, batch_service, orchestrator, score_template, make_batch, email_sender):
        rows = [{"name": n, "email": f"{n.lower()}@example.com"} for n in ("Ana", "Bo", "Cy")]
        batch, _ = await make_batch(score_template, rows)
        await orchestrator.run_batch(batch.id)
        email_sender.side_effect = [None, ConnectionError("smtp down"), None]

        summary = await batch_service.send_emails(batch.id, "s", "b")

        assert summary == {"sent": 2, "failed": 1, "skipped": 0}


class TestDeletion:
    async def test_delete_batch_cascades(self, batch_service, score_template, make_batch, batches, certificates):
        batch, _ = await make_batch(score_template, recipient_rows(2))
        other, other_docs = await make_batch(score_template, recipient_rows(1))

        await batch_service.delete_batch(batch.id)

        assert batch.id not in batches.items
        assert list(certificates.items) == [other_docs[0].id]

    async def test_delete_template_cascades(self, batch_service, score_template, make_batch, templates, batches, certificates):
        await make_batch(score_template, recipient_rows(2))
        await make_batch(score_template, recipient_rows(1))

        await batch_service.delete_template(score_template.id)

        assert templates.items == {}
        assert batches.items == {}
        assert certificates.items == {}

    async def test_delete_refused_while_processing(self, batch_service, score_template, make_batch):
        batch, _ = await make_batch(score_template, recipient_rows(1), status=BatchStatus.PROCESSING)
        with pytest.raises(BatchBusyError):
            await batch_service.delete_batch(batch.id)


async def test_list_batches_searches_template_names(batch_service, score_template, make_batch, templates):
    other_template = TemplateDocument(name="Workshop badge", template_content="{{name}}", placeholders=["name"])
    await templates.create(other_template)
    await make_batch(score_template, recipient_rows(1), batch_name="Alpha")
    await make_batch(other_template, recipient_rows(1), batch_name="Beta")

    found = await batch_service.list_batches(search="workshop")

    assert [b["batch_name"] for b in found] == ["Beta"]
    assert found[0]["template_name"] == "Workshop badge"
