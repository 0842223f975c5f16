"""
api/deps.py
Service wiring shared by the routers.
"""
from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.repositories.base import BatchRepository, CertificateRepository, TemplateRepository
from app.repositories.mongo import MongoBatchRepository, MongoCertificateRepository, MongoTemplateRepository
from app.services.batch_orchestrator import BatchOrchestrator
from app.services.batch_service import BatchService
from app.services.batch_worker import BatchWorkerPool
from app.services.storage_service import ContentPublisher


@dataclass
class Services:
    templates: TemplateRepository
    batches: BatchRepository
    certificates: CertificateRepository
    publisher: ContentPublisher
    orchestrator: BatchOrchestrator
    batch_service: BatchService
    workers: BatchWorkerPool


def build_services(
    templates: TemplateRepository,
    batches: BatchRepository,
    certificates: CertificateRepository,
    publisher: ContentPublisher,
) -> Services:
    orchestrator = BatchOrchestrator(templates, batches, certificates, publisher)
    return Services(
        templates=templates,
        batches=batches,
        certificates=certificates,
        publisher=publisher,
        orchestrator=orchestrator,
        batch_service=BatchService(templates, batches, certificates, publisher),
        workers=BatchWorkerPool(orchestrator, concurrency=settings.WORKER_CONCURRENCY),
    )


def build_mongo_services(db: AsyncIOMotorDatabase, publisher: ContentPublisher) -> Services:
    return build_services(
        MongoTemplateRepository(db),
        MongoBatchRepository(db),
        MongoCertificateRepository(db),
        publisher,
    )


def get_services() -> Services:
    """Lazy import to avoid circular dependency."""
    from app.main import services
    if services is None:
        raise RuntimeError("Services are not initialized.")
    return services
