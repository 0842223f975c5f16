"""
repositories/mongo.py
MongoDB (motor) implementations of the storage contracts.
"""
import re
from typing import Dict, Iterable, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument

from app.models.batch_model import BatchDocument, BatchStatus
from app.models.certificate_model import CertificateDocument, CertificateStatus
from app.models.template_model import TemplateDocument
from app.utils.helpers import get_logger, utcnow

logger = get_logger(__name__)

TEMPLATES = "certificate_templates"
BATCHES = "certificate_batches"
CERTIFICATES = "certificates"

NO_OBJECT_ID = {"_id": 0}


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db[TEMPLATES].create_index("id", unique=True)
    await db[BATCHES].create_index("id", unique=True)
    await db[BATCHES].create_index("template_id")
    await db[CERTIFICATES].create_index("id", unique=True)
    await db[CERTIFICATES].create_index("batch_id")
    await db[CERTIFICATES].create_index([("batch_id", 1), ("status", 1)])


class MongoTemplateRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[TEMPLATES]

    async def create(self, template: TemplateDocument) -> TemplateDocument:
        await self.collection.insert_one(template.to_dict())
        return template

    async def get(self, template_id: str) -> Optional[TemplateDocument]:
        doc = await self.collection.find_one({"id": template_id}, NO_OBJECT_ID)
        return TemplateDocument(**doc) if doc else None

    async def list(
        self,
        search: Optional[str] = None,
        active_only: bool = False,
        limit: int = 100,
    ) -> List[TemplateDocument]:
        query: dict = {}
        if active_only:
            query["is_active"] = True
        if search:
            query["$or"] = [{"name": _contains(search)}, {"description": _contains(search)}]
        cursor = self.collection.find(query, NO_OBJECT_ID).sort("created_at", DESCENDING).limit(limit)
        return [TemplateDocument(**doc) async for doc in cursor]

    async def delete(self, template_id: str) -> bool:
        result = await self.collection.delete_one({"id": template_id})
        return result.deleted_count > 0

    async def count(self, active_only: bool = False) -> int:
        return await self.collection.count_documents({"is_active": True} if active_only else {})


class MongoBatchRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[BATCHES]

    async def create(self, batch: BatchDocument) -> BatchDocument:
        await self.collection.insert_one(batch.to_dict())
        return batch

    async def get(self, batch_id: str) -> Optional[BatchDocument]:
        doc = await self.collection.find_one({"id": batch_id}, NO_OBJECT_ID)
        return BatchDocument(**doc) if doc else None

    async def list(
        self,
        search: Optional[str] = None,
        template_ids: Optional[Sequence[str]] = None,
        limit: int = 100,
    ) -> List[BatchDocument]:
        query: dict = {}
        if search:
            clauses: list = [{"batch_name": _contains(search)}]
            if template_ids:
                clauses.append({"template_id": {"$in": list(template_ids)}})
            query["$or"] = clauses
        cursor = self.collection.find(query, NO_OBJECT_ID).sort("created_at", DESCENDING).limit(limit)
        return [BatchDocument(**doc) async for doc in cursor]

    async def list_ids_by_template(self, template_id: str) -> List[str]:
        cursor = self.collection.find({"template_id": template_id}, {"_id": 0, "id": 1})
        return [doc["id"] async for doc in cursor]

    async def claim(self, batch_id: str, from_statuses: Iterable[BatchStatus]) -> Optional[BatchDocument]:
        previous = await self.collection.find_one_and_update(
            {"id": batch_id, "status": {"$in": [BatchStatus(s).value for s in from_statuses]}},
            {"$set": {"status": BatchStatus.PROCESSING.value, "updated_at": utcnow()}},
            projection=NO_OBJECT_ID,
            return_document=ReturnDocument.BEFORE,
        )
        return BatchDocument(**previous) if previous else None

    async def set_status(self, batch_id: str, status: BatchStatus, error_message: Optional[str] = None) -> bool:
        result = await self.collection.update_one(
            {"id": batch_id},
            {"$set": {"status": BatchStatus(status).value, "error_message": error_message, "updated_at": utcnow()}},
        )
        return result.matched_count > 0

    async def finalize(
        self,
        batch_id: str,
        status: BatchStatus,
        generated_count: int,
        error_message: Optional[str] = None,
    ) -> bool:
        result = await self.collection.update_one(
            {"id": batch_id},
            {
                "$set": {
                    "status": BatchStatus(status).value,
                    "generated_certificates": generated_count,
                    "error_message": error_message,
                    "updated_at": utcnow(),
                }
            },
        )
        return result.matched_count > 0

    async def set_archive_url(self, batch_id: str, url: str) -> bool:
        result = await self.collection.update_one(
            {"id": batch_id},
            {"$set": {"batch_zip_url": url, "updated_at": utcnow()}},
        )
        return result.matched_count > 0

    async def delete_many(self, batch_ids: Sequence[str]) -> int:
        if not batch_ids:
            return 0
        result = await self.collection.delete_many({"id": {"$in": list(batch_ids)}})
        return result.deleted_count

    async def count(self) -> int:
        return await self.collection.count_documents({})


class MongoCertificateRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[CERTIFICATES]

    async def create_many(self, certificates: Sequence[CertificateDocument]) -> int:
        if not certificates:
            return 0
        result = await self.collection.insert_many([c.to_dict() for c in certificates])
        return len(result.inserted_ids)

    async def list_pending(self, batch_id: str) -> List[CertificateDocument]:
        cursor = self.collection.find(
            {"batch_id": batch_id, "status": CertificateStatus.PENDING.value}, NO_OBJECT_ID
        ).sort("created_at", 1)
        return [CertificateDocument(**doc) async for doc in cursor]

    async def list_by_batch(
        self,
        batch_id: str,
        status: Optional[CertificateStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[CertificateDocument]:
        query = {"batch_id": batch_id}
        if status:
            query["status"] = CertificateStatus(status).value
        cursor = self.collection.find(query, NO_OBJECT_ID).sort("created_at", 1).skip(skip).limit(limit)
        return [CertificateDocument(**doc) async for doc in cursor]

    async def update_status(
        self,
        certificate_id: str,
        status: CertificateStatus,
        certificate_url: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        fields = {"status": CertificateStatus(status).value, "error_message": error_message}
        if certificate_url is not None:
            fields["certificate_url"] = certificate_url
        result = await self.collection.update_one({"id": certificate_id}, {"$set": fields})
        return result.matched_count > 0

    async def count_by_status(self, batch_id: str) -> Dict[str, int]:
        counts = {status.value: 0 for status in CertificateStatus}
        pipeline = [
            {"$match": {"batch_id": batch_id}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        async for row in self.collection.aggregate(pipeline):
            counts[row["_id"]] = row["count"]
        return counts

    async def reset_failed(self, batch_id: str) -> int:
        result = await self.collection.update_many(
            {"batch_id": batch_id, "status": CertificateStatus.FAILED.value},
            {"$set": {"status": CertificateStatus.PENDING.value, "error_message": None}},
        )
        return result.modified_count

    async def mark_emailed(self, certificate_id: str) -> bool:
        result = await self.collection.update_one({"id": certificate_id}, {"$set": {"emailed_at": utcnow()}})
        return result.matched_count > 0

    async def delete_by_batches(self, batch_ids: Sequence[str]) -> int:
        if not batch_ids:
            return 0
        result = await self.collection.delete_many({"batch_id": {"$in": list(batch_ids)}})
        return result.deleted_count
