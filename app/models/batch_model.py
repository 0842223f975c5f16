"""
models/batch_model.py
MongoDB document schema and Pydantic models for certificate batches.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.utils.helpers import generate_id, utcnow


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


# Any state but PROCESSING; a PROCESSING batch is owned by another run.
CLAIMABLE_STATUSES = (
    BatchStatus.PENDING,
    BatchStatus.PARTIAL,
    BatchStatus.FAILED,
    BatchStatus.COMPLETED,
)


class BatchDocument(BaseModel):
    """Full MongoDB document model."""
    id: str = Field(default_factory=generate_id)
    template_id: str
    batch_name: str
    total_certificates: int = 0
    generated_certificates: int = 0
    status: BatchStatus = BatchStatus.PENDING
    batch_zip_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "batch_name": self.batch_name,
            "total_certificates": self.total_certificates,
            "generated_certificates": self.generated_certificates,
            "status": self.status,
            "batch_zip_url": self.batch_zip_url,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class BatchResult(BaseModel):
    """Summary of one orchestration run."""
    success: bool = True
    processed: int
    total: int
    batch_id: str
    cancelled: bool = False

    def to_response(self) -> dict:
        return {
            "success": self.success,
            "processed": self.processed,
            "total": self.total,
            "batchId": self.batch_id,
        }


class GenerateRequest(BaseModel):
    """Body of the synchronous trigger: {"batchId": "..."}."""
    batch_id: str = Field(alias="batchId", min_length=1)
