"""
models/certificate_model.py
MongoDB document schema and Pydantic models for certificate records.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, EmailStr, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from app.utils.helpers import generate_id, utcnow

# Only flat scalars may be substituted into a template. StrictBool comes first
# so True is not coerced to 1.
ScalarValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
CertificateData = Dict[str, ScalarValue]


class CertificateStatus(str, Enum):
    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"


class CertificateCreate(BaseModel):
    """Input model for one recipient row of a new batch."""
    recipient_name: str
    recipient_email: Optional[EmailStr] = None
    certificate_data: CertificateData = Field(default_factory=dict)


class CertificateDocument(BaseModel):
    """Full MongoDB document model."""
    id: str = Field(default_factory=generate_id)
    batch_id: str
    recipient_name: str
    recipient_email: Optional[str] = None
    certificate_data: CertificateData = Field(default_factory=dict)
    status: CertificateStatus = CertificateStatus.PENDING
    certificate_url: Optional[str] = None
    error_message: Optional[str] = None
    emailed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "recipient_name": self.recipient_name,
            "recipient_email": self.recipient_email,
            "certificate_data": dict(self.certificate_data),
            "status": self.status,
            "certificate_url": self.certificate_url,
            "error_message": self.error_message,
            "emailed_at": self.emailed_at,
            "created_at": self.created_at,
        }


class CertificateProgress(BaseModel):
    batch_id: str
    total: int
    generated: int
    failed: int
    pending: int
    done: bool
