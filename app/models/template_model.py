"""
models/template_model.py
MongoDB document schema and Pydantic models for certificate templates.
"""
import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.certificate_model import CertificateData
from app.utils.helpers import generate_id, utcnow

PLACEHOLDER_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TemplateCreate(BaseModel):
    """Input model for creating a template."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    template_type: str = "html"
    template_content: str = ""
    placeholders: List[str] = Field(default_factory=list)

    @field_validator("placeholders")
    @classmethod
    def check_placeholders(cls, value: List[str]) -> List[str]:
        names = [p.strip() for p in value]
        for name in names:
            if not PLACEHOLDER_NAME_RE.match(name):
                raise ValueError(f"Invalid placeholder name: {name!r}")
        if len(set(names)) != len(names):
            raise ValueError("Placeholder names must be unique.")
        return names


class TemplateDocument(TemplateCreate):
    """Full MongoDB document model."""
    id: str = Field(default_factory=generate_id)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "template_type": self.template_type,
            "template_content": self.template_content,
            "placeholders": list(self.placeholders),
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class TemplatePreviewRequest(BaseModel):
    """Sample values for a preview; missing placeholders show as [NAME]."""
    data: CertificateData = Field(default_factory=dict)
