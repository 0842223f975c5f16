"""
api/templates.py
FastAPI router for certificate templates.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response

from app.api.deps import Services, get_services
from app.core.exceptions import NotFoundError
from app.models.template_model import TemplateCreate, TemplateDocument, TemplatePreviewRequest
from app.services.template_renderer import malformed_placeholders, preview_template, undeclared_placeholders
from app.utils.helpers import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api/templates", tags=["Templates"])


@router.post("", status_code=201)
async def create_template(body: TemplateCreate, services: Services = Depends(get_services)):
    """
    Create a template. Markers not in the placeholder list, and spaced
    markers that will never be substituted, are reported back.
    """
    template = TemplateDocument(**body.model_dump())
    await services.templates.create(template)
    undeclared = undeclared_placeholders(template.template_content, template.placeholders)
    if undeclared:
        logger.warning(f"Template {template.id} uses undeclared placeholders: {undeclared}")
    malformed = malformed_placeholders(template.template_content)
    if malformed:
        logger.warning(f"Template {template.id} has markers that will not be substituted: {malformed}")
    logger.info(f"Template created: {template.id} ({template.name})")
    return {
        **template.to_dict(),
        "undeclared_placeholders": undeclared,
        "malformed_placeholders": malformed,
    }


@router.get("")
async def list_templates(
    search: Optional[str] = None,
    active_only: bool = False,
    limit: int = 100,
    services: Services = Depends(get_services),
):
    templates = await services.templates.list(search=search, active_only=active_only, limit=limit)
    return {"templates": [t.to_dict() for t in templates]}


@router.get("/{template_id}")
async def get_template(template_id: str, services: Services = Depends(get_services)):
    template = await services.templates.get(template_id)
    if template is None:
        raise NotFoundError("Template", template_id)
    return template.to_dict()


@router.post("/{template_id}/preview")
async def preview(
    template_id: str,
    body: Optional[TemplatePreviewRequest] = None,
    services: Services = Depends(get_services),
):
    """Render the template with sample data; unsupplied placeholders show as [NAME]."""
    template = await services.templates.get(template_id)
    if template is None:
        raise NotFoundError("Template", template_id)
    data = body.data if body else {}
    return {"html": preview_template(template.template_content, template.placeholders, data)}


@router.delete("/{template_id}", status_code=204)
async def delete_template(template_id: str, services: Services = Depends(get_services)):
    """Delete a template and, with it, every batch that uses it."""
    await services.batch_service.delete_template(template_id)
    return Response(status_code=204)
