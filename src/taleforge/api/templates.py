from __future__ import annotations

from fastapi import APIRouter, Depends

from taleforge.api.dependencies import get_template_loader
from taleforge.services.templates import TemplateLoader

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.get("")
def list_templates(loader: TemplateLoader = Depends(get_template_loader)):
    """List metadata for every available scenario."""
    return [m.model_dump() for m in loader.list_metadata()]


@router.get("/{template_id}")
def get_template(
    template_id: str,
    loader: TemplateLoader = Depends(get_template_loader),
):
    """Get a full scenario template."""
    return loader.load(template_id).model_dump(mode="json")
