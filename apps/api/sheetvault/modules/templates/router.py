from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from sheetvault.core.db import get_engine

from .schemas import TemplateOut, TemplateSummaryOut
from .service import get_template_by_slug, list_templates

router = APIRouter(tags=["templates"])


@router.get("/templates", response_model=List[TemplateSummaryOut])
def api_list_templates(engine: Engine = Depends(get_engine)) -> List[TemplateSummaryOut]:
    return list_templates(engine)


@router.get("/templates/{slug}", response_model=TemplateOut)
def api_get_template(slug: str, engine: Engine = Depends(get_engine)) -> TemplateOut:
    return get_template_by_slug(engine, slug)
