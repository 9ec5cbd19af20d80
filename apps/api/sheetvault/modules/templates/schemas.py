from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

TemplateType = Literal["character", "crew"]


class TemplateSummaryOut(BaseModel):
    id: str
    name: str
    slug: str
    type: TemplateType = "character"
    created_at: Optional[str] = None


class TemplateOut(BaseModel):
    id: str
    name: str
    slug: str
    schema_: Dict[str, Any] = Field(default_factory=dict, alias="schema")
    created_at: Optional[str] = None
