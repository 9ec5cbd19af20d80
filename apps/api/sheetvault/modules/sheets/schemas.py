from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PermissionLevel = Literal["owner", "crew_member", "shared", "none"]


class SheetCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    template_id: Optional[str] = Field(None, alias="templateId")
    name: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class SheetUpdateIn(BaseModel):
    name: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class SheetOut(BaseModel):
    id: str
    user_id: str
    template_id: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    template_name: Optional[str] = None
    template_slug: Optional[str] = None
    template_type: Optional[str] = None
    user_name: Optional[str] = None
    permission: Optional[PermissionLevel] = None


class SheetDetailOut(SheetOut):
    template_schema: Dict[str, Any] = Field(default_factory=dict)


class SuccessOut(BaseModel):
    success: bool = True


class ShareCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")


class ShareCreateOut(BaseModel):
    success: bool = True
    shared_with: str = Field(serialization_alias="sharedWith")


class ShareOut(BaseModel):
    id: str
    user_id: str
    username: str
    shared_at: Optional[str] = None


class CrewOut(BaseModel):
    id: str
    name: str


class CrewMemberOut(BaseModel):
    id: str
    name: str
    owner_name: str
    playbook: Optional[Any] = None


class ImageOut(BaseModel):
    image: str
