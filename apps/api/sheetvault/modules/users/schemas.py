from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class UserCreateIn(BaseModel):
    username: Optional[str] = None


class UserOut(BaseModel):
    id: str
    username: str
    created_at: Optional[str] = None
