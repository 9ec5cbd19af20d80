from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from sheetvault.core.db import get_engine

from .schemas import UserCreateIn, UserOut
from .service import get_user_by_username, upsert_user

router = APIRouter(tags=["users"])


@router.post("/users", response_model=UserOut)
def api_login(body: UserCreateIn, engine: Engine = Depends(get_engine)) -> UserOut:
    return upsert_user(engine, body.username)


@router.get("/users/{username}", response_model=UserOut)
def api_get_user(username: str, engine: Engine = Depends(get_engine)) -> UserOut:
    return get_user_by_username(engine, username)
