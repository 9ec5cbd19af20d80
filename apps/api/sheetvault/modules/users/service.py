from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from sheetvault.core.errors import BadRequest, NotFound
from sheetvault.core.ids import new_ulid, now_iso


def normalize_username(raw: Optional[str]) -> str:
    return (raw or "").strip().lower()


def find_user_by_username(conn: Connection, username: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        text("SELECT id, username, created_at FROM users WHERE username = :u"),
        {"u": normalize_username(username)},
    ).mappings().first()
    return dict(row) if row else None


def user_exists(conn: Connection, user_id: str) -> bool:
    row = conn.execute(text("SELECT 1 FROM users WHERE id = :id"), {"id": user_id}).first()
    return row is not None


def upsert_user(engine: Engine, username: Optional[str]) -> Dict[str, Any]:
    """Login by name: return the existing user or create it. Idempotent."""
    name = normalize_username(username)
    if not name:
        raise BadRequest("username is required", "missing_fields")

    with engine.begin() as conn:
        existing = find_user_by_username(conn, name)
        if existing:
            return existing
        try:
            conn.execute(
                text("INSERT INTO users (id, username, created_at) VALUES (:id, :u, :ts)"),
                {"id": new_ulid(), "u": name, "ts": now_iso()},
            )
        except IntegrityError:
            # lost a race with a concurrent login of the same name
            pass

    with engine.connect() as conn:
        user = find_user_by_username(conn, name)
    if user is None:
        raise NotFound("user not found", "user_not_found")
    return user


def get_user_by_username(engine: Engine, username: str) -> Dict[str, Any]:
    with engine.connect() as conn:
        user = find_user_by_username(conn, username)
    if user is None:
        raise NotFound("user not found", "user_not_found")
    return user
