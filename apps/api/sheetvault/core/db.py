"""
DB utilities (sqlite default).

Defaults:
- DATABASE_URL: sqlite:///./data/sheetvault.db

The engine is created once on first use and disposed on shutdown. Routers get it
through the `get_engine` dependency; services take it as a parameter.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

DEFAULT_DATABASE_URL = "sqlite:///./data/sheetvault.db"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def _repo_root() -> Path:
    # apps/api/sheetvault/core/db.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def resolve_sqlite_path(database_url: str) -> Optional[Path]:
    if not database_url.startswith("sqlite:///"):
        return None
    p = database_url[len("sqlite:///") :]
    if not p or p == ":memory:":
        return None

    # absolute unix
    if p.startswith("/"):
        return Path(p)

    # absolute windows drive, both C:/ and C:\ forms
    if len(p) >= 3 and p[1] == ":" and (p[2] == "/" or p[2] == "\\"):
        return Path(p)

    # relative -> repo root
    return (_repo_root() / p).resolve()


def _enable_sqlite_fks(dbapi_conn: Any, _record: Any) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def make_engine(url: str) -> Engine:
    connect_args: Dict[str, Any] = {}
    kwargs: Dict[str, Any] = {}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args = {"check_same_thread": False}

    sp = resolve_sqlite_path(url)
    if sp is not None:
        sp.parent.mkdir(parents=True, exist_ok=True)
        url = "sqlite:///" + sp.as_posix()
    elif is_sqlite:
        # in-memory: every connection must see the same database
        kwargs["poolclass"] = StaticPool

    eng = create_engine(url, future=True, connect_args=connect_args, **kwargs)
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_fks)
    return eng


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    global _engine
    if _engine is not None:
        return _engine
    _engine = make_engine(get_database_url())
    return _engine


def reset_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_schema(engine: Engine) -> None:
    # table models register themselves on SQLModel.metadata at import
    from sheetvault.modules.users import models as _users  # noqa: F401
    from sheetvault.modules.templates import models as _templates  # noqa: F401
    from sheetvault.modules.sheets import models as _sheets  # noqa: F401

    SQLModel.metadata.create_all(engine)


def safe_json_loads(v: Any) -> Dict[str, Any]:
    if not v:
        return {}
    if isinstance(v, dict):
        return v
    try:
        loaded = json.loads(v)
    except (TypeError, ValueError):
        return {}
    return loaded if isinstance(loaded, dict) else {}


def json_dumps(v: Any) -> str:
    return json.dumps(v, ensure_ascii=False)


def db_health(engine: Optional[Engine] = None) -> Dict[str, Any]:
    url = get_database_url()
    kind = "sqlite" if url.startswith("sqlite") else "unknown"
    sp = resolve_sqlite_path(url)
    path = str(sp.as_posix()) if sp is not None else url

    try:
        eng = engine or get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "kind": kind, "path": path}
    except Exception as e:
        return {"status": "error", "kind": kind, "path": path, "error": str(e)}
