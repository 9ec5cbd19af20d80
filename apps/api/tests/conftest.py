"""
Shared fixtures.

- `engine`: isolated in-memory database (schema + bundled templates) for
  service-level tests.
- `client`: the FastAPI app against a per-test sqlite file and storage root,
  started through its lifespan.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from sheetvault.core import db as core_db
from sheetvault.main import app
from sheetvault.modules.sheets.service import create_sheet
from sheetvault.modules.templates.service import seed_templates
from sheetvault.modules.users.service import upsert_user

CHARACTER_SLUG = "blades-in-the-dark"
CREW_SLUG = "blades-in-the-dark-crew"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PNG_BYTES_2 = b"\x89PNG\r\n\x1a\n" + b"\x01" * 64


@pytest.fixture
def engine():
    eng = core_db.make_engine("sqlite://")
    core_db.init_schema(eng)
    seed_templates(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    d = tmp_path / "uploads"
    d.mkdir()
    return d


@pytest.fixture
def templates(engine) -> Dict[str, str]:
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT id, slug FROM templates")).mappings().all()
    by_slug = {r["slug"]: r["id"] for r in rows}
    return {"character": by_slug[CHARACTER_SLUG], "crew": by_slug[CREW_SLUG]}


@pytest.fixture
def make_user(engine) -> Callable[[str], str]:
    def _make(username: str) -> str:
        return upsert_user(engine, username)["id"]

    return _make


@pytest.fixture
def make_sheet(engine, templates) -> Callable[..., Dict[str, Any]]:
    def _make(owner_id: str, kind: str = "character", name: str = "Sheet", data: Optional[Dict[str, Any]] = None):
        return create_sheet(engine, owner_id, templates[kind], name, data)

    return _make


@pytest.fixture
def client(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///" + (tmp_path / "test.db").as_posix())
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    core_db.reset_engine()
    with TestClient(app) as c:
        yield c
    core_db.reset_engine()


class Api:
    """Thin helpers over the HTTP surface."""

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self._templates: Dict[str, str] = {}

    def login(self, username: str) -> str:
        r = self.client.post("/api/users", json={"username": username})
        assert r.status_code == 200, r.text
        return r.json()["id"]

    def template_id(self, kind: str) -> str:
        if not self._templates:
            for t in self.client.get("/api/templates").json():
                self._templates[t["type"]] = t["id"]
        return self._templates[kind]

    def create_sheet(self, owner_id: str, kind: str = "character", name: str = "Sheet", data: Optional[dict] = None) -> dict:
        body: Dict[str, Any] = {"userId": owner_id, "templateId": self.template_id(kind), "name": name}
        if data is not None:
            body["data"] = data
        r = self.client.post("/api/sheets", json=body)
        assert r.status_code == 200, r.text
        return r.json()

    def upload(self, sheet_id: str, user_id: str, content: bytes = PNG_BYTES, mime: str = "image/png"):
        return self.client.post(
            f"/api/sheets/{sheet_id}/image",
            params={"userId": user_id},
            files={"file": ("image.png", content, mime)},
        )


@pytest.fixture
def api(client) -> Api:
    return Api(client)
