from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from sheetvault.core.db import json_dumps, safe_json_loads
from sheetvault.core.errors import NotFound
from sheetvault.core.ids import new_ulid, now_iso
from sheetvault.core.observability import emit

TYPE_CHARACTER = "character"
TYPE_CREW = "crew"

# SQL expression for a template's type; a schema without "type" is a character template
TEMPLATE_TYPE_SQL = "COALESCE(json_extract(t.schema_json, '$.type'), 'character')"


def default_templates_dir() -> Path:
    raw = os.getenv("TEMPLATES_DIR")
    if raw:
        return Path(raw)
    # apps/api/sheetvault/modules/templates/service.py -> sheetvault/templates
    return Path(__file__).resolve().parents[2] / "templates"


def template_type(schema: Dict[str, Any]) -> str:
    return str(schema.get("type") or TYPE_CHARACTER)


def _row_to_template(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d["schema"] = safe_json_loads(d.pop("schema_json", None))
    return d


def get_template(conn: Connection, template_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        text("SELECT id, name, slug, schema_json, created_at FROM templates WHERE id = :id"),
        {"id": template_id},
    ).mappings().first()
    return _row_to_template(row) if row else None


def list_templates(engine: Engine) -> List[Dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("SELECT id, name, slug, schema_json, created_at FROM templates ORDER BY name")
        ).mappings().all()
    out: List[Dict[str, Any]] = []
    for r in rows:
        t = _row_to_template(r)
        out.append(
            {
                "id": t["id"],
                "name": t["name"],
                "slug": t["slug"],
                "type": template_type(t["schema"]),
                "created_at": t["created_at"],
            }
        )
    return out


def get_template_by_slug(engine: Engine, slug: str) -> Dict[str, Any]:
    with engine.connect() as conn:
        row = conn.execute(
            text("SELECT id, name, slug, schema_json, created_at FROM templates WHERE slug = :slug"),
            {"slug": slug},
        ).mappings().first()
    if not row:
        raise NotFound("template not found", "template_not_found")
    return _row_to_template(row)


def seed_templates(engine: Engine, templates_dir: Optional[Path] = None) -> Dict[str, int]:
    """
    Upsert template definitions ({name, slug, schema}) keyed by slug.
    An existing template is replaced only when schema.version changes.
    """
    src = templates_dir or default_templates_dir()
    counts = {"inserted": 0, "updated": 0, "unchanged": 0}
    if not src.is_dir():
        emit("warning", "templates.seed.missing_dir", f"templates dir not found: {src}", None, __name__)
        return counts

    with engine.begin() as conn:
        for path in sorted(src.glob("*.json")):
            definition = json.loads(path.read_text(encoding="utf-8"))
            schema = definition.get("schema") or {}
            existing = conn.execute(
                text("SELECT id, schema_json FROM templates WHERE slug = :slug"),
                {"slug": definition["slug"]},
            ).mappings().first()

            if existing is None:
                conn.execute(
                    text(
                        "INSERT INTO templates (id, name, slug, schema_json, created_at) "
                        "VALUES (:id, :name, :slug, :schema, :ts)"
                    ),
                    {
                        "id": new_ulid(),
                        "name": definition["name"],
                        "slug": definition["slug"],
                        "schema": json_dumps(schema),
                        "ts": now_iso(),
                    },
                )
                counts["inserted"] += 1
                emit("info", "templates.seeded", f"seeded {definition['name']}", None, __name__)
                continue

            current = safe_json_loads(existing["schema_json"])
            if current.get("version") == schema.get("version"):
                counts["unchanged"] += 1
                continue

            conn.execute(
                text("UPDATE templates SET name = :name, schema_json = :schema WHERE id = :id"),
                {"name": definition["name"], "schema": json_dumps(schema), "id": existing["id"]},
            )
            counts["updated"] += 1
            emit(
                "info",
                "templates.updated",
                f"updated {definition['name']} to v{schema.get('version')}",
                None,
                __name__,
            )
    return counts
