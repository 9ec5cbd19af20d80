"""
Crew linkage: a character sheet is a member of crew sheet C when its
data.crew equals C's id. Nothing is stored for it; it is recomputed from
sheet documents on every query.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

from sheetvault.modules.templates.service import TEMPLATE_TYPE_SQL, TYPE_CHARACTER, TYPE_CREW


def crew_ref(sheet: Mapping[str, Any]) -> Optional[str]:
    """The crew id a character sheet points at, if any."""
    if sheet.get("template_type", TYPE_CHARACTER) != TYPE_CHARACTER:
        return None
    data = sheet.get("data")
    if not isinstance(data, dict):
        return None
    crew = data.get("crew")
    if isinstance(crew, str) and crew:
        return crew
    return None


def crew_index(sheets: Iterable[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """crew id -> ids of member character sheets, in input order."""
    index: Dict[str, List[str]] = {}
    for sheet in sheets:
        crew = crew_ref(sheet)
        if crew is None:
            continue
        members = index.setdefault(crew, [])
        if sheet["id"] not in members:
            members.append(sheet["id"])
    return index


def has_crew_link(conn: Connection, user_id: str, crew_id: str) -> bool:
    row = conn.execute(
        text(
            "SELECT 1 FROM sheets s JOIN templates t ON t.id = s.template_id "
            f"WHERE s.user_id = :uid AND {TEMPLATE_TYPE_SQL} = :character "
            "AND json_extract(s.data_json, '$.crew') = :crew_id "
            "LIMIT 1"
        ),
        {"uid": user_id, "character": TYPE_CHARACTER, "crew_id": crew_id},
    ).first()
    return row is not None


def list_crews(conn: Connection) -> List[Dict[str, Any]]:
    rows = conn.execute(
        text(
            "SELECT s.id, s.name FROM sheets s JOIN templates t ON t.id = s.template_id "
            f"WHERE {TEMPLATE_TYPE_SQL} = :crew ORDER BY s.name"
        ),
        {"crew": TYPE_CREW},
    ).mappings().all()
    return [dict(r) for r in rows]


def list_crew_members(conn: Connection, crew_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        text(
            "SELECT s.id, s.name, u.username AS owner_name, "
            "json_extract(s.data_json, '$.playbook') AS playbook "
            "FROM sheets s "
            "JOIN templates t ON t.id = s.template_id "
            "JOIN users u ON u.id = s.user_id "
            f"WHERE {TEMPLATE_TYPE_SQL} = :character "
            "AND json_extract(s.data_json, '$.crew') = :crew_id "
            "ORDER BY s.name"
        ),
        {"character": TYPE_CHARACTER, "crew_id": crew_id},
    ).mappings().all()
    return [dict(r) for r in rows]
