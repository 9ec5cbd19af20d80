from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from sheetvault.core.db import json_dumps, safe_json_loads
from sheetvault.core.errors import BadRequest, Conflict, NotFound
from sheetvault.core.ids import new_ulid, now_iso
from sheetvault.core.observability import emit
from sheetvault.core.storage import remove_file_best_effort
from sheetvault.modules.templates.service import TEMPLATE_TYPE_SQL, TYPE_CREW, get_template
from sheetvault.modules.users.service import find_user_by_username, user_exists

from .crew import crew_index
from .permissions import (
    EDIT_LEVELS,
    Permission,
    highest,
    require_permission,
    resolve_permission,
    sheet_exists,
)

# data.image belongs to the image protocol; plain writes never set it
IMAGE_KEY = "image"

_SHEET_SELECT = (
    "SELECT s.id, s.user_id, s.template_id, s.name, s.data_json, s.created_at, s.updated_at, "
    "t.name AS template_name, t.slug AS template_slug, "
    f"{TEMPLATE_TYPE_SQL} AS template_type, u.username AS user_name "
    "FROM sheets s "
    "JOIN templates t ON t.id = s.template_id "
    "JOIN users u ON u.id = s.user_id "
)

_RECENT_FIRST = " ORDER BY s.updated_at DESC, s.rowid DESC"


def _row_to_sheet(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d["data"] = safe_json_loads(d.pop("data_json", None))
    return d


def _get_sheet_row(conn: Connection, sheet_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(text(_SHEET_SELECT + "WHERE s.id = :id"), {"id": sheet_id}).mappings().first()
    return _row_to_sheet(row) if row else None


def load_sheet_data(conn: Connection, sheet_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(text("SELECT data_json FROM sheets WHERE id = :id"), {"id": sheet_id}).first()
    if row is None:
        return None
    return safe_json_loads(row[0])


def write_sheet_data(conn: Connection, sheet_id: str, data: Dict[str, Any]) -> int:
    res = conn.execute(
        text("UPDATE sheets SET data_json = :data, updated_at = :ts WHERE id = :id"),
        {"data": json_dumps(data), "ts": now_iso(), "id": sheet_id},
    )
    return res.rowcount


# -------------------------
# Listing
# -------------------------
def list_visible(engine: Engine, user_id: str) -> List[Dict[str, Any]]:
    """
    Sheets visible to user_id, each tagged with its permission level.

    Buckets are concatenated owner, crew_member, shared; each bucket keeps its
    own most-recently-updated-first order. A sheet reachable through several
    relations appears once, in the bucket of its highest-precedence level.
    """
    with engine.connect() as conn:
        owned = [
            _row_to_sheet(r)
            for r in conn.execute(
                text(_SHEET_SELECT + "WHERE s.user_id = :uid" + _RECENT_FIRST), {"uid": user_id}
            ).mappings().all()
        ]

        crews: List[Dict[str, Any]] = []
        crew_ids = list(crew_index(owned).keys())
        if crew_ids:
            stmt = text(
                _SHEET_SELECT
                + f"WHERE s.id IN :ids AND s.user_id != :uid AND {TEMPLATE_TYPE_SQL} = :crew"
                + _RECENT_FIRST
            ).bindparams(bindparam("ids", expanding=True))
            crews = [
                _row_to_sheet(r)
                for r in conn.execute(stmt, {"ids": crew_ids, "uid": user_id, "crew": TYPE_CREW}).mappings().all()
            ]

        shared = [
            _row_to_sheet(r)
            for r in conn.execute(
                text(
                    _SHEET_SELECT
                    + "JOIN sheet_shares ss ON ss.sheet_id = s.id WHERE ss.shared_with_user_id = :uid"
                    + _RECENT_FIRST
                ),
                {"uid": user_id},
            ).mappings().all()
        ]

    buckets: List[Tuple[Permission, List[Dict[str, Any]]]] = [
        (Permission.OWNER, owned),
        (Permission.CREW_MEMBER, crews),
        (Permission.SHARED, shared),
    ]

    best: Dict[str, Permission] = {}
    for level, sheets in buckets:
        for s in sheets:
            best[s["id"]] = highest([best.get(s["id"], Permission.NONE), level])

    out: List[Dict[str, Any]] = []
    emitted = set()
    for level, sheets in buckets:
        for s in sheets:
            if best[s["id"]] is not level or s["id"] in emitted:
                continue
            emitted.add(s["id"])
            out.append({**s, "permission": level.value})
    return out


# -------------------------
# Sheets
# -------------------------
def get_sheet(engine: Engine, sheet_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    with engine.connect() as conn:
        sheet = _get_sheet_row(conn, sheet_id)
        if sheet is None:
            raise NotFound("sheet not found", "sheet_not_found")
        template = get_template(conn, sheet["template_id"]) or {}
        sheet["template_schema"] = template.get("schema", {})
        if user_id:
            sheet["permission"] = resolve_permission(conn, sheet_id, user_id).value
    return sheet


def create_sheet(
    engine: Engine,
    user_id: Optional[str],
    template_id: Optional[str],
    name: Optional[str],
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if not user_id or not template_id or not name:
        raise BadRequest("userId, templateId, and name are required", "missing_fields")

    with engine.begin() as conn:
        if not user_exists(conn, user_id):
            raise NotFound("user not found", "user_not_found")
        template = get_template(conn, template_id)
        if template is None:
            raise NotFound("template not found", "template_not_found")

        if data:
            sheet_data = copy.deepcopy(data)
            sheet_data.pop(IMAGE_KEY, None)
        else:
            sheet_data = copy.deepcopy(template["schema"].get("defaultData") or {})

        sheet_id = new_ulid()
        now = now_iso()
        conn.execute(
            text(
                "INSERT INTO sheets (id, user_id, template_id, name, data_json, created_at, updated_at) "
                "VALUES (:id, :uid, :tid, :name, :data, :ts, :ts)"
            ),
            {"id": sheet_id, "uid": user_id, "tid": template_id, "name": name, "data": json_dumps(sheet_data), "ts": now},
        )
        sheet = _get_sheet_row(conn, sheet_id)

    sheet["permission"] = Permission.OWNER.value
    return sheet


def update_sheet(
    engine: Engine,
    sheet_id: str,
    user_id: Optional[str],
    name: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Partial update: omitted fields stay, provided fields replace. data is
    replaced as a whole document, except that the stored data.image is kept.
    """
    with engine.begin() as conn:
        level = require_permission(conn, sheet_id, user_id, EDIT_LEVELS)

        sets: List[str] = []
        args: Dict[str, Any] = {"id": sheet_id}

        if name is not None:
            sets.append("name = :name")
            args["name"] = str(name)

        if data is not None:
            current = load_sheet_data(conn, sheet_id) or {}
            new_data = copy.deepcopy(data)
            new_data.pop(IMAGE_KEY, None)
            if current.get(IMAGE_KEY):
                new_data[IMAGE_KEY] = current[IMAGE_KEY]
            sets.append("data_json = :data")
            args["data"] = json_dumps(new_data)

        sets.append("updated_at = :ts")
        args["ts"] = now_iso()

        conn.execute(text(f"UPDATE sheets SET {', '.join(sets)} WHERE id = :id"), args)
        sheet = _get_sheet_row(conn, sheet_id)

    sheet["permission"] = level.value
    return sheet


def delete_sheet(engine: Engine, uploads_dir: Path, sheet_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    """
    No permission gate: any caller naming an existing sheet may delete it.
    Share grants go in the same transaction; the image file is removed after commit.
    """
    with engine.begin() as conn:
        data = load_sheet_data(conn, sheet_id)
        if data is None:
            raise NotFound("sheet not found", "sheet_not_found")
        conn.execute(text("DELETE FROM sheet_shares WHERE sheet_id = :id"), {"id": sheet_id})
        conn.execute(text("DELETE FROM sheets WHERE id = :id"), {"id": sheet_id})

    image = data.get(IMAGE_KEY)
    if image:
        remove_file_best_effort(uploads_dir, str(image), request_id)

    emit("info", "sheets.deleted", f"deleted sheet {sheet_id}", request_id, __name__, sheet_id=sheet_id)
    return {"success": True}


# -------------------------
# Shares
# -------------------------
def share_sheet(engine: Engine, sheet_id: str, acting_user_id: Optional[str], username: Optional[str]) -> Dict[str, Any]:
    if not (username or "").strip() or not acting_user_id:
        raise BadRequest("username and userId are required", "missing_fields")

    with engine.begin() as conn:
        require_permission(
            conn, sheet_id, acting_user_id, {Permission.OWNER}, "only the owner can share this sheet"
        )

        target = find_user_by_username(conn, username or "")
        if target is None:
            raise NotFound("user not found", "user_not_found")
        if target["id"] == acting_user_id:
            raise BadRequest("cannot share with yourself", "self_share")

        existing = conn.execute(
            text("SELECT 1 FROM sheet_shares WHERE sheet_id = :sid AND shared_with_user_id = :uid"),
            {"sid": sheet_id, "uid": target["id"]},
        ).first()
        if existing:
            raise Conflict("already shared with this user", "already_shared")

        try:
            conn.execute(
                text(
                    "INSERT INTO sheet_shares (id, sheet_id, shared_with_user_id, created_at) "
                    "VALUES (:id, :sid, :uid, :ts)"
                ),
                {"id": new_ulid(), "sid": sheet_id, "uid": target["id"], "ts": now_iso()},
            )
        except IntegrityError as e:
            raise Conflict("already shared with this user", "already_shared") from e

    return {"success": True, "shared_with": target["username"]}


def list_shares(engine: Engine, sheet_id: str) -> List[Dict[str, Any]]:
    with engine.connect() as conn:
        if not sheet_exists(conn, sheet_id):
            raise NotFound("sheet not found", "sheet_not_found")
        rows = conn.execute(
            text(
                "SELECT ss.id, ss.shared_with_user_id AS user_id, u.username, ss.created_at AS shared_at "
                "FROM sheet_shares ss JOIN users u ON u.id = ss.shared_with_user_id "
                "WHERE ss.sheet_id = :sid ORDER BY ss.created_at DESC"
            ),
            {"sid": sheet_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def remove_share(engine: Engine, sheet_id: str, user_id: str) -> Dict[str, Any]:
    # no owner check: holders of both ids may revoke
    with engine.begin() as conn:
        res = conn.execute(
            text("DELETE FROM sheet_shares WHERE sheet_id = :sid AND shared_with_user_id = :uid"),
            {"sid": sheet_id, "uid": user_id},
        )
        removed = res.rowcount
    if removed == 0:
        raise NotFound("share not found", "share_not_found")
    return {"success": True}
