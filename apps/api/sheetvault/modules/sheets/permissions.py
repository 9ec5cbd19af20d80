"""
Permission resolution for sheets.

A caller's access to a sheet is derived from three relationships, tested in a
fixed order where the first match wins:

1. ownership (sheets.user_id)
2. crew membership: the caller owns a character sheet whose data.crew names
   the target, and the target is a crew sheet
3. an explicit share grant (sheet_shares)

Levels are not cumulative. The order of `Permission` members is the single
precedence used by both the point resolver and the visible-sheets listing.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

from sheetvault.core.errors import NotFound, PermissionDenied
from sheetvault.modules.templates.service import TEMPLATE_TYPE_SQL, TYPE_CREW

from .crew import has_crew_link


class Permission(str, Enum):
    OWNER = "owner"
    CREW_MEMBER = "crew_member"
    SHARED = "shared"
    NONE = "none"

    @property
    def precedence(self) -> int:
        # lower wins
        return _ORDER.index(self)

    def outranks(self, other: "Permission") -> bool:
        return self.precedence < other.precedence


_ORDER = list(Permission)

EDIT_LEVELS = frozenset({Permission.OWNER, Permission.CREW_MEMBER})


def highest(levels: Iterable[Permission]) -> Permission:
    best = Permission.NONE
    for level in levels:
        if level.outranks(best):
            best = level
    return best


def sheet_exists(conn: Connection, sheet_id: str) -> bool:
    row = conn.execute(text("SELECT 1 FROM sheets WHERE id = :id"), {"id": sheet_id}).first()
    return row is not None


def has_share(conn: Connection, sheet_id: str, user_id: str) -> bool:
    row = conn.execute(
        text("SELECT 1 FROM sheet_shares WHERE sheet_id = :sid AND shared_with_user_id = :uid LIMIT 1"),
        {"sid": sheet_id, "uid": user_id},
    ).first()
    return row is not None


def resolve_permission(conn: Connection, sheet_id: str, user_id: Optional[str]) -> Permission:
    """Read-only; unknown sheet or user resolves to NONE rather than raising."""
    row = conn.execute(
        text(
            f"SELECT s.user_id, {TEMPLATE_TYPE_SQL} AS template_type "
            "FROM sheets s JOIN templates t ON t.id = s.template_id "
            "WHERE s.id = :id"
        ),
        {"id": sheet_id},
    ).mappings().first()
    if row is None or not user_id:
        return Permission.NONE

    if row["user_id"] == user_id:
        return Permission.OWNER

    if row["template_type"] == TYPE_CREW and has_crew_link(conn, user_id, sheet_id):
        return Permission.CREW_MEMBER

    if has_share(conn, sheet_id, user_id):
        return Permission.SHARED

    return Permission.NONE


def require_permission(
    conn: Connection,
    sheet_id: str,
    user_id: Optional[str],
    allowed: Iterable[Permission] = EDIT_LEVELS,
    message: str = "you do not have permission to edit this sheet",
) -> Permission:
    """Existence first (404), then the resolved level (403)."""
    if not sheet_exists(conn, sheet_id):
        raise NotFound("sheet not found", "sheet_not_found")
    level = resolve_permission(conn, sheet_id, user_id)
    if level not in frozenset(allowed):
        raise PermissionDenied(message, "permission_denied", {"permission": level.value})
    return level
