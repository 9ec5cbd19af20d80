"""
Sheet image attach / detach.

data.image, when present, must name a file that exists in the uploads dir.
Attach keeps that true by ordering its steps:

1. write the new file (durable; temp file + rename)
2. commit data.image = new name
3. remove the previous file, best-effort

The stored name is derived from the sheet id and the content hash, so a new
upload never overwrites the file the sheet currently references unless the
bytes are identical. An interruption after 1 or after 2 leaves at most an
orphan file, never a dangling reference.
"""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from sheetvault.core.errors import BadRequest, NotFound
from sheetvault.core.observability import emit
from sheetvault.core.storage import remove_file_best_effort, safe_under_root, write_bytes_durable

from .permissions import EDIT_LEVELS, require_permission
from .service import IMAGE_KEY, load_sheet_data, write_sheet_data

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
ALLOWED_MIME_TYPES = frozenset(MIME_TO_EXT)
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MiB


def image_filename(sheet_id: str, content: bytes, mime_type: str) -> str:
    digest = hashlib.sha256(content).hexdigest()[:8]
    return f"{sheet_id}-{digest}{MIME_TO_EXT[mime_type]}"


def _check_gate(engine: Engine, sheet_id: str, user_id: Optional[str]) -> None:
    with engine.connect() as conn:
        require_permission(conn, sheet_id, user_id, EDIT_LEVELS, "permission denied")


def attach_image(
    engine: Engine,
    uploads_dir: Path,
    sheet_id: str,
    user_id: Optional[str],
    content: Optional[bytes],
    mime_type: Optional[str],
    request_id: Optional[str] = None,
) -> str:
    _check_gate(engine, sheet_id, user_id)

    if content is None:
        raise BadRequest("no file uploaded", "no_file")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise BadRequest(
            "invalid file type; only JPEG, PNG and WebP are allowed",
            "invalid_file_type",
            {"mime_type": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
        )
    if len(content) > MAX_IMAGE_BYTES:
        raise BadRequest(
            "file too large; maximum size is 10 MB",
            "file_too_large",
            {"size": len(content), "max": MAX_IMAGE_BYTES},
        )

    filename = image_filename(sheet_id, content, mime_type)
    target = safe_under_root(uploads_dir, filename)
    if target is None:
        raise BadRequest("invalid sheet id for file name", "bad_request")

    # 1. new file first
    write_bytes_durable(target, content)

    # 2. then the reference
    with engine.begin() as conn:
        data = load_sheet_data(conn, sheet_id)
        if data is None:
            # deleted concurrently; the new file is an orphan
            raise NotFound("sheet not found", "sheet_not_found")
        old = data.get(IMAGE_KEY)
        data[IMAGE_KEY] = filename
        write_sheet_data(conn, sheet_id, data)

    # 3. old file last; failures are logged by storage and never fail the upload
    if old and old != filename:
        remove_file_best_effort(uploads_dir, str(old), request_id)

    emit("info", "sheets.image.attached", f"sheet {sheet_id} -> {filename}", request_id, __name__, size=len(content))
    return filename


def detach_image(
    engine: Engine,
    uploads_dir: Path,
    sheet_id: str,
    user_id: Optional[str],
    request_id: Optional[str] = None,
) -> None:
    """Clear data.image (always), then remove the file (best-effort)."""
    _check_gate(engine, sheet_id, user_id)

    with engine.begin() as conn:
        data = load_sheet_data(conn, sheet_id)
        if data is None:
            raise NotFound("sheet not found", "sheet_not_found")
        old = data.pop(IMAGE_KEY, None)
        if not old:
            return
        write_sheet_data(conn, sheet_id, data)

    remove_file_best_effort(uploads_dir, str(old), request_id)
