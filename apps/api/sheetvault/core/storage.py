"""
Local filesystem storage for sheet images.

Defaults:
- STORAGE_ROOT: ./data/storage
- uploads live in <STORAGE_ROOT>/uploads
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from sheetvault.core.observability import emit

UPLOADS_DIRNAME = "uploads"


def _repo_root() -> Path:
    # apps/api/sheetvault/core/storage.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def get_storage_root() -> Path:
    raw = os.getenv("STORAGE_ROOT", "./data/storage")
    p = Path(raw)
    return (_repo_root() / p).resolve() if not p.is_absolute() else p


def ensure_storage_root() -> Path:
    root = get_storage_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def get_uploads_dir() -> Path:
    uploads = ensure_storage_root() / UPLOADS_DIRNAME
    uploads.mkdir(parents=True, exist_ok=True)
    return uploads


def safe_under_root(root: Path, name: str) -> Optional[Path]:
    """Resolve a stored filename inside root; None if it would escape it."""
    if not name or not isinstance(name, str):
        return None
    try:
        root_resolved = root.resolve()
        p = (root_resolved / name).resolve()
    except (OSError, ValueError):
        return None
    if p.parent != root_resolved:
        return None
    return p


def write_bytes_durable(path: Path, content: bytes) -> None:
    """
    Write content to path so that the file either does not change or holds the
    complete new bytes: temp file in the same directory, fsync, atomic rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".upload-")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except Exception:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def remove_file_best_effort(root: Path, name: str, request_id: Optional[str] = None) -> bool:
    """Delete a stored file; True once it is gone. Failures are logged and reported as False, never raised."""
    p = safe_under_root(root, name)
    if p is None:
        emit("warning", "storage.remove.rejected", f"refusing to remove {name!r}", request_id, __name__)
        return False
    try:
        p.unlink()
        return True
    except FileNotFoundError:
        return True
    except OSError as e:
        emit("warning", "storage.remove.failed", str(e), request_id, __name__, filename=name)
        return False


def storage_health() -> Dict[str, Any]:
    try:
        root = ensure_storage_root()
        probe = root / ".probe_write"
        probe.write_text("ok", encoding="utf-8")
        try:
            probe.unlink()
        except OSError:
            pass
        return {"status": "ok", "kind": "local_fs", "root": str(root.as_posix())}
    except Exception as e:
        return {"status": "error", "kind": "local_fs", "root": str(get_storage_root().as_posix()), "error": str(e)}
