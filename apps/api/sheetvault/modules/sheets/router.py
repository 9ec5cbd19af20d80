from __future__ import annotations

from pathlib import Path as FsPath
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.engine import Engine

from sheetvault.core.db import get_engine
from sheetvault.core.errors import BadRequest, NotFound
from sheetvault.core.storage import get_uploads_dir, safe_under_root

from . import images
from .crew import list_crew_members, list_crews
from .images import attach_image, detach_image
from .schemas import (
    CrewMemberOut,
    CrewOut,
    ImageOut,
    ShareCreateIn,
    ShareCreateOut,
    ShareOut,
    SheetCreateIn,
    SheetDetailOut,
    SheetOut,
    SheetUpdateIn,
    SuccessOut,
)
from .service import (
    create_sheet,
    delete_sheet,
    get_sheet,
    list_shares,
    list_visible,
    remove_share,
    share_sheet,
    update_sheet,
)

router = APIRouter(tags=["sheets"])


def _request_id(request: Request) -> Optional[str]:
    st = getattr(request, "state", None)
    rid = getattr(st, "request_id", None) if st is not None else None
    return str(rid) if rid else request.headers.get("x-request-id")


def _require_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        raise BadRequest("userId is required", "user_id_required")
    return user_id


# crews routes are declared before /sheets/{sheet_id} so they are not shadowed
@router.get("/sheets/crews", response_model=List[CrewOut])
def api_list_crews(engine: Engine = Depends(get_engine)) -> List[CrewOut]:
    with engine.connect() as conn:
        return list_crews(conn)


@router.get("/sheets/crews/{crew_id}/members", response_model=List[CrewMemberOut])
def api_list_crew_members(crew_id: str, engine: Engine = Depends(get_engine)) -> List[CrewMemberOut]:
    with engine.connect() as conn:
        return list_crew_members(conn, crew_id)


@router.get("/sheets", response_model=List[SheetOut])
def api_list_sheets(
    user_id: Optional[str] = Query(None, alias="userId"),
    engine: Engine = Depends(get_engine),
) -> List[SheetOut]:
    return list_visible(engine, _require_user_id(user_id))


@router.post("/sheets", response_model=SheetOut)
def api_create_sheet(body: SheetCreateIn, engine: Engine = Depends(get_engine)) -> SheetOut:
    return create_sheet(engine, body.user_id, body.template_id, body.name, body.data)


@router.get("/sheets/{sheet_id}", response_model=SheetDetailOut, response_model_exclude_unset=True)
def api_get_sheet(
    sheet_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    engine: Engine = Depends(get_engine),
) -> SheetDetailOut:
    return get_sheet(engine, sheet_id, user_id)


@router.put("/sheets/{sheet_id}", response_model=SheetOut)
def api_update_sheet(
    sheet_id: str,
    body: SheetUpdateIn,
    user_id: Optional[str] = Query(None, alias="userId"),
    engine: Engine = Depends(get_engine),
) -> SheetOut:
    patch = body.model_dump(exclude_unset=True)
    return update_sheet(engine, sheet_id, user_id, name=patch.get("name"), data=patch.get("data"))


@router.delete("/sheets/{sheet_id}", response_model=SuccessOut)
def api_delete_sheet(
    sheet_id: str,
    request: Request,
    engine: Engine = Depends(get_engine),
    uploads_dir: FsPath = Depends(get_uploads_dir),
) -> SuccessOut:
    return delete_sheet(engine, uploads_dir, sheet_id, request_id=_request_id(request))


@router.post("/sheets/{sheet_id}/shares", response_model=ShareCreateOut)
def api_share_sheet(sheet_id: str, body: ShareCreateIn, engine: Engine = Depends(get_engine)) -> ShareCreateOut:
    return share_sheet(engine, sheet_id, body.user_id, body.username)


@router.get("/sheets/{sheet_id}/shares", response_model=List[ShareOut])
def api_list_shares(sheet_id: str, engine: Engine = Depends(get_engine)) -> List[ShareOut]:
    return list_shares(engine, sheet_id)


@router.delete("/sheets/{sheet_id}/shares/{user_id}", response_model=SuccessOut)
def api_remove_share(sheet_id: str, user_id: str, engine: Engine = Depends(get_engine)) -> SuccessOut:
    return remove_share(engine, sheet_id, user_id)


@router.post("/sheets/{sheet_id}/image", response_model=ImageOut)
def api_attach_image(
    sheet_id: str,
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    file: Optional[UploadFile] = File(None),
    engine: Engine = Depends(get_engine),
    uploads_dir: FsPath = Depends(get_uploads_dir),
) -> ImageOut:
    uid = _require_user_id(user_id)
    # one byte past the limit is enough for attach_image to reject it
    content = file.file.read(images.MAX_IMAGE_BYTES + 1) if file is not None else None
    mime_type = file.content_type if file is not None else None
    filename = attach_image(
        engine,
        uploads_dir,
        sheet_id,
        uid,
        content,
        mime_type,
        request_id=_request_id(request),
    )
    return ImageOut(image=filename)


@router.delete("/sheets/{sheet_id}/image", response_model=SuccessOut)
def api_detach_image(
    sheet_id: str,
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    engine: Engine = Depends(get_engine),
    uploads_dir: FsPath = Depends(get_uploads_dir),
) -> SuccessOut:
    detach_image(engine, uploads_dir, sheet_id, _require_user_id(user_id), request_id=_request_id(request))
    return SuccessOut(success=True)


@router.get("/uploads/{filename}")
def api_get_upload(filename: str, uploads_dir: FsPath = Depends(get_uploads_dir)) -> FileResponse:
    p = safe_under_root(uploads_dir, filename)
    if p is None or not p.is_file():
        raise NotFound("file not found", "file_not_found")
    return FileResponse(p)
