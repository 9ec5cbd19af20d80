"""
Error taxonomy. Every error carries a stable machine code in detail["error"];
main.py renders it into the error envelope.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status = 500
    code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None) -> None:
        self.code = code or self.code
        super().__init__(
            status_code=self.status,
            detail={"error": self.code, "message": message, "details": details},
        )


class NotFound(ApiError):
    status = 404
    code = "not_found"


class PermissionDenied(ApiError):
    status = 403
    code = "permission_denied"


class BadRequest(ApiError):
    status = 400
    code = "bad_request"


class Conflict(ApiError):
    status = 409
    code = "conflict"
