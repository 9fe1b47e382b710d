"""Response envelope shared by every endpoint.

    {
        "code": 0,                 // 0 on success, AppError.code otherwise
        "message": "success",
        "data": {...},             // null on error
        "timestamp": "2026-03-01T09:00:00+00:00",
        "request_id": "req_..."    // same value as the X-Request-ID header
    }
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.esc_common.errors import AppError


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")


def _request_id(request: Request | None) -> str | None:
    if request is None:
        return None
    return getattr(request.state, "request_id", None)


def success_response(data: Any = None, request: Request | None = None) -> ApiResponse:
    resp = ApiResponse(code=0, message="success", data=data)
    resp.request_id = _request_id(request) or resp.request_id
    return resp


def error_response(code: int, message: str, request: Request | None = None) -> ApiResponse:
    resp = ApiResponse(code=code, message=message, data=None)
    resp.request_id = _request_id(request) or resp.request_id
    return resp


def app_error_response(exc: AppError, request: Request) -> JSONResponse:
    """Render an AppError with its own HTTP status inside the envelope."""
    body = error_response(exc.code, exc.message, request)
    return JSONResponse(status_code=exc.http_status, content=body.model_dump())
