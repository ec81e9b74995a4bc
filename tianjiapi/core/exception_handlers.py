"""
예외 → JSON 응답 변환

모든 오류 응답은 같은 봉투를 사용한다:
    {"success": false, "error": {"code": ..., "message": ..., "details": {...}}}
"""

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from .exceptions import InternalServerError

logger = logging.getLogger("tianjiapi")


def _describe(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
    }


def _log_by_status(kind: str, request: Request, status_code: int, detail: Any) -> None:
    message = f"[{kind}] {_describe(request)} -> {status_code}: {detail}"
    if status_code >= 500:
        logger.error(message)
    else:
        logger.warning(message)


async def handle_base_api_exception(request, exc):
    _log_by_status("BaseAPIException", request, exc.status_code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.detail,  # type: ignore[arg-type]
        headers=getattr(exc, "headers", None),
    )


async def handle_http_exception(request, exc):
    """프레임워크가 던진 HTTPException (404 라우트 없음 등)"""
    _log_by_status("HTTPException", request, exc.status_code, exc.detail)
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request, exc):
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    _log_by_status("ValidationError", request, 422, errors)
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_001", "Validation failed", {"errors": errors}),
    )


async def handle_unexpected_error(request, exc):
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"[Unhandled Error] {_describe(request)}: {type(exc).__name__}: {exc}\n{trace}"
    )
    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)  # type: ignore[arg-type]
