# app/core/exceptions.py

"""
HTTP 경계에서 발생하는 모든 예외를 하나의 JSON 오류 형식으로 정규화하는 모듈입니다.

응답 형식:
    {statusCode, message, timestamp, path, method, errors?, stack?}

- FastAPI/Starlette HTTPException: 상태 코드와 detail을 그대로 사용합니다.
  detail이 dict이면 message/errors 키를, 400의 list이면 검증 오류 목록으로 해석합니다.
- RequestValidationError: 400 "Validation errors" 로 필드 오류를 모읍니다.
- IntegrityError / StaleDataError: 409.
- 그 외 예외: 500, 예외 메시지 (없으면 "Internal server error").

4xx는 warning, 5xx는 error 로 기록하며, 5xx는 재현용 curl 명령을 포함한
진단 항목을 LOG_DIR/sentry-YYYY-MM-DD.log 에 한 줄씩 추가합니다.
stack 필드는 development 환경에서만 응답에 포함됩니다.
"""

import json
import logging
import os
import re
import traceback
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiofiles
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logger import client_ip
from app.utils.case_converter import camel

logger = logging.getLogger(__name__)

VALIDATION_MESSAGE = "Validation errors"
VALIDATION_DETAILS = "Check the indicated fields and retry"
INTERNAL_ERROR_MESSAGE = "Internal server error"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_SKIPPED_CURL_HEADERS = {"host", "connection", "content-length", "content-type"}


# =============================================================================
# 1. 예외 분류
# =============================================================================
def _validation_errors(messages: List[str]) -> Dict[str, Any]:
    return {"validationErrors": messages, "details": VALIDATION_DETAILS}


def _field_messages(exc: RequestValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        # loc의 첫 요소는 body/query/path 이므로 필드 경로에서 제외
        location = [str(part) for part in error.get("loc", ())[1:]]
        message = error.get("msg", "Invalid value")
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return messages


def classify_exception(exc: BaseException) -> Tuple[int, str, Optional[Any], Optional[Dict[str, str]]]:
    """예외를 (상태 코드, 메시지, errors, 응답 헤더) 로 분류합니다."""
    if isinstance(exc, RequestValidationError):
        return status.HTTP_400_BAD_REQUEST, VALIDATION_MESSAGE, _validation_errors(_field_messages(exc)), None

    if isinstance(exc, StarletteHTTPException):
        detail = exc.detail
        headers = getattr(exc, "headers", None)
        if isinstance(detail, dict):
            message = str(detail.get("message", INTERNAL_ERROR_MESSAGE))
            return exc.status_code, message, detail.get("errors"), headers
        if isinstance(detail, list):
            if exc.status_code == status.HTTP_400_BAD_REQUEST:
                return exc.status_code, VALIDATION_MESSAGE, _validation_errors([str(m) for m in detail]), headers
            return exc.status_code, "; ".join(str(m) for m in detail), None, headers
        return exc.status_code, str(detail), None, headers

    if isinstance(exc, StaleDataError):
        return status.HTTP_409_CONFLICT, "Optimistic lock version mismatch", None, None

    if isinstance(exc, IntegrityError):
        return status.HTTP_409_CONFLICT, "Resource conflicts with an existing record", None, None

    return status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or INTERNAL_ERROR_MESSAGE, None, None


# =============================================================================
# 2. 진단 정보 (curl 재구성, 진단 로그 파일)
# =============================================================================
def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def format_stack(exc: BaseException) -> str:
    return strip_ansi("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))


def build_curl_command(method: str, url: str, headers: Dict[str, str], body: Any = None) -> str:
    """
    요청을 재현하는 curl 명령을 만듭니다.
    host/connection 등 전송 계층 헤더는 제외하고, 본문이 있으면 JSON으로 붙입니다.
    """
    parts = [f"curl -X {method.upper()} '{url}'"]
    for name, value in headers.items():
        if name.lower() in _SKIPPED_CURL_HEADERS:
            continue
        parts.append(f"-H '{name}: {value}'")

    if body not in (None, b"", "", {}):
        try:
            if isinstance(body, (bytes, bytearray)):
                body = json.loads(body.decode("utf-8"))
            payload = json.dumps(body)
        except (TypeError, ValueError):
            payload = "{}"
        parts.append("-H 'Content-Type: application/json'")
        parts.append(f"-d '{payload}'")
    return " ".join(parts)


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return raw.decode("utf-8", errors="replace")


def diagnostic_log_path(now: Optional[datetime] = None) -> str:
    try:
        zone = ZoneInfo(settings.LOG_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        zone = UTC
    day = (now or datetime.now(UTC)).astimezone(zone).strftime("%Y-%m-%d")
    return os.path.join(settings.LOG_DIR, f"sentry-{day}.log")


async def write_diagnostic_entry(entry: Dict[str, Any]) -> Optional[str]:
    """
    진단 항목을 JSON 한 줄로 추가합니다.
    기록에 실패해도 원래의 오류 응답을 가리지 않도록 예외를 삼키고 None을 반환합니다.
    """
    path = diagnostic_log_path()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        async with aiofiles.open(path, "a", encoding="utf-8") as f:
            await f.write(json.dumps(entry, default=str, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.error("Failed to write diagnostic log %s: %s", path, e)
        return None
    return path


def _build_diagnostic_entry(request: Request, status_code: int, message: str, exc: BaseException) -> Dict[str, Any]:
    raw_body = getattr(request.state, "raw_body", b"")
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "status": status_code,
        "message": message,
        "path": request.url.path,
        "method": request.method,
        "user_agent": request.headers.get("user-agent", ""),
        "ip": client_ip(request),
        "request_body": _decode_body(raw_body),
        "request_query": dict(request.query_params),
        "request_params": dict(request.path_params),
        "curl_command": build_curl_command(request.method, str(request.url), dict(request.headers), raw_body),
        "stack": format_stack(exc),
    }
    # 최상위 키만 camelCase로 변환 (요청 본문의 키는 그대로 보존)
    return {camel(key): value for key, value in entry.items()}


# =============================================================================
# 3. 응답 생성
# =============================================================================
def build_error_body(
    request: Request,
    status_code: int,
    message: str,
    errors: Optional[Any] = None,
    stack: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "statusCode": status_code,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    if errors is not None:
        body["errors"] = errors
    if stack is not None:
        body["stack"] = stack
    return body


async def normalize_exception(request: Request, exc: BaseException) -> JSONResponse:
    status_code, message, errors, headers = classify_exception(exc)
    summary = f"{request.method} {request.url.path} - {status_code} - {message}"

    if status_code >= 500:
        logger.error(summary, exc_info=exc)
        await write_diagnostic_entry(_build_diagnostic_entry(request, status_code, message, exc))
    else:
        logger.warning(summary)

    stack = format_stack(exc) if settings.is_development else None
    body = build_error_body(request, status_code, message, errors=errors, stack=stack)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return await normalize_exception(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await normalize_exception(request, exc)


async def database_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return await normalize_exception(request, exc)


async def catch_unhandled_exceptions(request: Request, call_next):
    """
    가장 바깥쪽 미들웨어. 진단용으로 요청 본문을 보관하고,
    등록된 핸들러가 처리하지 못한 예외를 500 응답으로 변환합니다.
    """
    request.state.raw_body = await request.body()
    try:
        return await call_next(request)
    except Exception as exc:
        return await normalize_exception(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(StaleDataError, database_exception_handler)
