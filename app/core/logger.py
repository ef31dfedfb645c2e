# app/core/logger.py

"""
애플리케이션 로깅 설정과 요청/응답 로깅 미들웨어를 정의하는 모듈입니다.

- setup_logging(): 루트 로거를 한 번만 구성합니다.
- log_requests(): 모든 HTTP 요청의 진입/종료/실패를 기록하는 미들웨어입니다.
"""

import logging
import time

from fastapi import Request

from app.core.config import settings

logger = logging.getLogger("app.request")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# 설정값(LOG_LEVEL) -> logging 레벨
_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_configured = False


def setup_logging(level: str = settings.LOG_LEVEL) -> None:
    """루트 로거를 구성합니다. 여러 번 호출되어도 핸들러는 한 번만 추가됩니다."""
    global _configured
    root = logging.getLogger()
    root.setLevel(_LEVELS.get(level.lower(), logging.INFO))
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


async def log_requests(request: Request, call_next):
    """
    요청 진입 시 "METHOD url - ip - user-agent",
    응답 시 "METHOD url - status - Nms",
    처리 중 예외 발생 시 "METHOD url - Error after Nms" 를 기록하고 예외를 다시 발생시킵니다.
    """
    method = request.method
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    started = time.perf_counter()
    logger.info("%s %s - %s - %s", method, url, client_ip(request), request.headers.get("user-agent", ""))

    try:
        response = await call_next(request)
    except Exception:
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.error("%s %s - Error after %dms", method, url, elapsed)
        raise

    elapsed = int((time.perf_counter() - started) * 1000)
    logger.info("%s %s - %s - %dms", method, url, response.status_code, elapsed)
    return response
