# app/main.py

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from arq.connections import create_pool
from sqlalchemy import text
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import API_PREFIX
from app.core.config import settings
from app.core.database import create_db_and_tables, engine, get_async_session_context, get_session
from app.core.entity_base import utc_now
from app.core.exceptions import build_error_body, catch_unhandled_exceptions, register_exception_handlers
from app.core.health import build_health_report
from app.core.logger import log_requests, setup_logging
from app.core import tasks as core_tasks

# 모든 테이블을 SQLModel.metadata에 등록합니다.
from app.domains import models as domain_models  # noqa: F401
from app.domains.div import crud as div_crud
from app.domains.div.routers import router as div_router
from app.domains.usr.routers import router as usr_router

logger = logging.getLogger(__name__)


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    로깅 설정, 테이블 생성(개발/테스트), 기본 구역 보장, ARQ Redis 풀을 처리합니다.
    """
    setup_logging()
    logger.info("Starting %s %s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.APP_ENV)

    if settings.AUTO_CREATE_TABLES or settings.APP_ENV in ("development", "test"):
        await create_db_and_tables()
        logger.info("Database tables verified")

    async with get_async_session_context() as db:
        default = await div_crud.division.ensure_default_division(db, created_by=settings.SYSTEM_USER)
        logger.info("Default division: %s (%s)", default.code, default.id)

    app.state.redis = None
    if settings.ARQ_ENABLED:
        app.state.redis = await create_pool(core_tasks.redis_settings())
        logger.info("ARQ Redis pool created")

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    if app.state.redis is not None:
        await app.state.redis.close()
    await engine.dispose()


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# -- CORS 미들웨어 설정 --
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- 예외 처리 및 요청 로깅 --
# 나중에 등록한 미들웨어가 바깥쪽에서 실행됩니다.
register_exception_handlers(app)
app.middleware("http")(log_requests)
app.middleware("http")(catch_unhandled_exceptions)

# -- 도메인 라우터 포함 --
app.include_router(div_router, prefix=f"{API_PREFIX}/divisions")
app.include_router(usr_router, prefix=f"{API_PREFIX}/users")

AVAILABLE_ENDPOINTS = {
    "divisions": f"{API_PREFIX}/divisions",
    "users": f"{API_PREFIX}/users",
    "auth": f"{API_PREFIX}/users/auth/token",
    "health": f"{API_PREFIX}/health",
}


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and server time.")
async def read_root():
    return {"message": "Hello World!", "timestamp": utc_now().isoformat()}


@app.get("/test-error", summary="Error handler probe", include_in_schema=False)
async def test_error():
    """개발 환경에서 전역 예외 처리기를 확인하기 위한 엔드포인트."""
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Path not found")
    raise RuntimeError("This is a test error")


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Database Health Check")
async def health_check(session: AsyncSession = Depends(get_session)):
    """데이터베이스 연결만 확인하는 간단한 헬스 체크."""
    try:
        result = await session.execute(text("SELECT 1"))
        if result.scalar_one_or_none() == 1:
            return {"status": "ok", "database_connection": "successful"}
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}",
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database health check failed: No result from test query",
    )


@app.get(f"{API_PREFIX}/health", summary="Health Report")
async def health_report(session: AsyncSession = Depends(get_session)):
    """데이터베이스, 메모리, 디스크 상태를 종합한 헬스 리포트. 실패 시 503."""
    report, healthy = await build_health_report(session)
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=report,
    )


@app.get("/health", include_in_schema=False)
async def health_hint():
    return {"message": f"Health report is available at {API_PREFIX}/health"}


@app.get(API_PREFIX, summary="API Discovery")
async def api_index():
    return {
        "message": f"{settings.APP_NAME} {API_PREFIX}",
        "version": settings.APP_VERSION,
        "availableEndpoints": AVAILABLE_ENDPOINTS,
        "documentation": "/docs",
    }


# -- 일치하지 않는 경로 (가장 마지막에 등록) --
@app.api_route(f"{API_PREFIX}/{{path:path}}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def api_not_found(path: str, request: Request):
    body = build_error_body(request, status.HTTP_404_NOT_FOUND, "API path not found")
    body["availableEndpoints"] = AVAILABLE_ENDPOINTS
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body)


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def not_found(path: str, request: Request):
    body = build_error_body(request, status.HTTP_404_NOT_FOUND, "Path not found")
    body["suggestion"] = f"APIs are available at {API_PREFIX}"
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body)
