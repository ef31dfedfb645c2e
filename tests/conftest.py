# tests/conftest.py

import os
import tempfile
from typing import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

# 서버 오류 진단 파일은 임시 디렉토리에 기록합니다 (settings 로드 전에 지정).
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "division-api-test-logs"))

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.main import app as main_app
from app.core.database import get_session
from app.core.security import get_password_hash

# SQLModel.metadata가 모든 테이블을 인식하도록 모델을 임포트합니다.
from app.domains.models import *    # noqa: F401, F403
from app.domains.div import crud as div_crud
from app.domains.div import models as div_models
from app.domains.usr import models as usr_models


# --- 테스트용 데이터베이스 설정 ---
# 기본은 인메모리 SQLite, TEST_DATABASE_URL 로 PostgreSQL 등을 지정할 수 있습니다.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

ADMIN_PASSWORD = "sysadmpass123"
USER_PASSWORD = "testpass123"


def _create_test_engine() -> AsyncEngine:
    if TEST_DATABASE_URL.startswith("sqlite"):
        # 인메모리 DB를 하나의 커넥션으로 공유합니다.
        return create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)


# --- 데이터베이스 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    테스트마다 테이블을 새로 만들고, 테스트 종료 후 삭제합니다.
    """
    engine = _create_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(test_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """인증 없이 요청하는 클라이언트. 애플리케이션의 DB 세션을 테스트 세션으로 교체합니다."""
    async def override_get_session():
        yield db_session

    main_app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=main_app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        main_app.dependency_overrides.clear()


# --- 데이터 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def default_division(db_session: AsyncSession) -> div_models.Division:
    """애플리케이션 시작 시와 같이 기본 구역을 보장합니다."""
    return await div_crud.division.ensure_default_division(db_session, created_by="test")


@pytest_asyncio.fixture(scope="function")
def division_factory(db_session: AsyncSession) -> Callable[..., Awaitable[div_models.Division]]:
    """코드와 속성을 지정하여 구역을 직접 저장하는 팩토리 함수를 반환합니다."""
    async def _create_division(code: str, description: str = "", **kwargs) -> div_models.Division:
        division = div_models.Division(code=code, description=description, **kwargs)
        db_session.add(division)
        await db_session.commit()
        await db_session.refresh(division)
        return division
    return _create_division


@pytest_asyncio.fixture(scope="function")
def user_factory(
    db_session: AsyncSession, default_division: div_models.Division
) -> Callable[..., Awaitable[usr_models.User]]:
    """
    역할과 속성을 지정하여 테스트 사용자를 생성하는 팩토리 함수를 반환합니다.
    """
    async def _create_user(
        username: str,
        password: str,
        role: usr_models.UserRole = usr_models.UserRole.USER,
        **kwargs,
    ) -> usr_models.User:
        user_data = {
            "username": username,
            "first_name": "Test",
            "last_name": username.capitalize(),
            "password_hash": get_password_hash(password),
            "email": f"{username}@example.com",
            "role": role,
            "division_id": default_division.id,
            **kwargs,
        }
        user = usr_models.User(**user_data)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _create_user


@pytest_asyncio.fixture(scope="function")
async def test_admin_user(user_factory: Callable) -> usr_models.User:
    """관리자(ADMIN) 사용자를 생성합니다."""
    return await user_factory("sysadm", ADMIN_PASSWORD, role=usr_models.UserRole.ADMIN)


@pytest_asyncio.fixture(scope="function")
async def test_user(user_factory: Callable) -> usr_models.User:
    """일반 사용자(USER)를 생성합니다."""
    return await user_factory("testuser", USER_PASSWORD)


# --- 인증 클라이언트 픽스처 ---
# 실제 /api/v1/users/auth/token 로그인 API를 호출하여 받은 토큰을 Authorization 헤더에 넣습니다.
@pytest_asyncio.fixture(scope="function")
def authorized_client_factory(
    db_session: AsyncSession,
) -> Callable[[usr_models.User, str], AsyncGenerator[AsyncClient, None]]:
    @asynccontextmanager
    async def _create_client_context(user: usr_models.User, password: str) -> AsyncGenerator[AsyncClient, None]:
        async def override_get_session():
            yield db_session

        main_app.dependency_overrides[get_session] = override_get_session
        try:
            transport = ASGITransport(app=main_app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                login_data = {"username": user.username, "password": password}
                res = await ac.post("/api/v1/users/auth/token", data=login_data)
                if res.status_code != 200:
                    pytest.fail(f"Login failed for {user.username}: {res.text}")

                ac.headers["Authorization"] = f"Bearer {res.json()['access_token']}"
                yield ac
        finally:
            main_app.dependency_overrides.clear()

    return _create_client_context


@pytest_asyncio.fixture(scope="function")
async def admin_client(
    authorized_client_factory: Callable[..., AsyncGenerator[AsyncClient, None]],
    test_admin_user: usr_models.User,
) -> AsyncGenerator[AsyncClient, None]:
    """관리자로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_admin_user, ADMIN_PASSWORD) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def authorized_client(
    authorized_client_factory: Callable[..., AsyncGenerator[AsyncClient, None]],
    test_user: usr_models.User,
) -> AsyncGenerator[AsyncClient, None]:
    """일반 사용자로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_user, USER_PASSWORD) as ac:
        yield ac
