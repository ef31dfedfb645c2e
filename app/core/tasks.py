# app/core/tasks.py

"""
ARQ 워커가 실행하는 주기 태스크를 정의하는 모듈입니다.
"""

import logging

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import text

from app.core.config import settings
from app.core.database import get_async_session_context

logger = logging.getLogger(__name__)


async def health_check_database_task(ctx):
    """
    ARQ 워커에 의해 실행될 주기적인 데이터베이스 헬스 체크 태스크.
    데이터베이스 연결 상태를 확인하고 로그를 남깁니다.
    """
    logger.info("Running scheduled database health check")
    try:
        async with get_async_session_context() as db:
            result = await db.execute(text("SELECT 1"))
            if result.scalar_one_or_none() == 1:
                logger.info("Database health check succeeded")
                return {"status": "success", "message": "Database connection successful."}
            error_msg = "Database health check failed: No result from test query."
    except Exception as e:
        # 워커 태스크는 실패를 결과로 남기고 다음 주기를 기다립니다.
        error_msg = f"Database connection error: {e}"

    logger.error(error_msg)
    return {"status": "failed", "message": error_msg}


def redis_settings() -> RedisSettings:
    return RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)


class WorkerSettings:
    """`arq app.core.tasks.WorkerSettings` 로 실행되는 워커 설정."""
    redis_settings = redis_settings()
    functions = [health_check_database_task]
    cron_jobs = [
        cron(health_check_database_task, hour=0, minute=0, timeout=300, keep_result=600),
    ]
