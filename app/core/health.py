# app/core/health.py

"""
애플리케이션 상태 점검 모듈입니다.

데이터베이스 ping, 프로세스 메모리(RSS), 디스크 사용률을 점검하여
{status, info, error, details} 형식의 보고서를 만듭니다.
하나라도 실패하면 status는 "error" 입니다.
"""

import logging
from typing import Any, Dict, Tuple

import psutil
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings

logger = logging.getLogger(__name__)

Indicator = Dict[str, Any]


async def check_database(db: AsyncSession) -> Indicator:
    try:
        result = await db.execute(text("SELECT 1"))
        if result.scalar_one_or_none() == 1:
            return {"status": "up"}
        return {"status": "down", "message": "No result from test query"}
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        return {"status": "down", "message": str(e)}


def check_memory(threshold_mb: int = settings.HEALTH_MEMORY_THRESHOLD_MB) -> Indicator:
    rss_mb = psutil.Process().memory_info().rss / (1024 * 1024)
    indicator = {"status": "up" if rss_mb <= threshold_mb else "down", "rssMb": round(rss_mb, 1), "thresholdMb": threshold_mb}
    if indicator["status"] == "down":
        indicator["message"] = f"Used memory exceeded the threshold of {threshold_mb}MB"
    return indicator


def check_disk(path: str = settings.HEALTH_DISK_PATH, threshold: float = settings.HEALTH_DISK_THRESHOLD) -> Indicator:
    try:
        usage = psutil.disk_usage(path)
    except OSError as e:
        return {"status": "down", "message": str(e)}
    used = usage.percent / 100
    indicator = {"status": "up" if used <= threshold else "down", "usedRatio": round(used, 3), "threshold": threshold}
    if indicator["status"] == "down":
        indicator["message"] = f"Used disk storage exceeded the set threshold of {threshold}"
    return indicator


async def build_health_report(db: AsyncSession) -> Tuple[Dict[str, Any], bool]:
    details = {
        "database": await check_database(db),
        "memory_rss": check_memory(settings.HEALTH_MEMORY_THRESHOLD_MB),
        "storage": check_disk(settings.HEALTH_DISK_PATH, settings.HEALTH_DISK_THRESHOLD),
    }
    info = {name: value for name, value in details.items() if value["status"] == "up"}
    error = {name: value for name, value in details.items() if value["status"] != "up"}
    healthy = not error
    report = {"status": "ok" if healthy else "error", "info": info, "error": error, "details": details}
    if not healthy:
        logger.warning("Health check failed: %s", ", ".join(error))
    return report, healthy
