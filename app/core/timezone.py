# app/core/timezone.py

"""
요청 헤더에서 클라이언트 타임존을 감지하고, UTC와 지역 시간 사이를 변환하는 모듈입니다.

감지 순서:
1. `x-timezone` 헤더 (지원 목록에 있는 경우)
2. `accept-language` 헤더의 로케일 매핑 (it, en-US, en-GB, ja ...)
3. 기본 타임존 (settings.DEFAULT_TIMEZONE)
"""

import logging
from datetime import datetime, UTC
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings

logger = logging.getLogger(__name__)


class TimezoneManager:
    SUPPORTED_TIMEZONES = (
        "UTC",
        "Europe/Rome",
        "Europe/London",
        "America/New_York",
        "America/Los_Angeles",
        "Asia/Tokyo",
        "Australia/Sydney",
    )

    LOCALE_TIMEZONES = {
        "it": "Europe/Rome",
        "it-IT": "Europe/Rome",
        "en-US": "America/New_York",
        "en-GB": "Europe/London",
        "ja": "Asia/Tokyo",
        "ja-JP": "Asia/Tokyo",
    }

    def __init__(self, default_timezone: Optional[str] = None):
        self._default = default_timezone or settings.DEFAULT_TIMEZONE

    def get_default_timezone(self) -> str:
        return self._default

    def is_supported(self, tz: Optional[str]) -> bool:
        return tz in self.SUPPORTED_TIMEZONES

    @staticmethod
    def validate_timezone(tz: Optional[str]) -> bool:
        """IANA 타임존 데이터베이스에 존재하는 이름인지 확인합니다."""
        if not tz:
            return False
        try:
            ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            return False
        return True

    def detect_from_headers(self, headers: Mapping[str, str]) -> str:
        explicit = headers.get("x-timezone")
        if explicit and self.is_supported(explicit):
            return explicit

        accept_language = headers.get("accept-language")
        if accept_language:
            # "it-IT,it;q=0.9,en;q=0.8" -> ["it-IT", "it", "en"]
            for item in accept_language.split(","):
                locale = item.split(";")[0].strip()
                if locale in self.LOCALE_TIMEZONES:
                    return self.LOCALE_TIMEZONES[locale]

        return self._default

    @staticmethod
    def convert_to_utc(value: datetime, tz: str) -> datetime:
        """지역 시간을 UTC로 변환합니다. naive 값은 tz 기준 시각으로 간주합니다."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=ZoneInfo(tz))
        return value.astimezone(UTC)

    @staticmethod
    def convert_from_utc(value: datetime, tz: str) -> datetime:
        """UTC 시간을 tz 기준 지역 시간으로 변환합니다. naive 값은 UTC로 간주합니다."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(ZoneInfo(tz))


timezone_manager = TimezoneManager()
