# app/domains/div/schemas.py

"""
'div' 도메인 (구역 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

import uuid
from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import field_validator
from sqlmodel import SQLModel, Field

from app.core.timezone import TimezoneManager
from app.utils.case_converter import to_camel_case


def _normalize_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    if not value:
        raise ValueError("code must not be blank")
    return value


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None and not TimezoneManager.validate_timezone(value):
        raise ValueError(f"Invalid timezone: {value}")
    return value


def _normalize_settings(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # 설정 키는 camelCase로 저장합니다 (allow_sub_divisions -> allowSubDivisions)
    return to_camel_case(value) if value is not None else None


# =============================================================================
# 1. 구역 (Division) 스키마
# =============================================================================
class DivisionBase(SQLModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=255)
    is_default: bool = False
    parent_division_id: Optional[uuid.UUID] = None
    division_timezone: str = Field("UTC", max_length=50)
    settings: Dict[str, Any] = Field(default_factory=dict)
    division_id: Optional[uuid.UUID] = None
    validity_start: Optional[datetime] = None
    validity_end: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value):
        return _normalize_code(value)

    @field_validator("division_timezone")
    @classmethod
    def check_timezone(cls, value):
        return _check_timezone(value)

    @field_validator("settings")
    @classmethod
    def normalize_settings(cls, value):
        return _normalize_settings(value)


class DivisionCreate(DivisionBase):
    pass


class DivisionUpdate(SQLModel):
    # 기본 구역 지정(is_default)은 생성 시에만 가능합니다.
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    parent_division_id: Optional[uuid.UUID] = None
    division_timezone: Optional[str] = Field(None, max_length=50)
    settings: Optional[Dict[str, Any]] = None
    validity_end: Optional[datetime] = None
    version: Optional[int] = Field(None, ge=1, description="낙관적 잠금: 클라이언트가 알고 있는 버전")

    @field_validator("code", "description", "division_timezone", "settings", mode="before")
    @classmethod
    def reject_null(cls, value):
        # 생략은 허용하지만 명시적인 null은 NOT NULL 컬럼을 비우므로 거부합니다.
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value):
        return _normalize_code(value)

    @field_validator("division_timezone")
    @classmethod
    def check_timezone(cls, value):
        return _check_timezone(value)

    @field_validator("settings")
    @classmethod
    def normalize_settings(cls, value):
        return _normalize_settings(value)


class DivisionRead(SQLModel):
    id: uuid.UUID
    sequential_id: Optional[int] = None
    code: str
    description: str
    is_default: bool
    parent_division_id: Optional[uuid.UUID] = None
    division_timezone: str
    settings: Dict[str, Any]
    division_id: Optional[uuid.UUID] = None
    timezone: Optional[str] = None
    validity_start: Optional[datetime] = None
    validity_end: Optional[datetime] = None
    version: int
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = Field(None, description="레코드 생성 일시")
    updated_at: Optional[datetime] = Field(None, description="레코드 마지막 업데이트 일시")
    deleted_at: Optional[datetime] = None


class DivisionPage(SQLModel):
    """페이지 단위 구역 목록 응답"""
    divisions: List[DivisionRead]
    total: int
    page: int
    limit: int


class DivisionCount(SQLModel):
    count: int
