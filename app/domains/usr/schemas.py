# app/domains/usr/schemas.py

"""
'usr' 도메인 (사용자 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

import uuid
from typing import Optional
from datetime import date, datetime

from pydantic import BaseModel, EmailStr, field_validator
from sqlmodel import SQLModel, Field

from . import models as usr_models


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


def _normalize_email(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if isinstance(value, str) else value


# =============================================================================
# 1. 사용자 (User) 스키마
# =============================================================================
class UserBase(SQLModel):
    """사용자 정보의 기본 필드를 정의하는 스키마"""
    username: str = Field(..., min_length=3, max_length=20)
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr = Field(..., max_length=255)
    birth_date: Optional[date] = None
    role: usr_models.UserRole = Field(default=usr_models.UserRole.USER, description="사용자 역할")
    division_id: Optional[uuid.UUID] = None

    @field_validator("username", "first_name", "last_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class UserCreate(UserBase):
    """사용자 생성을 위한 스키마"""
    password: str = Field(..., min_length=8, max_length=100)


class UserUpdate(SQLModel):
    """사용자 정보 수정을 위한 스키마"""
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    birth_date: Optional[date] = None
    role: Optional[usr_models.UserRole] = None
    division_id: Optional[uuid.UUID] = None
    is_active_user: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8, max_length=100)
    version: Optional[int] = Field(None, ge=1, description="낙관적 잠금: 클라이언트가 알고 있는 버전")

    @field_validator("first_name", "last_name", "email", "role", "is_active_user", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class UserRead(SQLModel):
    """
    사용자 정보 조회를 위한 스키마.
    비밀번호 해시값 등 민감한 정보는 제외됩니다.
    """
    id: uuid.UUID
    sequential_id: Optional[int] = None
    username: str
    first_name: str
    last_name: str
    email: str
    birth_date: Optional[date] = None
    role: usr_models.UserRole
    is_active_user: bool
    division_id: Optional[uuid.UUID] = None
    timezone: Optional[str] = None
    version: int
    created_at: Optional[datetime] = Field(None, description="레코드 생성 일시")
    updated_at: Optional[datetime] = Field(None, description="레코드 마지막 업데이트 일시")


# =============================================================================
# 2. 인증 토큰 (Token) 스키마
# =============================================================================
class Token(BaseModel):
    """JWT 토큰 응답 스키마"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """JWT 토큰에 담길 데이터 스키마"""
    username: Optional[str] = None
