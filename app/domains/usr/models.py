# app/domains/usr/models.py

"""
'usr' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

User는 BaseEntity를 상속하여 UUID, 순번, 버전, 소프트 삭제, 유효 기간, 소속 구역을 가지며,
인증에 필요한 사용자명, 이메일, 해싱된 비밀번호, 역할을 추가합니다.
"""

from typing import Optional
from datetime import date
from enum import Enum

from sqlmodel import Field

from app.core.entity_base import BaseEntity


# =============================================================================
# 사용자 역할(RBAC)
# =============================================================================
class UserRole(str, Enum):
    """
    사용자 역할을 정의하는 문자열 Enum 클래스입니다.
    """
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


# =============================================================================
# 1. users 테이블 모델
# =============================================================================
class User(BaseEntity, table=True):
    """
    users 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "users"

    username: str = Field(max_length=20, sa_column_kwargs={"unique": True}, description="로그인 사용자명")
    first_name: str = Field(max_length=50, description="이름")
    last_name: str = Field(max_length=50, description="성")
    password_hash: str = Field(max_length=255, description="해싱된 비밀번호")
    email: str = Field(max_length=255, sa_column_kwargs={"unique": True}, description="사용자 이메일 (소문자)")
    birth_date: Optional[date] = Field(default=None, description="생년월일 (시간 정보 없음)")
    role: UserRole = Field(default=UserRole.USER, description="사용자 역할 (권한)")
    is_active_user: bool = Field(default=True, description="계정 활성 여부")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
