# app/domains/div/models.py

"""
'div' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

Division은 MasterBaseEntity를 상속하여 업무 코드/설명, 버전, 소프트 삭제, 유효 기간을 가지며,
parent_division_id 자기 참조 FK로 트리를 구성합니다.
"""

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from app.core.entity_base import MasterBaseEntity, master_unique_index

DEFAULT_DIVISION_CODE = "DEFAULT"
DEFAULT_DIVISION_DESCRIPTION = "Default Division"
DEFAULT_DIVISION_SETTINGS = {"allowSubDivisions": True, "maxUsers": -1}

_ACTIVE_ROWS = "deleted_at IS NULL AND validity_end IS NULL"


# =============================================================================
# 1. divisions 테이블 모델
# =============================================================================
class Division(MasterBaseEntity, table=True):
    """
    divisions 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "divisions"
    __table_args__ = (
        master_unique_index("divisions"),
        # 활성 구역 사이의 코드 유일성
        Index("uq_divisions_active_code", "code", unique=True,
              sqlite_where=text(_ACTIVE_ROWS), postgresql_where=text(_ACTIVE_ROWS)),
        # 기본 구역은 하나만
        Index("uq_divisions_default", "is_default", unique=True,
              sqlite_where=text(f"is_default = 1 AND {_ACTIVE_ROWS}"),
              postgresql_where=text(f"is_default AND {_ACTIVE_ROWS}")),
    )

    is_default: bool = Field(default=False, nullable=False, description="기본 구역 여부")
    parent_division_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="divisions.id", index=True, description="상위 구역 ID (FK)"
    )
    division_timezone: str = Field(default="UTC", max_length=50, description="구역의 업무 타임존")
    settings: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON().with_variant(JSONB, "postgresql"),
        description="구역 설정 (예: allowSubDivisions, maxUsers)",
    )

    @property
    def can_have_children(self) -> bool:
        return (self.settings or {}).get("allowSubDivisions") is not False

    @property
    def display_name(self) -> str:
        return f"[{self.code}] {self.description}"

    @property
    def is_root(self) -> bool:
        return self.parent_division_id is None

    def can_assign_user(self) -> bool:
        """활성 구역이고, maxUsers 제한이 없는 경우(-1 또는 숫자가 아닌 값)에만 사용자 배정 가능."""
        if not self.is_active():
            return False
        max_users = (self.settings or {}).get("maxUsers")
        if isinstance(max_users, bool) or not isinstance(max_users, (int, float)):
            return True
        return max_users == -1

    @classmethod
    def create_default(cls) -> "Division":
        return cls(
            code=DEFAULT_DIVISION_CODE,
            description=DEFAULT_DIVISION_DESCRIPTION,
            is_default=True,
            division_timezone="UTC",
            settings=dict(DEFAULT_DIVISION_SETTINGS),
        )
