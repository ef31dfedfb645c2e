# app/core/entity_base.py

"""
모든 영속 엔티티가 공유하는 공통 컬럼과 수명 주기 규칙을 정의하는 모듈입니다.

- BaseEntity: UUID 기본키, 사람이 읽기 쉬운 순번(sequential_id), 생성/수정/삭제 일시,
  낙관적 잠금 버전, 유효 기간(validity_start ~ validity_end), 타임존, 소속 구역(division_id),
  감사용 생성자/수정자 ID를 제공합니다.
- MasterBaseEntity: 업무 코드(code)와 설명(description)을 추가하며,
  활성 레코드 사이에서 (code, description, division_id) 조합의 유일성을 보장합니다.

테이블 모델은 이 클래스들을 상속하고 `table=True`로 선언합니다.
INSERT/UPDATE 직전의 기본값 채우기는 SQLAlchemy 매퍼 이벤트에서, 버전 증가와 검사는 매퍼의 version_id_col에서 처리됩니다.
"""

import logging
import random
import string
import time
import uuid
from datetime import datetime, UTC
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import DateTime, Index, and_, event, func, or_, select, text
from sqlalchemy.orm import Mapper, declared_attr, object_session
from sqlmodel import Field, SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings

logger = logging.getLogger(__name__)

# 모든 일시 컬럼은 timezone 정보를 포함하여 저장합니다.
TIMESTAMPTZ = DateTime(timezone=True)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite처럼 tz 정보를 보존하지 않는 드라이버에서 읽은 값은 UTC로 간주합니다."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    encoded = ""
    while number:
        number, remainder = divmod(number, 36)
        encoded = digits[remainder] + encoded
    return encoded


# =============================================================================
# 1. BaseEntity
# =============================================================================
class BaseEntity(SQLModel):
    """
    모든 테이블 모델의 공통 속성을 정의하는 SQLModel Base 클래스입니다.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, description="엔티티 고유 ID (UUID)")
    sequential_id: Optional[int] = Field(
        default=None, sa_column_kwargs={"unique": True}, description="사람이 읽기 쉬운 순번 (INSERT 시 자동 부여)"
    )

    created_at: Optional[datetime] = Field(default_factory=utc_now, sa_type=TIMESTAMPTZ, description="레코드 생성 일시")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, sa_type=TIMESTAMPTZ, description="레코드 마지막 업데이트 일시")
    deleted_at: Optional[datetime] = Field(default=None, sa_type=TIMESTAMPTZ, description="소프트 삭제 일시")

    version: int = Field(default=1, nullable=False, description="낙관적 잠금 버전")

    timezone: Optional[str] = Field(
        default_factory=lambda: settings.DEFAULT_TIMEZONE, max_length=50, description="레코드 생성 시점의 타임존 컨텍스트"
    )
    validity_start: Optional[datetime] = Field(default_factory=utc_now, sa_type=TIMESTAMPTZ, description="유효 시작 일시")
    validity_end: Optional[datetime] = Field(default=None, sa_type=TIMESTAMPTZ, description="유효 종료 일시 (논리적 폐기)")

    division_id: Optional[uuid.UUID] = Field(default=None, index=True, description="소속 구역(division) ID")
    created_by: Optional[str] = Field(default=None, max_length=100, description="생성자 ID")
    updated_by: Optional[str] = Field(default=None, max_length=100, description="최종 수정자 ID")

    @declared_attr
    def __mapper_args__(cls):
        # UPDATE 시 ORM이 버전을 올리고 WHERE version = <이전 값>으로 검사합니다. (불일치 시 StaleDataError)
        return {"version_id_col": cls.__table__.c.version}

    # --- 상태 판별 ---
    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """
        소프트 삭제되지 않았고, 유효 기간 안에 있으면 활성 상태입니다.
        (validity_end가 없거나 미래인 경우)
        """
        now = as_utc(now) or utc_now()
        if self.deleted_at is not None:
            return False
        start = as_utc(self.validity_start)
        if start is not None and start > now:
            return False
        end = as_utc(self.validity_end)
        return end is None or end > now

    # --- 상태 전이 ---
    def deprecate(self, at: Optional[datetime] = None) -> None:
        """삭제하지 않고 유효 종료 일시만 기록하여 논리적으로 폐기합니다."""
        self.validity_end = at or utc_now()

    def soft_delete(self, by: Optional[str] = None) -> None:
        now = utc_now()
        self.deleted_at = now
        self.validity_end = now
        if by is not None:
            self.updated_by = by

    def restore(self, by: Optional[str] = None) -> None:
        self.deleted_at = None
        self.validity_end = None
        if by is not None:
            self.updated_by = by

    def touch(self, by: Optional[str] = None) -> None:
        """수정 일시와 수정자를 기록합니다. 변경 사항이 있어야 버전이 증가합니다."""
        self.updated_at = utc_now()
        if by is not None:
            self.updated_by = by

    def check_version(self, expected: Optional[int]) -> None:
        """클라이언트가 보낸 버전이 저장된 버전과 다르면 409를 발생시킵니다."""
        if expected is not None and expected != self.version:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Optimistic lock failed: version {expected} was expected, but is actually {self.version}",
            )

    # --- 쿼리 조건 ---
    @classmethod
    def active_filter(cls, now: Optional[datetime] = None):
        """테이블 모델에서만 호출합니다. is_active()와 같은 조건의 SQL 표현식."""
        now = now or utc_now()
        return and_(
            cls.deleted_at.is_(None),
            or_(cls.validity_start.is_(None), cls.validity_start <= now),
            or_(cls.validity_end.is_(None), cls.validity_end > now),
        )


# =============================================================================
# 2. MasterBaseEntity
# =============================================================================
class MasterBaseEntity(BaseEntity):
    """
    업무 코드(code)와 설명(description)을 가진 마스터 데이터의 Base 클래스입니다.
    """
    code: Optional[str] = Field(default=None, max_length=50, nullable=False, index=True, description="업무 코드 (대문자)")
    description: str = Field(default="", max_length=255, description="업무 설명")

    @staticmethod
    def generate_code() -> str:
        """코드가 주어지지 않았을 때 사용할 코드 (base36 타임스탬프 + 임의 문자열)."""
        timestamp = _to_base36(int(time.time() * 1000))
        suffix = "".join(random.choices(_CODE_ALPHABET, k=5))
        return f"{timestamp}{suffix}".upper()

    @property
    def business_identifier(self) -> str:
        return f"{self.code} - {self.description}"

    def is_duplicate_of(self, other: "MasterBaseEntity") -> bool:
        return (
            self.id != other.id
            and (self.code or "").upper() == (other.code or "").upper()
            and self.description == other.description
            and self.division_id == other.division_id
        )

    def update_business(self, code: Optional[str] = None, description: Optional[str] = None) -> None:
        if code is not None:
            self.code = code.strip().upper()
        if description is not None:
            self.description = description

    async def validate_uniqueness(
        self,
        db: AsyncSession,
        *,
        code: Optional[str] = None,
        description: Optional[str] = None,
        division_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        같은 테이블의 다른 활성 레코드(삭제/폐기되지 않은)와
        (code, description, division_id) 조합이 겹치면 409를 발생시킵니다.
        인자를 주면 저장 전의 변경 예정 값으로 검사합니다.
        """
        model = type(self)
        code = (code if code is not None else self.code or "").strip().upper()
        description = description if description is not None else self.description
        division_id = division_id if division_id is not None else self.division_id

        conditions = [
            model.code == code,
            model.description == description,
            model.id != self.id,
            model.active_filter(),
        ]
        if division_id is None:
            conditions.append(model.division_id.is_(None))
        else:
            conditions.append(model.division_id == division_id)

        result = await db.execute(select(model).where(*conditions).limit(1))
        if result.scalars().first() is not None:
            logger.warning("Duplicate business key for %s: %s / %s", model.__name__, code, description)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Combination of code, description, and division must be unique",
            )


def master_unique_index(table_name: str) -> Index:
    """
    (code, description, division_id) 부분 유일 인덱스.
    삭제/폐기되지 않은 행에만 적용되어 동시 쓰기 시의 중복을 DB 단에서 막습니다.
    """
    active_rows = "deleted_at IS NULL AND validity_end IS NULL"
    return Index(
        f"uk_{table_name}_code_desc_div",
        "code", "description", "division_id",
        unique=True,
        sqlite_where=text(active_rows),
        postgresql_where=text(active_rows),
    )


# =============================================================================
# 3. 수명 주기 훅 (매퍼 이벤트)
# =============================================================================
def _next_sequential_id(mapper: Mapper, connection) -> int:
    """
    테이블의 현재 최댓값 + 1. 같은 flush에서 여러 행이 들어가는 경우를 위해
    커넥션별로 마지막 발급 값을 기억합니다.
    """
    table = mapper.local_table
    current = connection.execute(select(func.max(table.c.sequential_id))).scalar() or 0
    issued = connection.info.setdefault("sequential_ids", {})
    next_id = max(current, issued.get(table.name, 0)) + 1
    issued[table.name] = next_id
    return next_id


@event.listens_for(Mapper, "before_insert")
def _before_insert(mapper: Mapper, connection, target) -> None:
    if not isinstance(target, BaseEntity):
        return
    now = utc_now()
    target.created_at = target.created_at or now
    target.updated_at = now
    target.validity_start = target.validity_start or now
    target.timezone = target.timezone or settings.DEFAULT_TIMEZONE
    if isinstance(target, MasterBaseEntity):
        if not target.code:
            target.code = target.generate_code()
        target.code = target.code.strip().upper()
    if target.sequential_id is None:
        target.sequential_id = _next_sequential_id(mapper, connection)


@event.listens_for(Mapper, "before_update")
def _before_update(mapper: Mapper, connection, target) -> None:
    if not isinstance(target, BaseEntity):
        return
    session = object_session(target)
    # before_update는 순 변경이 없는 dirty 객체에도 호출됩니다.
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    target.updated_at = utc_now()
    if isinstance(target, MasterBaseEntity) and target.code:
        target.code = target.code.strip().upper()
