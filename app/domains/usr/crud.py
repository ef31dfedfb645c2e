# app/domains/usr/crud.py

"""
'usr' 도메인의 CRUD 작업을 담당하는 모듈입니다.
비밀번호 해싱, 사용자명/이메일 중복 검사, 구역 배정, 소프트 삭제를 처리합니다.
"""

import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.crud_base import CRUDBase
from app.core.security import get_password_hash, verify_password
from app.domains.div import crud as div_crud
from . import models as usr_models
from . import schemas as usr_schemas

logger = logging.getLogger(__name__)


# =============================================================================
# 1. users 테이블 CRUD
# =============================================================================
class CRUDUser(CRUDBase[usr_models.User, usr_schemas.UserCreate, usr_schemas.UserUpdate]):
    def __init__(self):
        super().__init__(model=usr_models.User)

    async def get_by_username(self, db: AsyncSession, *, username: str) -> Optional[usr_models.User]:
        """사용자명으로 사용자를 조회합니다."""
        return await self.get_by_attribute(db, attribute="username", value=username.strip())

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[usr_models.User]:
        """이메일로 사용자를 조회합니다 (소문자, 공백 제거 후 비교)."""
        return await self.get_by_attribute(db, attribute="email", value=email.strip().lower())

    async def is_email_taken(self, db: AsyncSession, *, email: str) -> bool:
        return await self.get_by_email(db, email=email) is not None

    async def get_active_users(self, db: AsyncSession, *, skip: int = 0, limit: int = 100) -> List[usr_models.User]:
        """소프트 삭제되지 않았고 계정이 활성 상태인 사용자 목록."""
        statement = (
            select(self.model)
            .where(self.model.deleted_at.is_(None), self.model.is_active_user.is_(True))
            .order_by(self.model.sequential_id)
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def find_by_role(self, db: AsyncSession, *, role: usr_models.UserRole) -> List[usr_models.User]:
        statement = (
            select(self.model)
            .where(self.model.role == role, self.model.deleted_at.is_(None))
            .order_by(self.model.sequential_id)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: usr_schemas.UserCreate,
        created_by: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> usr_models.User:
        """새로운 사용자를 생성하며 비밀번호를 해싱하고 중복을 검사합니다."""
        if await self.get_by_username(db, username=obj_in.username):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already registered")
        if await self.is_email_taken(db, email=obj_in.email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

        user_data = obj_in.model_dump(exclude={"password"})
        user_data.update(extra or {})
        db_user = usr_models.User(**user_data, password_hash=get_password_hash(obj_in.password))
        db_user.created_by = created_by
        db_user.updated_by = created_by

        # 구역이 지정되지 않으면 기본 구역에 배정합니다.
        await div_crud.division.assign_division(db, entity=db_user, division_id=obj_in.division_id)
        logger.info("Creating user %s in division %s", db_user.username, db_user.division_id)
        return await self._persist(db, db_user, action="create")

    async def authenticate(self, db: AsyncSession, *, username: str, password: str) -> Optional[usr_models.User]:
        """사용자명과 비밀번호를 사용하여 사용자를 인증합니다. 삭제된 사용자는 인증되지 않습니다."""
        user = await self.get_by_username(db, username=username)
        if not user or user.is_deleted:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: usr_models.User,
        obj_in: usr_schemas.UserUpdate,
        updated_by: Optional[str] = None,
    ) -> usr_models.User:
        """
        사용자 정보를 업데이트합니다. 비밀번호는 다시 해싱하고, 이메일 변경 시 중복을 검사합니다.
        """
        update_data = obj_in.model_dump(exclude_unset=True)
        db_obj.check_version(update_data.pop("version", None))

        new_email = update_data.get("email")
        if new_email and new_email != db_obj.email and await self.is_email_taken(db, email=new_email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

        password = update_data.pop("password", None)
        if password:
            update_data["password_hash"] = get_password_hash(password)

        if "division_id" in update_data and update_data["division_id"] != db_obj.division_id:
            # 구역 존재 및 배정 가능 여부 검사 (db_obj는 아직 변경하지 않음)
            target = await div_crud.division.find_one(db, id=update_data["division_id"]) if update_data["division_id"] else None
            if target is not None and not target.can_assign_user():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Division '{target.code}' cannot accept new assignments",
                )

        return await super().update(db, db_obj=db_obj, obj_in=update_data, updated_by=updated_by)

    async def remove(self, db: AsyncSession, *, id, deleted_by: Optional[str] = None) -> usr_models.User:
        """
        사용자를 소프트 삭제합니다. deleted_at 기록과 함께 계정 활성 플래그도 해제합니다.
        """
        user = await self.get(db, id)
        if not user or user.is_deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        user.is_active_user = False
        return await self.soft_delete(db, db_obj=user, deleted_by=deleted_by)


user = CRUDUser()
