# app/domains/div/crud.py

"""
'div' 도메인의 CRUD 작업을 담당하는 모듈입니다.

구역 생성/수정 시의 업무 규칙:
- 활성 구역 사이에서 코드는 유일해야 합니다 (대문자로 저장).
- 상위 구역은 존재해야 하며 하위 구역을 허용해야 합니다.
- 자기 자신 또는 자신의 하위 구역을 상위 구역으로 지정할 수 없습니다 (순환 금지).
- 기본 구역은 하나만 존재할 수 있으며, 삭제하거나 폐기할 수 없습니다.
- 활성 하위 구역이 있는 구역은 삭제할 수 없습니다.
"""

import logging
import uuid
from collections import deque
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.crud_base import CRUDBase
from app.core.entity_base import BaseEntity
from . import models as div_models
from . import schemas as div_schemas

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


# =============================================================================
# 1. divisions 테이블 CRUD
# =============================================================================
class CRUDDivision(CRUDBase[div_models.Division, div_schemas.DivisionCreate, div_schemas.DivisionUpdate]):
    def __init__(self):
        super().__init__(model=div_models.Division)

    # -------------------------------------------------------------------------
    # 단건 조회
    # -------------------------------------------------------------------------
    async def find_one(self, db: AsyncSession, *, id: uuid.UUID) -> div_models.Division:
        division = await self.get_active(db, id=id)
        if not division:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Division with ID '{id}' not found")
        return division

    async def find_by_sequential_id(self, db: AsyncSession, *, sequential_id: int) -> Optional[div_models.Division]:
        return await self.get_by_attribute(db, attribute="sequential_id", value=sequential_id, active_only=True)

    async def find_by_code(self, db: AsyncSession, *, code: str) -> Optional[div_models.Division]:
        return await self.get_by_attribute(db, attribute="code", value=code.strip().upper(), active_only=True)

    async def get_default(self, db: AsyncSession) -> Optional[div_models.Division]:
        return await self.get_by_attribute(db, attribute="is_default", value=True, active_only=True)

    async def find_default(self, db: AsyncSession) -> div_models.Division:
        division = await self.get_default(db)
        if not division:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No default division found")
        return division

    # -------------------------------------------------------------------------
    # 목록 / 계층 조회
    # -------------------------------------------------------------------------
    async def find_all(
        self,
        db: AsyncSession,
        *,
        code: Optional[str] = None,
        description: Optional[str] = None,
        parent_division_id: Optional[uuid.UUID] = None,
        is_default: Optional[bool] = None,
        active_only: bool = True,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_LIMIT,
    ) -> Dict[str, Any]:
        """
        필터와 페이징을 적용한 구역 목록을 {divisions, total, page, limit} 형태로 반환합니다.
        code는 대문자 부분 일치, description은 대소문자 무시 부분 일치입니다.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_LIMIT)

        conditions = []
        if code:
            conditions.append(self.model.code.contains(code.strip().upper()))
        if description:
            conditions.append(func.lower(self.model.description).contains(description.lower()))
        if parent_division_id is not None:
            conditions.append(self.model.parent_division_id == parent_division_id)
        if is_default is not None:
            conditions.append(self.model.is_default == is_default)
        if active_only:
            conditions.append(self.model.active_filter())

        total_query = select(func.count()).select_from(self.model)
        query = select(self.model)
        if conditions:
            total_query = total_query.where(*conditions)
            query = query.where(*conditions)

        total = (await db.execute(total_query)).scalar_one()
        result = await db.execute(query.order_by(self.model.code).offset((page - 1) * limit).limit(limit))
        return {"divisions": result.scalars().all(), "total": total, "page": page, "limit": limit}

    async def find_roots(self, db: AsyncSession) -> List[div_models.Division]:
        statement = (
            select(self.model)
            .where(self.model.parent_division_id.is_(None), self.model.active_filter())
            .order_by(self.model.code)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def find_children(
        self, db: AsyncSession, *, parent_id: uuid.UUID, active_only: bool = True
    ) -> List[div_models.Division]:
        statement = select(self.model).where(self.model.parent_division_id == parent_id)
        if active_only:
            statement = statement.where(self.model.active_filter())
        result = await db.execute(statement.order_by(self.model.code))
        return result.scalars().all()

    async def has_active_children(self, db: AsyncSession, *, id: uuid.UUID) -> bool:
        return bool(await self.count(db, active_only=True, parent_division_id=id))

    async def get_descendants(
        self, db: AsyncSession, *, id: uuid.UUID, active_only: bool = True
    ) -> List[div_models.Division]:
        """너비 우선 탐색으로 모든 하위 구역을 반환합니다 (자기 자신 제외)."""
        descendants: List[div_models.Division] = []
        seen = {id}
        queue = deque([id])
        while queue:
            current = queue.popleft()
            for child in await self.find_children(db, parent_id=current, active_only=active_only):
                if child.id in seen:
                    continue
                seen.add(child.id)
                descendants.append(child)
                queue.append(child.id)
        return descendants

    async def get_hierarchy_path(self, db: AsyncSession, *, id: uuid.UUID) -> List[div_models.Division]:
        """최상위 구역부터 자기 자신까지의 경로를 반환합니다."""
        path: List[div_models.Division] = []
        seen = set()
        current = await self.find_one(db, id=id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            if current.parent_division_id is None:
                break
            current = await self.get(db, current.parent_division_id)
        path.reverse()
        return path

    async def validate_no_cycles(
        self, db: AsyncSession, *, id: uuid.UUID, new_parent_id: Optional[uuid.UUID]
    ) -> bool:
        """new_parent_id가 자기 자신이거나 하위 구역이면 False."""
        if new_parent_id is None:
            return True
        if new_parent_id == id:
            return False
        descendants = await self.get_descendants(db, id=id, active_only=False)
        return new_parent_id not in {d.id for d in descendants}

    async def is_code_unique(
        self, db: AsyncSession, *, code: str, exclude_id: Optional[uuid.UUID] = None
    ) -> bool:
        statement = select(self.model.id).where(self.model.code == code.strip().upper(), self.model.active_filter())
        if exclude_id is not None:
            statement = statement.where(self.model.id != exclude_id)
        result = await db.execute(statement.limit(1))
        return result.first() is None

    async def find_by_settings(self, db: AsyncSession, *, key: str, value: Any) -> List[div_models.Division]:
        """settings JSON의 특정 키 값으로 활성 구역을 찾습니다."""
        divisions = await self.get_multi(db, skip=0, limit=10_000, active_only=True)
        return [d for d in divisions if (d.settings or {}).get(key) == value]

    async def count_active(self, db: AsyncSession) -> int:
        return await self.count(db, active_only=True)

    # -------------------------------------------------------------------------
    # 생성 / 수정 / 삭제
    # -------------------------------------------------------------------------
    async def _get_parent(self, db: AsyncSession, parent_id: uuid.UUID) -> div_models.Division:
        parent = await self.get_active(db, id=parent_id)
        if not parent:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"Parent division with ID '{parent_id}' not found"
            )
        if not parent.can_have_children:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Parent division does not allow child divisions"
            )
        return parent

    async def _ensure_single_default(self, db: AsyncSession) -> None:
        existing = await self.get_default(db)
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A default division already exists")

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: div_schemas.DivisionCreate,
        created_by: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> div_models.Division:
        if not await self.is_code_unique(db, code=obj_in.code):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail=f"Division with code '{obj_in.code}' already exists"
            )
        if obj_in.parent_division_id is not None:
            await self._get_parent(db, obj_in.parent_division_id)
        if obj_in.is_default:
            await self._ensure_single_default(db)

        candidate = div_models.Division(code=obj_in.code, description=obj_in.description, division_id=obj_in.division_id)
        await candidate.validate_uniqueness(db)
        return await super().create(db, obj_in=obj_in, created_by=created_by, extra=extra)

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: div_models.Division,
        obj_in: div_schemas.DivisionUpdate,
        updated_by: Optional[str] = None,
    ) -> div_models.Division:
        update_data = obj_in.model_dump(exclude_unset=True)
        db_obj.check_version(update_data.get("version"))

        new_code = update_data.get("code")
        if new_code and new_code != db_obj.code:
            if not await self.is_code_unique(db, code=new_code, exclude_id=db_obj.id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail=f"Division with code '{new_code}' already exists"
                )

        if "parent_division_id" in update_data and update_data["parent_division_id"] != db_obj.parent_division_id:
            new_parent_id = update_data["parent_division_id"]
            if not await self.validate_no_cycles(db, id=db_obj.id, new_parent_id=new_parent_id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot create circular hierarchy")
            if new_parent_id is not None:
                await self._get_parent(db, new_parent_id)

        if db_obj.is_default and update_data.get("validity_end") is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deprecate the default division")

        # 구역 타임존이 바뀌면 레코드의 타임존 컨텍스트도 함께 바꿉니다.
        if "division_timezone" in update_data:
            update_data["timezone"] = update_data["division_timezone"]

        if "code" in update_data or "description" in update_data:
            await db_obj.validate_uniqueness(
                db, code=update_data.get("code"), description=update_data.get("description")
            )

        return await super().update(db, db_obj=db_obj, obj_in=update_data, updated_by=updated_by)

    async def remove(self, db: AsyncSession, *, id: uuid.UUID, deleted_by: Optional[str] = None) -> div_models.Division:
        """
        구역을 소프트 삭제합니다. 기본 구역과 활성 하위 구역이 있는 구역은 삭제를 거부합니다.
        """
        division = await self.find_one(db, id=id)
        if division.is_default:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the default division")
        if await self.has_active_children(db, id=id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete division with active child divisions"
            )
        return await self.soft_delete(db, db_obj=division, deleted_by=deleted_by)

    # -------------------------------------------------------------------------
    # 기본 구역 관리
    # -------------------------------------------------------------------------
    async def ensure_default_division(self, db: AsyncSession, *, created_by: Optional[str] = None) -> div_models.Division:
        """기본 구역을 반환하며, 없으면 생성합니다."""
        division = await self.get_default(db)
        if division:
            return division
        logger.info("No default division found, creating one.")
        default = div_models.Division.create_default()
        default.created_by = created_by
        default.updated_by = created_by
        return await self._persist(db, default, action="create")

    async def assign_division(
        self, db: AsyncSession, *, entity: BaseEntity, division_id: Optional[uuid.UUID] = None
    ) -> BaseEntity:
        """
        엔티티에 구역을 배정합니다. division_id가 없으면 기본 구역을 사용합니다.
        배정 대상 구역은 사용자를 받을 수 있는 상태여야 합니다.
        """
        if division_id is None:
            division = await self.ensure_default_division(db)
        else:
            division = await self.find_one(db, id=division_id)
        if not division.can_assign_user():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Division '{division.code}' cannot accept new assignments",
            )
        entity.division_id = division.id
        return entity


division = CRUDDivision()
