# app/core/crud_base.py

"""
공통 CRUD(Create, Read, Update, Delete) 작업을 위한 기본 클래스 모듈입니다.
모든 메서드는 비동기(async) 환경에 맞게 작성되었습니다.

BaseEntity를 상속한 모델을 대상으로 하며,
- 활성 레코드만 조회하는 옵션 (active_only),
- 소프트 삭제 / 복구,
- 업데이트 시 낙관적 잠금 버전 검사
를 제공합니다.
"""

import json
import logging
from typing import Generic, List, Optional, Type, TypeVar, Any, Dict, Union
from datetime import date, timedelta

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.entity_base import BaseEntity

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=BaseEntity)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


def safe_dump(data: Any) -> str:
    """로그용 직렬화. 직렬화할 수 없는 값은 대체 문자열로 기록합니다."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    try:
        return json.dumps(data, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return "[unserializable payload]"


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    모든 CRUD 작업에 대한 기본 클래스를 정의합니다.
    """
    def __init__(self, model: Type[ModelType]):
        self.model = model

    # =========================================================================
    # 조회
    # =========================================================================
    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """
        ID를 기준으로 단일 레코드를 조회합니다. 소프트 삭제된 레코드도 반환합니다.
        """
        return await db.get(self.model, id)

    async def get_active(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """ID로 조회하되, 소프트 삭제되었거나 유효 기간이 지난 레코드는 제외합니다."""
        statement = select(self.model).where(self.model.id == id, self.model.active_filter())
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_multi(
        self, db: AsyncSession, *, skip: int = 0, limit: int = 100, active_only: bool = True, **kwargs: Any
    ) -> List[ModelType]:
        """
        여러 레코드를 조회합니다. 필터링을 위한 키워드 인자를 지원합니다.
        """
        query = select(self.model)
        if active_only:
            query = query.where(self.model.active_filter())

        for field, value in kwargs.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)

        query = query.order_by(self.model.sequential_id).offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    async def get_by_attribute(
        self, db: AsyncSession, *, attribute: str, value: Any, active_only: bool = False
    ) -> Optional[ModelType]:
        statement = select(self.model).where(getattr(self.model, attribute) == value)
        if active_only:
            statement = statement.where(self.model.active_filter())
        response = await db.execute(statement)
        return response.scalars().first()

    async def get_filtered(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,  # 다중 속성 필터: {"attribute_name": "value"}
        date_range_field: Optional[str] = None,    # 기간 검색을 적용할 날짜 필드 이름 (예: "created_at")
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        order_by_field: Optional[str] = None,
        order_desc: bool = True,
        active_only: bool = True,
        skip: int = 0,
        limit: int = 100
    ) -> List[ModelType]:
        """
        다중 속성 및 기간 검색 기능을 포함한 다중 조회.
        """
        query = select(self.model).where(*self._conditions(filters, date_range_field, start_date, end_date, active_only))

        if order_by_field and hasattr(self.model, order_by_field):
            column = getattr(self.model, order_by_field)
            query = query.order_by(column.desc() if order_desc else column)
        elif order_by_field:
            logger.warning("Model %s has no attribute '%s' for ordering.", self.model.__name__, order_by_field)
        else:
            query = query.order_by(self.model.sequential_id.desc())

        query = query.offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    async def get_one_filtered(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,
        date_range_field: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        active_only: bool = True,
    ) -> Optional[ModelType]:
        """
        조건을 만족하는 레코드 중 첫 번째 것을 반환하며, 없으면 None을 반환합니다.
        """
        query = select(self.model).where(*self._conditions(filters, date_range_field, start_date, end_date, active_only))
        response = await db.execute(query.order_by(self.model.sequential_id).limit(1))
        return response.scalars().first()

    async def count(self, db: AsyncSession, *, active_only: bool = True, **filters: Any) -> int:
        query = select(func.count()).select_from(self.model)
        conditions = self._conditions(filters, None, None, None, active_only)
        if conditions:
            query = query.where(*conditions)
        result = await db.execute(query)
        return result.scalar_one()

    def _conditions(
        self,
        filters: Optional[Dict[str, Any]],
        date_range_field: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        active_only: bool,
    ) -> list:
        conditions = []
        if active_only:
            conditions.append(self.model.active_filter())

        # 1. 다중 속성 필터링
        for attribute, value in (filters or {}).items():
            if hasattr(self.model, attribute):
                conditions.append(getattr(self.model, attribute) == value)
            else:
                logger.warning("Model %s has no attribute '%s'", self.model.__name__, attribute)

        # 2. 기간 검색 필터링 (end_date 당일까지 포함)
        if date_range_field and hasattr(self.model, date_range_field):
            date_field = getattr(self.model, date_range_field)
            if start_date is not None:
                conditions.append(date_field >= start_date)
            if end_date is not None:
                conditions.append(date_field < end_date + timedelta(days=1))
        elif date_range_field:
            logger.warning("Model %s has no attribute '%s' for date range filtering.", self.model.__name__, date_range_field)
        return conditions

    # =========================================================================
    # 생성 / 수정 / 삭제
    # =========================================================================
    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Union[CreateSchemaType, Dict[str, Any]],
        created_by: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> ModelType:
        """
        새로운 레코드를 생성합니다.
        예상하지 못한 DB 오류는 로그를 남기고 500으로 변환합니다.
        """
        name = self.model.__name__
        logger.info("Creating %s with data: %s", name, safe_dump(obj_in))
        update = dict(extra or {})
        if created_by is not None:
            update.setdefault("created_by", created_by)
            update.setdefault("updated_by", created_by)

        db_obj = self.model.model_validate(obj_in, update=update)
        return await self._persist(db, db_obj, action="create")

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]],
        updated_by: Optional[str] = None,
    ) -> ModelType:
        """
        기존 레코드를 업데이트합니다.
        입력에 version이 있으면 저장된 버전과 비교하여 다르면 409를 발생시킵니다.
        """
        if isinstance(obj_in, dict):
            update_data = dict(obj_in)
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        db_obj.check_version(update_data.pop("version", None))
        for key, value in update_data.items():
            setattr(db_obj, key, value)
        db_obj.touch(updated_by)

        logger.info("Updating %s %s with data: %s", self.model.__name__, db_obj.id, safe_dump(update_data))
        return await self._persist(db, db_obj, action="update")

    async def soft_delete(self, db: AsyncSession, *, db_obj: ModelType, deleted_by: Optional[str] = None) -> ModelType:
        """deleted_at / validity_end 를 기록하여 레코드를 비활성화합니다."""
        db_obj.soft_delete(deleted_by)
        logger.info("Soft deleting %s %s", self.model.__name__, db_obj.id)
        return await self._persist(db, db_obj, action="delete")

    async def restore(self, db: AsyncSession, *, db_obj: ModelType, restored_by: Optional[str] = None) -> ModelType:
        db_obj.restore(restored_by)
        logger.info("Restoring %s %s", self.model.__name__, db_obj.id)
        return await self._persist(db, db_obj, action="update")

    async def delete(self, db: AsyncSession, *, id: Any) -> Optional[ModelType]:
        """
        ID를 기준으로 레코드를 물리적으로 삭제합니다.
        """
        db_obj = await db.get(self.model, id)
        if db_obj:
            await db.delete(db_obj)
            await db.commit()
        return db_obj

    async def _persist(self, db: AsyncSession, db_obj: ModelType, *, action: str) -> ModelType:
        name = self.model.__name__
        db.add(db_obj)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Integrity error while trying to %s %s: %s", action, name, e.orig)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Resource conflicts with an existing record",
            )
        except StaleDataError:
            await db.rollback()
            logger.warning("Concurrent modification while trying to %s %s: %s", action, name, db_obj.id)
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to %s %s: %s", action, name, e, exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to {action} entity: {e}",
            )
        await db.refresh(db_obj)
        logger.info("Completed %s of %s with id: %s", action, name, db_obj.id)
        return db_obj
