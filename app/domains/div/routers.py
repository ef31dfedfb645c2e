# app/domains/div/routers.py

"""
'div' 도메인 (구역 관리)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.database import get_session
from app.core import dependencies as deps
from app.core.timezone import timezone_manager

from . import crud as div_crud
from . import schemas as div_schemas


router = APIRouter(
    tags=["Division Management (구역 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 생성 / 목록 조회
# =============================================================================
@router.post("", response_model=div_schemas.DivisionRead, status_code=status.HTTP_201_CREATED, summary="새 구역 생성")
async def create_division(
    division_in: div_schemas.DivisionCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    audit_user: str = Depends(deps.get_audit_user_id),
):
    tz = timezone_manager.detect_from_headers(request.headers)
    return await div_crud.division.create(db, obj_in=division_in, created_by=audit_user, extra={"timezone": tz})


@router.get("", response_model=div_schemas.DivisionPage, summary="구역 목록 조회 (필터/페이징)")
async def read_divisions(
    db: AsyncSession = Depends(get_session),
    code: Optional[str] = Query(None, max_length=50, description="코드 부분 일치"),
    description: Optional[str] = Query(None, max_length=255, description="설명 부분 일치 (대소문자 무시)"),
    parent_division_id: Optional[uuid.UUID] = Query(None),
    is_default: Optional[bool] = Query(None),
    active_only: bool = Query(True),
    page: int = Query(div_crud.DEFAULT_PAGE, ge=1),
    limit: int = Query(div_crud.DEFAULT_LIMIT, ge=1, le=div_crud.MAX_LIMIT),
):
    return await div_crud.division.find_all(
        db,
        code=code,
        description=description,
        parent_division_id=parent_division_id,
        is_default=is_default,
        active_only=active_only,
        page=page,
        limit=limit,
    )


# =============================================================================
# 2. 집계 / 계층 조회 ({division_id} 경로보다 먼저 선언)
# =============================================================================
@router.get("/active/count", response_model=div_schemas.DivisionCount, summary="활성 구역 수")
async def count_active_divisions(db: AsyncSession = Depends(get_session)):
    return {"count": await div_crud.division.count_active(db)}


@router.get("/hierarchy", response_model=List[div_schemas.DivisionRead], summary="최상위 구역 목록")
async def read_division_roots(db: AsyncSession = Depends(get_session)):
    return await div_crud.division.find_roots(db)


@router.get("/default", response_model=div_schemas.DivisionRead, summary="기본 구역 조회")
async def read_default_division(db: AsyncSession = Depends(get_session)):
    return await div_crud.division.find_default(db)


@router.get("/code/{code}", response_model=div_schemas.DivisionRead, summary="코드로 구역 조회")
async def read_division_by_code(code: str, db: AsyncSession = Depends(get_session)):
    division = await div_crud.division.find_by_code(db, code=code)
    if not division:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Division with code '{code.upper()}' not found")
    return division


@router.get("/seq/{sequential_id}", response_model=div_schemas.DivisionRead, summary="순번으로 구역 조회")
async def read_division_by_sequential_id(sequential_id: int, db: AsyncSession = Depends(get_session)):
    division = await div_crud.division.find_by_sequential_id(db, sequential_id=sequential_id)
    if not division:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Division with sequential ID '{sequential_id}' not found")
    return division


# =============================================================================
# 3. 단건 조회 / 하위 구역
# =============================================================================
@router.get("/{division_id}", response_model=div_schemas.DivisionRead, summary="특정 구역 조회")
async def read_division(division_id: uuid.UUID, db: AsyncSession = Depends(get_session)):
    return await div_crud.division.find_one(db, id=division_id)


@router.get("/{division_id}/children", response_model=List[div_schemas.DivisionRead], summary="하위 구역 목록")
async def read_division_children(division_id: uuid.UUID, db: AsyncSession = Depends(get_session)):
    await div_crud.division.find_one(db, id=division_id)
    return await div_crud.division.find_children(db, parent_id=division_id)


@router.get("/{division_id}/descendants", response_model=List[div_schemas.DivisionRead], summary="모든 하위 구역")
async def read_division_descendants(division_id: uuid.UUID, db: AsyncSession = Depends(get_session)):
    await div_crud.division.find_one(db, id=division_id)
    return await div_crud.division.get_descendants(db, id=division_id)


@router.get("/{division_id}/path", response_model=List[div_schemas.DivisionRead], summary="최상위부터의 계층 경로")
async def read_division_path(division_id: uuid.UUID, db: AsyncSession = Depends(get_session)):
    return await div_crud.division.get_hierarchy_path(db, id=division_id)


# =============================================================================
# 4. 수정 / 삭제
# =============================================================================
@router.patch("/{division_id}", response_model=div_schemas.DivisionRead, summary="구역 수정")
async def update_division(
    division_id: uuid.UUID,
    division_in: div_schemas.DivisionUpdate,
    db: AsyncSession = Depends(get_session),
    audit_user: str = Depends(deps.get_audit_user_id),
):
    db_division = await div_crud.division.find_one(db, id=division_id)
    return await div_crud.division.update(db, db_obj=db_division, obj_in=division_in, updated_by=audit_user)


@router.delete("/{division_id}", status_code=status.HTTP_204_NO_CONTENT, summary="구역 삭제 (소프트 삭제)")
async def delete_division(
    division_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    audit_user: str = Depends(deps.get_audit_user_id),
):
    await div_crud.division.remove(db, id=division_id, deleted_by=audit_user)
    return None
