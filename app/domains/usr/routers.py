# app/domains/usr/routers.py

"""
'usr' 도메인 (사용자 관리 및 인증)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

import uuid
from typing import List
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.database import get_session
from app.core import dependencies as deps
from app.core.timezone import timezone_manager

from . import crud as usr_crud
from . import models as usr_models
from . import schemas as usr_schemas


router = APIRouter(
    tags=["User Management (사용자 관리)"],
    responses={404: {"description": "Not found"}},
)


def _ensure_self_or_admin(current_user: usr_models.User, target_id: uuid.UUID, action: str) -> None:
    if not current_user.is_admin and current_user.id != target_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not enough permissions to {action} other user's information.",
        )


# =============================================================================
# 1. 인증 (Authentication) 엔드포인트
# =============================================================================

@router.post("/auth/token", response_model=usr_schemas.Token, summary="Access Token 획득")
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
):
    user = await usr_crud.user.authenticate(
        db, username=form_data.username, password=form_data.password
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active_user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = deps.create_access_token(data={"sub": user.username}, expires_delta=access_token_expires)
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/auth/me", response_model=usr_schemas.UserRead, summary="현재 사용자 정보 조회")
async def read_users_me(current_user: usr_models.User = Depends(deps.get_current_active_user)):
    return current_user


# =============================================================================
# 2. 사용자 (User) 관리 엔드포인트
# =============================================================================
@router.post("", response_model=usr_schemas.UserRead, status_code=status.HTTP_201_CREATED, summary="새 사용자 생성")
async def create_user(
    user_in: usr_schemas.UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    tz = timezone_manager.detect_from_headers(request.headers)
    return await usr_crud.user.create(
        db, obj_in=user_in, created_by=str(current_admin_user.id), extra={"timezone": tz}
    )


@router.get("", response_model=List[usr_schemas.UserRead], summary="사용자 목록 조회")
async def read_users(
    db: AsyncSession = Depends(get_session),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    사용자 목록을 조회합니다.
    - 관리자는 활성 사용자 전체를 조회할 수 있습니다.
    - 일반 사용자는 자신의 정보만 조회합니다.
    """
    if not current_user.is_admin:
        return [current_user]
    return await usr_crud.user.get_active_users(db, skip=skip, limit=limit)


@router.get("/{user_id}", response_model=usr_schemas.UserRead, summary="특정 사용자 조회")
async def read_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    _ensure_self_or_admin(current_user, user_id, "view")
    user = await usr_crud.user.get_active(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/{user_id}", response_model=usr_schemas.UserRead, summary="사용자 정보 수정")
async def update_user(
    user_id: uuid.UUID,
    user_in: usr_schemas.UserUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    사용자 정보를 수정합니다. 역할과 계정 활성 여부는 관리자만 변경할 수 있습니다.
    """
    _ensure_self_or_admin(current_user, user_id, "update")
    if not current_user.is_admin and (user_in.role is not None or user_in.is_active_user is not None):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Admin role required.",
        )

    db_user = await usr_crud.user.get_active(db, user_id)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return await usr_crud.user.update(db, db_obj=db_user, obj_in=user_in, updated_by=str(current_user.id))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="사용자 삭제 (소프트 삭제)")
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    if user_id == current_admin_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account.")
    await usr_crud.user.remove(db, id=user_id, deleted_by=str(current_admin_user.id))
    return None
