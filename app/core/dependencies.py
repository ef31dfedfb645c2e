# app/core/dependencies.py

"""
FastAPI 애플리케이션의 의존성 주입(Dependency Injection)을 정의하는 모듈입니다.

- 현재 인증된 사용자 정보 획득 (get_current_user_from_token, get_current_active_user 등).
- 감사(audit) 필드에 기록할 사용자 식별자 획득.
"""

from typing import Optional

from fastapi import Depends

from app.core.config import settings

# flake8: noqa
from app.core.security import (
    create_access_token,
    get_password_hash,
    verify_password,
    oauth2_scheme,
    get_current_user_from_token,
    get_current_user_optional,
    get_current_active_user,
    get_current_admin_user,
)
from app.domains.usr.models import User as UsrUser


async def get_audit_user_id(
    current_user: Optional[UsrUser] = Depends(get_current_user_optional),
) -> str:
    """
    created_by / updated_by 에 기록할 사용자 식별자를 반환합니다.
    인증되지 않은 요청은 시스템 사용자로 기록됩니다.
    """
    if current_user is None:
        return settings.SYSTEM_USER
    return str(current_user.id)
