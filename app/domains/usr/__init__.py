# app/domains/usr/__init__.py

"""
FastAPI 애플리케이션의 'usr' 도메인 패키지입니다.

'usr' 도메인은 시스템 사용자와 인증/권한 부여 데이터를 관리합니다.
모든 사용자는 하나의 구역(Division)에 소속되며, 지정하지 않으면 기본 구역에 배정됩니다.

주요 서브모듈:
- `models.py`: users 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 요청 및 응답 유효성 검사, 인증 토큰 스키마.
- `crud.py`: 비밀번호 해싱, 중복 검사, 구역 배정을 포함한 비동기 CRUD 및 인증 로직.
- `routers.py`: 로그인과 사용자 관리 API 엔드포인트 정의.
"""

__title__ = "User Domain"
__description__ = "Manages users and handles authentication."
__version__ = "0.1.0"
__all__ = []
