# app/domains/div/__init__.py

"""
FastAPI 애플리케이션의 'div' 도메인 패키지입니다.

'div' 도메인은 업무 데이터를 구획하는 구역(Division)의 계층 구조를 관리합니다.
구역은 부모 구역을 가질 수 있는 트리를 이루며, 순환 구조는 허용되지 않고,
기본 구역(is_default)은 하나만 존재할 수 있습니다.

주요 서브모듈:
- `models.py`: divisions 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 요청 및 응답 유효성 검사를 위한 Pydantic 모델.
- `crud.py`: 계층 검증, 기본 구역 관리, 소프트 삭제를 포함한 비동기 CRUD 로직.
- `routers.py`: 구역 조회/생성/수정/삭제 API 엔드포인트 정의.
"""

__title__ = "Division Domain"
__description__ = "Manages the division hierarchy and the default division."
__version__ = "0.1.0"
__all__ = []
