# app/core/__init__.py

"""
FastAPI 애플리케이션의 핵심 구성 요소 패키지입니다.

이 패키지는 애플리케이션 전반에 걸쳐 사용되는 공통적이고 핵심적인 기능들을 캡슐화합니다.
주요 서브모듈은 다음과 같습니다:

- `config.py`: 애플리케이션의 설정 및 환경 변수 관리 (Pydantic Settings).
- `database.py`: 데이터베이스 연결, 세션 관리 (SQLModel 및 AsyncSQLAlchemy).
- `entity_base.py`: 모든 엔티티가 공유하는 공통 컬럼과 수명 주기 규칙.
- `crud_base.py`: 소프트 삭제와 낙관적 잠금을 지원하는 공통 비동기 CRUD.
- `exceptions.py`: 모든 예외를 단일 JSON 오류 형식으로 정규화.
- `logger.py`: 로깅 설정 및 요청/응답 로깅 미들웨어.
- `security.py`: 사용자 인증, 권한 부여, 비밀번호 해싱 등 보안 관련 유틸리티.
- `timezone.py`: 요청 헤더 기반 타임존 감지 및 변환.
- `health.py`: 데이터베이스, 메모리, 디스크 상태 점검.
- `tasks.py`: ARQ 워커 태스크.
"""

__title__ = "Division Master Data Core"
__description__ = "Core components for the division master-data application."
__version__ = "0.1.0"
__all__ = []
