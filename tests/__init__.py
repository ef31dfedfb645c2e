# tests/__init__.py

"""
애플리케이션 테스트 스위트 패키지입니다.

- `conftest.py`: 테스트 DB 엔진, 세션, 인증 클라이언트 등 공용 픽스처.
- `domains/`: 구역(div), 사용자(usr) 도메인의 API 통합 테스트.
- `core/`: 엔티티 기반 클래스, 예외 처리, 타임존 등 핵심 모듈의 단위 테스트.
- `scripts/`: 릴리스 자동화 스크립트 테스트.
"""

__title__ = "Division Master Data API Tests"
__version__ = "0.1.0"
__all__ = []
