# tests/domains/__init__.py

"""
도메인별 API 통합 테스트 패키지입니다.

- `test_div_n.py`: 'div' 도메인 (구역 계층, 기본 구역, 소프트 삭제).
- `test_usr_n.py`: 'usr' 도메인 (인증, 사용자 관리, 권한).
"""

__all__ = []
