# app/utils/__init__.py

"""
FastAPI 애플리케이션의 'utils' 패키지입니다.

이 패키지는 특정 비즈니스 도메인에 속하지 않는,
프로젝트 전반에서 재사용될 수 있는 범용 유틸리티 함수들을 포함합니다.

주요 서브모듈:
- `case_converter.py`: dict 키의 camelCase / snake_case 재귀 변환.
"""

# flake8: noqa
from . import case_converter

__title__ = "Division Master Data Utilities"
__description__ = "Provides common, reusable utility functions for the application."
__version__ = "0.1.0"
__all__ = ["case_converter"]
