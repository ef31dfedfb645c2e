# app/domains/models/__init__.py

"""
모든 도메인의 SQLModel 모델들을 한 곳에서 임포트하여
SQLModel.metadata가 모든 테이블을 인식하도록 보장합니다.
"""

# div (Division)
from app.domains.div.models import Division

# usr (User, UserRole)
from app.domains.usr.models import User, UserRole

__all__ = ["Division", "User", "UserRole"]
