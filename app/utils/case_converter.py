# app/utils/case_converter.py

"""
dict 키의 표기법(camelCase <-> snake_case)을 재귀적으로 변환하는 유틸리티입니다.
중첩된 dict와 list 내부까지 변환하며, 값(value)은 변경하지 않습니다.
"""

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def camel(key: str) -> str:
    """'allow_sub_divisions' -> 'allowSubDivisions'"""
    head, *tail = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in tail)


def snake(key: str) -> str:
    """'allowSubDivisions' -> 'allow_sub_divisions'"""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def to_camel_case(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {camel(k) if isinstance(k, str) else k: to_camel_case(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_camel_case(item) for item in obj]
    return obj


def to_snake_case(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {snake(k) if isinstance(k, str) else k: to_snake_case(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_snake_case(item) for item in obj]
    return obj
