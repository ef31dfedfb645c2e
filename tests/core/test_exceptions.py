# tests/core/test_exceptions.py

"""
예외 정규화(분류, curl 재구성, 진단 로그) 테스트.
"""

import json
from datetime import datetime, UTC

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.core import exceptions
from app.core.config import settings


def test_classify_http_exception_keeps_status_and_detail():
    status_code, message, errors, headers = exceptions.classify_exception(
        HTTPException(status_code=400, detail="Bad things", headers={"X-Test": "1"})
    )
    assert (status_code, message, errors) == (400, "Bad things", None)
    assert headers == {"X-Test": "1"}


def test_classify_dict_and_list_details():
    status_code, message, errors, _ = exceptions.classify_exception(
        HTTPException(status_code=422, detail={"message": "Custom", "errors": ["a"]})
    )
    assert (status_code, message, errors) == (422, "Custom", ["a"])

    status_code, message, errors, _ = exceptions.classify_exception(
        HTTPException(status_code=400, detail=["code is required", "limit too big"])
    )
    assert status_code == 400
    assert message == exceptions.VALIDATION_MESSAGE
    assert errors == {
        "validationErrors": ["code is required", "limit too big"],
        "details": exceptions.VALIDATION_DETAILS,
    }


def test_classify_database_errors():
    assert exceptions.classify_exception(StaleDataError("stale"))[0] == 409
    integrity = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
    assert exceptions.classify_exception(integrity)[:2] == (409, "Resource conflicts with an existing record")


def test_classify_unknown_error_uses_message():
    assert exceptions.classify_exception(ValueError("Boom"))[:2] == (500, "Boom")
    assert exceptions.classify_exception(RuntimeError())[:2] == (500, exceptions.INTERNAL_ERROR_MESSAGE)


def test_build_curl_command_skips_transport_headers():
    command = exceptions.build_curl_command(
        "post",
        "http://test/api/v1/divisions",
        {"host": "test", "content-length": "12", "authorization": "Bearer abc"},
        b'{"code": "X"}',
    )
    assert command.startswith("curl -X POST 'http://test/api/v1/divisions'")
    assert "-H 'authorization: Bearer abc'" in command
    assert "host" not in command
    assert "-d '{\"code\": \"X\"}'" in command


def test_build_curl_command_invalid_body_falls_back_to_empty_object():
    command = exceptions.build_curl_command("PUT", "http://test/x", {}, b"not json")
    assert command.endswith("-H 'Content-Type: application/json' -d '{}'")
    assert exceptions.build_curl_command("GET", "http://test/x", {}) == "curl -X GET 'http://test/x'"


def test_strip_ansi():
    assert exceptions.strip_ansi("\x1b[31mred\x1b[0m") == "red"


def test_diagnostic_log_path_uses_log_timezone(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "LOG_TIMEZONE", "Asia/Tokyo")
    # UTC 20시는 도쿄 기준 다음 날입니다.
    path = exceptions.diagnostic_log_path(datetime(2024, 3, 1, 20, 0, tzinfo=UTC))
    assert path == str(tmp_path / "sentry-2024-03-02.log")


@pytest.mark.asyncio
async def test_write_diagnostic_entry_appends_json_lines(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "nested"))

    path = await exceptions.write_diagnostic_entry({"status": 500, "message": "first"})
    await exceptions.write_diagnostic_entry({"status": 500, "message": "second"})

    with open(path, encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [entry["message"] for entry in lines] == ["first", "second"]


@pytest.mark.asyncio
async def test_server_error_writes_diagnostic_file(client, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "APP_ENV", "development")

    response = await client.get("/test-error", headers={"user-agent": "pytest"})
    assert response.status_code == 500

    files = list(tmp_path.glob("sentry-*.log"))
    assert len(files) == 1
    entry = json.loads(files[0].read_text(encoding="utf-8").strip())
    assert entry["status"] == 500
    assert entry["path"] == "/test-error"
    assert entry["userAgent"] == "pytest"
    assert entry["curlCommand"].startswith("curl -X GET")
