# tests/domains/test_div_n.py

"""
'div' 도메인 (구역 관리) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.domains.div import crud as div_crud
from app.domains.div import models as div_models
from app.domains.div import schemas as div_schemas


# =============================================================================
# 1. 생성
# =============================================================================
@pytest.mark.asyncio
async def test_create_division_success(client: AsyncClient, default_division):
    division_data = {
        "code": " north ",
        "description": "Northern area",
        "settings": {"allow_sub_divisions": True, "max_users": -1},
    }
    response = await client.post("/api/v1/divisions", json=division_data)

    assert response.status_code == 201
    created = response.json()
    assert created["code"] == "NORTH"
    assert created["version"] == 1
    assert created["sequential_id"] == default_division.sequential_id + 1
    assert created["settings"] == {"allowSubDivisions": True, "maxUsers": -1}
    assert created["created_by"] == settings.SYSTEM_USER
    assert created["timezone"] == "UTC"


@pytest.mark.asyncio
async def test_create_division_records_authenticated_user(admin_client: AsyncClient, test_admin_user):
    response = await admin_client.post("/api/v1/divisions", json={"code": "AUDIT", "description": "Audited"})
    assert response.status_code == 201
    assert response.json()["created_by"] == str(test_admin_user.id)


@pytest.mark.asyncio
async def test_create_division_detects_timezone_from_headers(client: AsyncClient):
    response = await client.post(
        "/api/v1/divisions",
        json={"code": "ROME", "description": "Rome office"},
        headers={"accept-language": "it-IT,it;q=0.9"},
    )
    assert response.status_code == 201
    assert response.json()["timezone"] == "Europe/Rome"


@pytest.mark.asyncio
async def test_create_division_duplicate_code(client: AsyncClient, division_factory):
    await division_factory("EAST", "Eastern area")

    response = await client.post("/api/v1/divisions", json={"code": "east", "description": "Another"})
    assert response.status_code == 409
    assert response.json()["message"] == "Division with code 'EAST' already exists"


@pytest.mark.asyncio
async def test_create_division_duplicate_code_after_soft_delete_allowed(
    client: AsyncClient, division_factory, db_session: AsyncSession
):
    old = await division_factory("WEST", "Western area")
    await div_crud.division.remove(db_session, id=old.id, deleted_by="test")

    response = await client.post("/api/v1/divisions", json={"code": "WEST", "description": "Western area"})
    assert response.status_code == 201
    assert response.json()["id"] != str(old.id)


@pytest.mark.asyncio
async def test_create_division_unknown_parent(client: AsyncClient):
    parent_id = uuid.uuid4()
    response = await client.post("/api/v1/divisions", json={"code": "CHILD", "parent_division_id": str(parent_id)})
    assert response.status_code == 404
    assert response.json()["message"] == f"Parent division with ID '{parent_id}' not found"


@pytest.mark.asyncio
async def test_create_division_parent_disallows_children(client: AsyncClient, division_factory):
    parent = await division_factory("LEAF", "Leaf only", settings={"allowSubDivisions": False})

    response = await client.post("/api/v1/divisions", json={"code": "CHILD", "parent_division_id": str(parent.id)})
    assert response.status_code == 400
    assert response.json()["message"] == "Parent division does not allow child divisions"


@pytest.mark.asyncio
async def test_create_second_default_division_rejected(client: AsyncClient, default_division):
    response = await client.post("/api/v1/divisions", json={"code": "OTHER", "is_default": True})
    assert response.status_code == 409
    assert response.json()["message"] == "A default division already exists"


@pytest.mark.asyncio
async def test_create_division_invalid_timezone(client: AsyncClient):
    response = await client.post("/api/v1/divisions", json={"code": "TZ", "division_timezone": "Mars/Base"})
    assert response.status_code == 400
    assert response.json()["message"] == "Validation errors"


# =============================================================================
# 2. 조회
# =============================================================================
@pytest.mark.asyncio
async def test_read_divisions_filter_and_pagination(client: AsyncClient, division_factory):
    for i in range(1, 6):
        await division_factory(f"AREA{i}", f"Area number {i}")
    await division_factory("OTHER", "Unrelated")

    response = await client.get("/api/v1/divisions", params={"code": "area", "limit": 2, "page": 2})
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 5
    assert page["page"] == 2
    assert page["limit"] == 2
    assert [d["code"] for d in page["divisions"]] == ["AREA3", "AREA4"]

    response = await client.get("/api/v1/divisions", params={"description": "UNRELATED"})
    assert [d["code"] for d in response.json()["divisions"]] == ["OTHER"]


@pytest.mark.asyncio
async def test_read_division_not_found(client: AsyncClient):
    missing = uuid.uuid4()
    response = await client.get(f"/api/v1/divisions/{missing}")
    assert response.status_code == 404
    assert response.json()["message"] == f"Division with ID '{missing}' not found"


@pytest.mark.asyncio
async def test_read_default_division(client: AsyncClient, default_division):
    response = await client.get("/api/v1/divisions/default")
    assert response.status_code == 200
    body = response.json()
    assert body["code"] == div_models.DEFAULT_DIVISION_CODE
    assert body["is_default"] is True


@pytest.mark.asyncio
async def test_read_default_division_missing(client: AsyncClient):
    response = await client.get("/api/v1/divisions/default")
    assert response.status_code == 404
    assert response.json()["message"] == "No default division found"


@pytest.mark.asyncio
async def test_count_active_divisions_excludes_deprecated(
    client: AsyncClient, division_factory, db_session: AsyncSession
):
    await division_factory("ONE")
    two = await division_factory("TWO")
    two.deprecate()
    db_session.add(two)
    await db_session.commit()

    response = await client.get("/api/v1/divisions/active/count")
    assert response.status_code == 200
    assert response.json() == {"count": 1}


@pytest.mark.asyncio
async def test_read_division_by_code_and_sequential_id(client: AsyncClient, division_factory):
    division = await division_factory("LOOKUP", "Lookup target")

    response = await client.get("/api/v1/divisions/code/lookup")
    assert response.status_code == 200
    assert response.json()["id"] == str(division.id)

    response = await client.get(f"/api/v1/divisions/seq/{division.sequential_id}")
    assert response.status_code == 200
    assert response.json()["code"] == "LOOKUP"


# =============================================================================
# 3. 계층
# =============================================================================
@pytest.mark.asyncio
async def test_hierarchy_children_descendants_and_path(client: AsyncClient, division_factory):
    root = await division_factory("ROOT")
    child = await division_factory("CHILD", parent_division_id=root.id)
    grandchild = await division_factory("GRANDCHILD", parent_division_id=child.id)

    response = await client.get("/api/v1/divisions/hierarchy")
    assert [d["code"] for d in response.json()] == ["ROOT"]

    response = await client.get(f"/api/v1/divisions/{root.id}/children")
    assert [d["code"] for d in response.json()] == ["CHILD"]

    response = await client.get(f"/api/v1/divisions/{root.id}/descendants")
    assert {d["id"] for d in response.json()} == {str(child.id), str(grandchild.id)}

    response = await client.get(f"/api/v1/divisions/{grandchild.id}/path")
    assert [d["code"] for d in response.json()] == ["ROOT", "CHILD", "GRANDCHILD"]


@pytest.mark.asyncio
async def test_reparent_under_descendant_rejected(client: AsyncClient, division_factory):
    root = await division_factory("ROOT")
    child = await division_factory("CHILD", parent_division_id=root.id)

    response = await client.patch(f"/api/v1/divisions/{root.id}", json={"parent_division_id": str(child.id)})
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot create circular hierarchy"

    response = await client.patch(f"/api/v1/divisions/{root.id}", json={"parent_division_id": str(root.id)})
    assert response.status_code == 400


# =============================================================================
# 4. 수정
# =============================================================================
@pytest.mark.asyncio
async def test_update_division_bumps_version(client: AsyncClient, division_factory):
    division = await division_factory("UPD", "Before")

    response = await client.patch(
        f"/api/v1/divisions/{division.id}", json={"description": "After", "version": 1}
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["description"] == "After"
    assert updated["code"] == "UPD"
    assert updated["version"] > 1

    response = await client.get(f"/api/v1/divisions/{division.id}")
    assert response.json()["description"] == "After"
    assert response.json()["version"] == updated["version"]


@pytest.mark.asyncio
async def test_update_division_stale_version(client: AsyncClient, division_factory):
    division = await division_factory("LOCK", "Locked")

    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"description": "x", "version": 7})
    assert response.status_code == 409
    assert response.json()["message"] == "Optimistic lock failed: version 7 was expected, but is actually 1"


@pytest.mark.asyncio
async def test_update_division_duplicate_code(client: AsyncClient, division_factory):
    await division_factory("TAKEN")
    division = await division_factory("FREE")

    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"code": "taken"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_division_concurrent_write_conflict(
    client: AsyncClient, division_factory, test_engine
):
    division = await division_factory("RACE", "Original")

    # 다른 세션이 먼저 수정하여 버전을 올립니다. (클라이언트 세션의 객체는 version 1 그대로)
    async with AsyncSession(test_engine, expire_on_commit=False) as other:
        row = await other.get(div_models.Division, division.id)
        row.description = "Other writer"
        other.add(row)
        await other.commit()
        assert row.version == 2

    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"description": "Late writer"})
    assert response.status_code == 409
    assert response.json()["message"] == "Optimistic lock version mismatch"


@pytest.mark.asyncio
async def test_update_default_division_cannot_clear_flag(client: AsyncClient, default_division):
    response = await client.patch(f"/api/v1/divisions/{default_division.id}", json={"is_default": False})
    assert response.status_code == 200
    assert response.json()["is_default"] is True

    response = await client.get("/api/v1/divisions/default")
    assert response.status_code == 200
    assert response.json()["id"] == str(default_division.id)


@pytest.mark.asyncio
async def test_update_division_cannot_become_default(client: AsyncClient, default_division, division_factory):
    division = await division_factory("PLAIN")

    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"is_default": True})
    assert response.status_code == 200
    assert response.json()["is_default"] is False


@pytest.mark.asyncio
async def test_update_default_division_cannot_be_deprecated(client: AsyncClient, default_division):
    response = await client.patch(
        f"/api/v1/divisions/{default_division.id}", json={"validity_end": "2020-01-01T00:00:00Z"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot deprecate the default division"

    response = await client.get("/api/v1/divisions/default")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_update_division_rejects_explicit_null(client: AsyncClient, division_factory):
    division = await division_factory("NULLS", "Keep me")

    response = await client.patch(
        f"/api/v1/divisions/{division.id}", json={"code": None, "description": None, "settings": None}
    )
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation errors"
    messages = body["errors"]["validationErrors"]
    for field in ("code", "description", "settings"):
        assert any(m.startswith(field) and "must not be null" in m for m in messages)

    # 생략된 필드는 그대로 두고, null 허용 필드는 비울 수 있습니다.
    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"parent_division_id": None})
    assert response.status_code == 200
    assert response.json()["code"] == "NULLS"
    assert response.json()["description"] == "Keep me"


@pytest.mark.asyncio
async def test_update_division_timezone_updates_record_timezone(client: AsyncClient, division_factory):
    division = await division_factory("TZUPD", division_timezone="UTC", timezone="UTC")

    response = await client.patch(f"/api/v1/divisions/{division.id}", json={"division_timezone": "Asia/Tokyo"})
    assert response.status_code == 200
    assert response.json()["division_timezone"] == "Asia/Tokyo"
    assert response.json()["timezone"] == "Asia/Tokyo"


# =============================================================================
# 5. 삭제
# =============================================================================
@pytest.mark.asyncio
async def test_delete_division_soft_deletes(client: AsyncClient, division_factory, db_session: AsyncSession):
    division = await division_factory("GONE")

    response = await client.delete(f"/api/v1/divisions/{division.id}")
    assert response.status_code == 204

    response = await client.get(f"/api/v1/divisions/{division.id}")
    assert response.status_code == 404

    stored = await div_crud.division.get(db_session, division.id)
    assert stored is not None
    assert stored.deleted_at is not None
    assert not stored.is_active()


@pytest.mark.asyncio
async def test_delete_default_division_rejected(client: AsyncClient, default_division):
    response = await client.delete(f"/api/v1/divisions/{default_division.id}")
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete the default division"


@pytest.mark.asyncio
async def test_delete_division_with_children_rejected(client: AsyncClient, division_factory):
    parent = await division_factory("PARENT")
    await division_factory("KID", parent_division_id=parent.id)

    response = await client.delete(f"/api/v1/divisions/{parent.id}")
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete division with active child divisions"


# =============================================================================
# 6. CRUD 단위
# =============================================================================
@pytest.mark.asyncio
async def test_ensure_default_division_is_idempotent(db_session: AsyncSession):
    first = await div_crud.division.ensure_default_division(db_session)
    second = await div_crud.division.ensure_default_division(db_session)
    assert first.id == second.id
    assert first.settings == div_models.DEFAULT_DIVISION_SETTINGS


@pytest.mark.asyncio
async def test_find_by_settings(db_session: AsyncSession, division_factory):
    await division_factory("CAPPED", settings={"allowSubDivisions": True, "maxUsers": 10})
    await division_factory("OPEN", settings={"allowSubDivisions": True, "maxUsers": -1})

    found = await div_crud.division.find_by_settings(db_session, key="maxUsers", value=10)
    assert [d.code for d in found] == ["CAPPED"]
    assert not found[0].can_assign_user()


@pytest.mark.asyncio
async def test_concurrent_updates_second_writer_fails(division_factory, test_engine):
    division = await division_factory("TWOSESS", "Original")

    async with AsyncSession(test_engine, expire_on_commit=False) as first, \
            AsyncSession(test_engine, expire_on_commit=False) as second:
        a = await div_crud.division.find_one(first, id=division.id)
        b = await div_crud.division.find_one(second, id=division.id)
        assert a.version == b.version == 1

        await div_crud.division.update(
            first, db_obj=a, obj_in=div_schemas.DivisionUpdate(description="writer A"), updated_by="a"
        )
        with pytest.raises(StaleDataError):
            await div_crud.division.update(
                second, db_obj=b, obj_in=div_schemas.DivisionUpdate(description="writer B"), updated_by="b"
            )

    async with AsyncSession(test_engine) as check:
        stored = await check.get(div_models.Division, division.id)
        assert stored.description == "writer A"
        assert stored.version == 2
        assert stored.updated_by == "a"
