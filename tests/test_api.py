"""HTTP surface: routing, error mapping and response shapes."""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediavault.core.config import settings
from mediavault.modules.assets.router import get_asset_service
from mediavault.modules.assets.service import AssetService
from mediavault.modules.quota.service import QuotaLedger

from conftest import MB, make_image

API = settings.API_PREFIX
OWNER = uuid.UUID(settings.DEFAULT_OWNER_ID)


@pytest_asyncio.fixture
async def client(engine, store, pipeline, bus):
    from mediavault.main import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_service():
        async with session_factory() as session:
            yield AssetService(session, store, pipeline, bus=bus)

    app.dependency_overrides[get_asset_service] = override_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def _upload(client, color=(120, 10, 10), name="red.png"):
    resp = await client.post(f"{API}/assets", files={"file": (name, make_image(color), "image/png")})
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get(f"{API}/health")
    assert resp.status_code == 200
    assert resp.headers["x-request-id"]


@pytest.mark.asyncio
async def test_upload_list_get(client):
    body = await _upload(client)
    asset = body["asset"]
    assert asset["owner_id"] == str(OWNER)
    assert asset["is_indexed"] and asset["is_restorable"]
    assert body["backup_error"] is None

    listed = (await client.get(f"{API}/assets")).json()
    assert [a["id"] for a in listed] == [asset["id"]]
    assert (await client.get(f"{API}/assets/{asset['id']}")).json()["sha256"] == asset["sha256"]


@pytest.mark.asyncio
async def test_unknown_asset_is_404(client):
    resp = await client.get(f"{API}/assets/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


@pytest.mark.asyncio
async def test_search_and_similar(client):
    red = (await _upload(client, (250, 30, 0), "red.png"))["asset"]
    red2 = (await _upload(client, (240, 40, 10), "red2.png"))["asset"]
    await _upload(client, (0, 0, 250), "blue.png")

    hits = (await client.get(f"{API}/assets/search", params={"q": "red"})).json()
    assert {h["asset"]["id"] for h in hits} == {red["id"], red2["id"]}
    assert hits[0]["score"] >= hits[1]["score"]

    similar = (await client.get(f"{API}/assets/{red['id']}/similar")).json()
    assert [h["asset"]["id"] for h in similar] == [red2["id"]]


@pytest.mark.asyncio
async def test_scan_restore_roundtrip(client, primary):
    asset = (await _upload(client))["asset"]
    primary.lose(asset["provider_id"])

    scan = (await client.post(f"{API}/assets/reconcile/scan", json={})).json()
    assert scan == [{"id": asset["id"], "is_missing": True}]

    restorable = (await client.get(f"{API}/assets/restorable")).json()
    assert restorable[0]["preview_url"]

    resp = await client.post(f"{API}/assets/{asset['id']}/restore")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == asset["id"] and body["state"] == "restored" and body["fetched_backup"]
    assert body["locator"] != asset["primary_locator"]


@pytest.mark.asyncio
async def test_restore_without_backup_is_404(client, primary, backup):
    backup.fail_put = True
    asset = (await _upload(client))["asset"]
    primary.lose(asset["provider_id"])
    resp = await client.post(f"{API}/assets/{asset['id']}/restore")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NoBackupAvailable"


@pytest.mark.asyncio
async def test_restore_fetch_failure_is_502(client, primary, backup):
    asset = (await _upload(client))["asset"]
    primary.lose(asset["provider_id"])
    backup.fail_get = True
    resp = await client.post(f"{API}/assets/{asset['id']}/restore")
    assert resp.status_code == 502
    assert resp.json()["retryable"] is True


@pytest.mark.asyncio
async def test_bulk_restore(client, primary):
    asset = (await _upload(client))["asset"]
    primary.lose(asset["provider_id"])
    resp = await client.post(f"{API}/assets/restore", json={"asset_ids": [asset["id"]]})
    assert resp.status_code == 200
    assert resp.json()[0]["state"] == "restored"


@pytest.mark.asyncio
async def test_quota_exceeded_is_403(client, engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await QuotaLedger(session).set_plan(OWNER, "FREE", 1024)
        await session.commit()

    resp = await client.post(f"{API}/assets", files={"file": ("big.bin", b"\0" * 2048, "application/octet-stream")})
    assert resp.status_code == 403
    body = resp.json()
    assert body["limit"] == 1024 and body["current_usage"] == 0


@pytest.mark.asyncio
async def test_delete_and_quota(client):
    asset = (await _upload(client))["asset"]
    quota = (await client.get(f"{API}/quota")).json()
    assert quota["usage"] == asset["byte_size"]

    resp = await client.delete(f"{API}/assets/{asset['id']}")
    assert resp.status_code == 200
    assert resp.json()["freed_bytes"] == asset["byte_size"]
    assert (await client.get(f"{API}/quota")).json()["usage"] == 0


@pytest.mark.asyncio
async def test_oversized_upload_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)
    resp = await client.post(f"{API}/assets", files={"file": ("a.bin", b"x" * 11, "application/octet-stream")})
    assert resp.status_code == 413
