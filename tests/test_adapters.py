import hashlib
import json

import httpx
import pytest

from mediavault.core.errors import NotFound, PrimaryStoreFailure, RateLimited
from mediavault.modules.assets.store import AssetStore
from mediavault.platform.adapters.backup_local import LocalFilesystemBackupStore
from mediavault.platform.adapters.primary_cloudinary import CloudinaryPrimaryStore, sign_params
from mediavault.platform.adapters.primary_local import LocalFilesystemPrimaryStore


# ============================================================================
# Local filesystem stores
# ============================================================================

@pytest.mark.asyncio
async def test_local_primary_reupload_yields_new_locator(tmp_path):
    store = LocalFilesystemPrimaryStore(str(tmp_path / "cdn"), base_url="http://cdn.test")
    first = await store.put(b"one", "owner/a", "image/png")
    second = await store.put(b"two", "owner/a", "image/png")

    assert first.provider_id == second.provider_id == "owner/a"
    assert first.locator != second.locator
    assert first.locator.startswith("http://cdn.test/v")
    assert await store.get("owner/a") == b"two"
    assert await store.exists_batch(["owner/a", "owner/b"]) == {"owner/a": True, "owner/b": False}

    await store.delete("owner/a")
    await store.delete("owner/a")
    with pytest.raises(NotFound):
        await store.get("owner/a")


@pytest.mark.asyncio
async def test_local_backup_roundtrip_and_upsert(tmp_path):
    store = LocalFilesystemBackupStore(str(tmp_path / "backup"))
    assert await store.put("o/1", b"v1", "image/png") == "o/1"
    await store.put("o/1", b"v2", "image/png")
    assert await store.get("o/1") == b"v2"
    assert (await store.signed_url("o/1")).startswith("file://")

    with pytest.raises(FileExistsError):
        await store.put("o/1", b"v3", "image/png", upsert=False)

    await store.delete("o/1")
    with pytest.raises(NotFound):
        await store.get("o/1")


@pytest.mark.asyncio
async def test_asset_store_over_local_adapters(tmp_path):
    store = AssetStore(
        LocalFilesystemPrimaryStore(str(tmp_path / "cdn"), max_batch=2),
        LocalFilesystemBackupStore(str(tmp_path / "backup")),
        batch_delay_ms=0,
    )
    for i in range(3):
        await store.put_primary(b"x", f"o/{i}", "image/png")
    found = await store.exists_primary([f"o/{i}" for i in range(5)])
    assert sum(found.values()) == 3
    assert (await store.put_backup("o/0", b"x", "image/png")).ok


# ============================================================================
# Cloudinary over httpx
# ============================================================================

def _cloudinary(handler) -> CloudinaryPrimaryStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CloudinaryPrimaryStore("demo", "key", "secret", client=client, max_batch=100)


def test_signature_matches_cloudinary_scheme():
    params = {"public_id": "o/1", "timestamp": 1315060510, "overwrite": "true", "empty": ""}
    expected = hashlib.sha1(b"overwrite=true&public_id=o/1&timestamp=1315060510secret").hexdigest()
    assert sign_params(params, "secret") == expected


@pytest.mark.asyncio
async def test_cloudinary_upload_returns_secure_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1_1/demo/image/upload"
        return httpx.Response(200, json={"public_id": "o/1", "version": 42, "secure_url": "https://res/v42/o/1"})

    result = await _cloudinary(handler).put(b"img", "o/1", "image/png")
    assert result.locator == "https://res/v42/o/1"
    assert result.provider_id == "o/1"


@pytest.mark.asyncio
async def test_cloudinary_lookup_maps_presence():
    def handler(request: httpx.Request) -> httpx.Response:
        asked = request.url.params.get_list("public_ids[]")
        assert asked == ["o/1", "o/2"]
        return httpx.Response(200, json={"resources": [{"public_id": "o/2"}]})

    assert await _cloudinary(handler).exists_batch(["o/1", "o/2"]) == {"o/1": False, "o/2": True}


@pytest.mark.asyncio
async def test_cloudinary_rate_limit_is_typed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(420, headers={"retry-after": "7"}, text="Rate Limit Exceeded")

    with pytest.raises(RateLimited) as exc:
        await _cloudinary(handler).exists_batch(["o/1"])
    assert exc.value.retry_after == 7.0


@pytest.mark.asyncio
async def test_cloudinary_server_error_is_primary_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(PrimaryStoreFailure):
        await _cloudinary(handler).put(b"img", "o/1", "image/png")


@pytest.mark.asyncio
async def test_cloudinary_destroy_treats_not_found_as_deleted():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({"result": "not found"}))

    await _cloudinary(handler).delete("o/1")


@pytest.mark.asyncio
async def test_cloudinary_download_404_is_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with pytest.raises(NotFound):
        await _cloudinary(handler).get("o/1")
