import asyncio
import os
import time
from urllib.parse import quote
from mediavault.core.config import settings
from mediavault.core.errors import NotFound
from mediavault.platform.ports.primary_store import PrimaryStorePort, PrimaryPutResult

class LocalFilesystemPrimaryStore(PrimaryStorePort):
    """
    Filesystem stand-in for the CDN, for local dev.

    Locators carry a version segment (like Cloudinary's /v<timestamp>/) so a
    re-upload under the same provider id yields a fresh locator.
    """
    def __init__(self, root: str | None = None, base_url: str | None = None, max_batch: int | None = None):
        self.root = os.path.abspath(root or settings.LOCAL_PRIMARY_ROOT)
        os.makedirs(self.root, exist_ok=True)
        self.base_url = (base_url or settings.LOCAL_PRIMARY_BASE_URL or f"file://{quote(self.root)}").rstrip("/")
        self.max_batch = max_batch or settings.PRIMARY_EXISTS_BATCH_LIMIT

    def _path(self, provider_id: str) -> str:
        safe = provider_id.strip("/").replace("..", "")
        return os.path.join(self.root, safe)

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def _read(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    async def put(self, data: bytes, provider_id: str, content_type: str) -> PrimaryPutResult:
        await asyncio.to_thread(self._write, self._path(provider_id), data)
        version = time.time_ns()
        return PrimaryPutResult(locator=f"{self.base_url}/v{version}/{quote(provider_id)}", provider_id=provider_id)

    async def exists_batch(self, provider_ids: list[str]) -> dict[str, bool]:
        return {pid: os.path.isfile(self._path(pid)) for pid in provider_ids}

    async def get(self, provider_id: str) -> bytes:
        path = self._path(provider_id)
        if not os.path.isfile(path):
            raise NotFound(f"primary object {provider_id} not found")
        return await asyncio.to_thread(self._read, path)

    async def delete(self, provider_id: str) -> None:
        path = self._path(provider_id)
        if os.path.exists(path):
            os.remove(path)
