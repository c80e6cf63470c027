import asyncio
import os
from urllib.parse import quote
from mediavault.core.config import settings
from mediavault.core.errors import NotFound
from mediavault.platform.ports.backup_store import BackupStorePort

class LocalFilesystemBackupStore(BackupStorePort):
    def __init__(self, root: str | None = None):
        self.root = os.path.abspath(root or settings.LOCAL_BACKUP_ROOT)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = key.strip("/").replace("..", "")
        return os.path.join(self.root, safe)

    def _write(self, path: str, data: bytes, upsert: bool) -> None:
        if not upsert and os.path.exists(path):
            raise FileExistsError(path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)

    def _read(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    async def put(self, key: str, data: bytes, content_type: str, upsert: bool = True) -> str:
        await asyncio.to_thread(self._write, self._path(key), data, upsert)
        return key

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        if not os.path.isfile(path):
            raise NotFound(f"backup object {key} not found")
        return await asyncio.to_thread(self._read, path)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str:
        # No signing for local dev; serve via nginx or an API proxy in real setups.
        return f"file://{quote(self._path(key))}"
