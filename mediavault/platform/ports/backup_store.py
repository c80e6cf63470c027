from typing import Protocol, runtime_checkable

@runtime_checkable
class BackupStorePort(Protocol):
    async def put(self, key: str, data: bytes, content_type: str, upsert: bool = True) -> str: ...
    async def get(self, key: str) -> bytes: ...
    async def delete(self, key: str) -> None: ...
    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str: ...
