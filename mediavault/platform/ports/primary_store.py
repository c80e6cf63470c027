from dataclasses import dataclass
from typing import Protocol, runtime_checkable

@dataclass(frozen=True)
class PrimaryPutResult:
    locator: str
    provider_id: str

@runtime_checkable
class PrimaryStorePort(Protocol):
    # Largest id list a single exists_batch call may carry
    max_batch: int

    async def put(self, data: bytes, provider_id: str, content_type: str) -> PrimaryPutResult: ...
    async def exists_batch(self, provider_ids: list[str]) -> dict[str, bool]: ...
    async def get(self, provider_id: str) -> bytes: ...
    async def delete(self, provider_id: str) -> None: ...
