"""
Dual-tier asset storage.

The primary store serves traffic and is the store of record: its failures
propagate. The backup store is insurance against the primary losing files:
every backup operation degrades to a logged, advisory result and never fails
the caller's overall operation.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable
from mediavault.core.config import settings
from mediavault.core.errors import (
    BackupStoreFailure, BatchTooLarge, MediaVaultError, NotFound, PrimaryStoreFailure, RateLimited,
)
from mediavault.platform.ports.backup_store import BackupStorePort
from mediavault.platform.ports.primary_store import PrimaryStorePort, PrimaryPutResult

log = logging.getLogger("assets.store")


@dataclass(frozen=True)
class BackupOutcome:
    locator: str | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.locator is not None


def provider_id_for(owner_id: uuid.UUID, asset_id: uuid.UUID) -> str:
    return f"{owner_id}/{asset_id}"


def backup_key_for(owner_id: uuid.UUID, asset_id: uuid.UUID) -> str:
    return f"{owner_id}/{asset_id}"


class AssetStore:
    def __init__(
        self,
        primary: PrimaryStorePort,
        backup: BackupStorePort,
        *,
        primary_timeout: float | None = None,
        backup_timeout: float | None = None,
        concurrency: int | None = None,
        batch_delay_ms: int | None = None,
        rate_limit_retries: int | None = None,
    ):
        self.primary = primary
        self.backup = backup
        self.primary_timeout = primary_timeout or settings.PRIMARY_TIMEOUT_S
        self.backup_timeout = backup_timeout or settings.BACKUP_TIMEOUT_S
        self.concurrency = max(1, concurrency or settings.RECONCILE_CONCURRENCY)
        self.batch_delay = (settings.RECONCILE_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms) / 1000.0
        self.rate_limit_retries = settings.RATE_LIMIT_RETRIES if rate_limit_retries is None else rate_limit_retries

    # ---------- Primary tier (mandatory) ----------
    async def _primary_call(self, action: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.primary_timeout)
        except asyncio.TimeoutError as e:
            raise PrimaryStoreFailure(f"primary {action} timed out after {self.primary_timeout}s") from e
        except MediaVaultError:
            raise
        except Exception as e:
            raise PrimaryStoreFailure(f"primary {action} failed: {e}") from e

    async def put_primary(self, data: bytes, provider_id: str, content_type: str) -> PrimaryPutResult:
        result = await self._primary_call("put", self.primary.put(data, provider_id, content_type))
        log.debug(f"[PRIMARY] stored {provider_id} -> {result.locator}")
        return result

    async def get_primary(self, provider_id: str) -> bytes:
        return await self._primary_call("get", self.primary.get(provider_id))

    async def delete_primary(self, provider_id: str) -> None:
        await self._primary_call("delete", self.primary.delete(provider_id))

    async def exists_primary(self, provider_ids: list[str], chunk_size: int | None = None) -> dict[str, bool]:
        ceiling = self.primary.max_batch
        size = ceiling if chunk_size is None else chunk_size
        if size > ceiling:
            raise BatchTooLarge(f"chunk size {size} exceeds the primary store's batch ceiling of {ceiling}")
        if size < 1:
            raise BatchTooLarge("chunk size must be at least 1")

        ids = list(dict.fromkeys(provider_ids))
        chunks = [ids[i:i + size] for i in range(0, len(ids), size)]
        found: dict[str, bool] = {}
        # waves of `concurrency` chunks with a pause between waves, to stay under provider rate limits
        for start in range(0, len(chunks), self.concurrency):
            wave = chunks[start:start + self.concurrency]
            # every chunk in the wave settles before a failure propagates
            results = await asyncio.gather(*(self._exists_chunk(c) for c in wave), return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]
            for result in results:
                found.update(result)
            if start + self.concurrency < len(chunks):
                await asyncio.sleep(self.batch_delay)
        return found

    async def _exists_chunk(self, chunk: list[str]) -> dict[str, bool]:
        attempt = 0
        while True:
            try:
                answer = await self._primary_call("exists", self.primary.exists_batch(chunk))
            except RateLimited as e:
                if attempt >= self.rate_limit_retries:
                    raise
                delay = e.retry_after if e.retry_after is not None else self.batch_delay * (2 ** attempt) or 0.1
                attempt += 1
                log.warning(f"[PRIMARY] existence check rate limited; retry {attempt}/{self.rate_limit_retries} in {delay:.2f}s")
                await asyncio.sleep(delay)
                continue
            return {pid: bool(answer.get(pid, False)) for pid in chunk}

    # ---------- Backup tier (best-effort) ----------
    async def put_backup(self, key: str, data: bytes, content_type: str) -> BackupOutcome:
        try:
            locator = await asyncio.wait_for(
                self.backup.put(key, data, content_type, upsert=True), timeout=self.backup_timeout
            )
        except asyncio.TimeoutError:
            log.warning(f"[BACKUP] backup of {key} timed out after {self.backup_timeout}s (non-fatal)")
            return BackupOutcome(locator=None, error=f"backup timed out after {self.backup_timeout}s")
        except Exception as e:
            log.warning(f"[BACKUP] backup of {key} failed (non-fatal): {e}")
            return BackupOutcome(locator=None, error=str(e) or e.__class__.__name__)
        log.info(f"[BACKUP] saved {key}")
        return BackupOutcome(locator=locator or key)

    async def get_backup(self, key: str) -> bytes:
        try:
            return await asyncio.wait_for(self.backup.get(key), timeout=self.backup_timeout)
        except NotFound:
            raise
        except asyncio.TimeoutError as e:
            raise BackupStoreFailure(f"backup read of {key} timed out after {self.backup_timeout}s") from e
        except Exception as e:
            raise BackupStoreFailure(f"backup read of {key} failed: {e}") from e

    async def delete_backup(self, key: str) -> str | None:
        """Returns a warning message instead of raising."""
        try:
            await asyncio.wait_for(self.backup.delete(key), timeout=self.backup_timeout)
        except Exception as e:
            msg = f"backup delete of {key} failed: {str(e) or e.__class__.__name__}"
            log.warning(f"[BACKUP] {msg}")
            return msg
        return None

    async def backup_preview_url(self, key: str, ttl_seconds: int = 3600) -> str:
        try:
            return await asyncio.wait_for(self.backup.signed_url(key, ttl_seconds), timeout=self.backup_timeout)
        except Exception as e:
            raise BackupStoreFailure(f"could not sign preview url for {key}: {e}") from e
