import logging
import uuid
from dataclasses import dataclass
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.errors import MediaVaultError
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.assets.store import AssetStore

log = logging.getLogger("reconciliation.scan")

@dataclass(frozen=True)
class ScanEntry:
    id: uuid.UUID
    is_missing: bool

@dataclass
class RestorableAsset:
    asset: MediaAsset
    preview_url: str | None

class ReconciliationService:
    """
    Detects assets whose primary copy is gone. Read-only: restoring is a
    separate step the owner triggers explicitly.
    """
    def __init__(self, session: AsyncSession, store: AssetStore):
        self.repo = AssetRepository(session)
        self.store = store

    async def scan(self, owner_id: uuid.UUID, asset_ids: Sequence[uuid.UUID] | None = None) -> list[ScanEntry]:
        # only assets with a backup can be restored, so only those are worth checking
        candidates = await self.repo.list_with_backup(owner_id, asset_ids)
        if not candidates:
            return []
        present = await self.store.exists_primary([a.provider_id for a in candidates])
        report = [ScanEntry(id=a.id, is_missing=not present.get(a.provider_id, False)) for a in candidates]
        missing = sum(1 for e in report if e.is_missing)
        log.info(f"[SCAN] owner={owner_id} checked={len(report)} missing={missing}")
        return report

    async def list_restorable(self, owner_id: uuid.UUID, preview_ttl: int | None = None) -> list[RestorableAsset]:
        ttl = preview_ttl or settings.RESTORE_PREVIEW_TTL_S
        out = []
        for a in await self.repo.list_with_backup(owner_id):
            try:
                url = await self.store.backup_preview_url(a.backup_locator, ttl)
            except MediaVaultError as e:
                log.warning(f"[SCAN] preview url for asset={a.id} unavailable: {e}")
                url = None
            out.append(RestorableAsset(asset=a, preview_url=url))
        return out
