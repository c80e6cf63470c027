import logging
import uuid
from dataclasses import dataclass
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.errors import NotFound
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.assets.store import AssetStore
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline
from mediavault.modules.quota.repository import PlanRepository
from mediavault.modules.quota.service import QuotaLedger
from mediavault.modules.reconciliation.restore import RestoreCoordinator, RestoreReport, RestoreResult
from mediavault.modules.reconciliation.service import ReconciliationService, RestorableAsset, ScanEntry
from mediavault.modules.search.service import SearchHit, SimilaritySearchEngine
from mediavault.modules.uploads.service import UploadOrchestrator, UploadResult
from mediavault.platform.events import ASSET_DELETED, publish_event
from mediavault.platform.ports.event_bus import EventBusPort

log = logging.getLogger("assets.service")

@dataclass(frozen=True)
class DeleteResult:
    asset_id: uuid.UUID
    byte_size: int
    backup_warning: str | None = None

@dataclass(frozen=True)
class QuotaStatus:
    plan: str
    usage: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.usage)

class AssetService:
    """One entry point per owner-facing operation, bound to a single session."""
    def __init__(
        self,
        session: AsyncSession,
        store: AssetStore,
        pipeline: EmbeddingPipeline,
        *,
        bus: EventBusPort | None = None,
    ):
        self.session = session
        self.repo = AssetRepository(session)
        self.store = store
        self.bus = bus
        self.quota = QuotaLedger(session)
        self.uploads = UploadOrchestrator(session, store, pipeline, bus=bus)
        self.search_engine = SimilaritySearchEngine(session, pipeline)
        self.reconciliation = ReconciliationService(session, store)
        self.restorer = RestoreCoordinator(session, store, bus=bus)

    async def upload(self, owner_id: uuid.UUID, data: bytes, name: str, mime_type: str | None) -> UploadResult:
        return await self.uploads.upload(owner_id, data, name, mime_type)

    async def get(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> MediaAsset:
        obj = await self.repo.get(owner_id, asset_id)
        if obj is None:
            raise NotFound(f"asset {asset_id} not found")
        return obj

    async def list_assets(self, owner_id: uuid.UUID, limit: int = 50, offset: int = 0) -> Sequence[MediaAsset]:
        return await self.repo.list_by_owner(owner_id, limit=limit, offset=offset)

    async def search(self, owner_id: uuid.UUID, query: str) -> list[SearchHit]:
        return await self.search_engine.search_by_text(owner_id, query)

    async def find_similar(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> list[SearchHit]:
        return await self.search_engine.find_similar(owner_id, asset_id)

    async def scan_missing(self, owner_id: uuid.UUID, asset_ids: Sequence[uuid.UUID] | None = None) -> list[ScanEntry]:
        return await self.reconciliation.scan(owner_id, asset_ids)

    async def list_restorable(self, owner_id: uuid.UUID) -> list[RestorableAsset]:
        return await self.reconciliation.list_restorable(owner_id)

    async def restore(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> RestoreResult:
        return await self.restorer.restore(owner_id, asset_id)

    async def restore_many(self, owner_id: uuid.UUID, asset_ids: list[uuid.UUID]) -> list[RestoreReport]:
        return await self.restorer.restore_many(owner_id, asset_ids)

    async def delete(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> DeleteResult:
        obj = await self.get(owner_id, asset_id)
        # primary removal is mandatory; a failure leaves the record and the quota untouched
        await self.store.delete_primary(obj.provider_id)
        await self.repo.soft_delete(obj)
        await self.session.commit()

        warning = None
        if obj.backup_locator:
            warning = await self.store.delete_backup(obj.backup_locator)
        log.info(f"Deleted asset={obj.id} owner={owner_id} freed={obj.byte_size}")
        await publish_event(self.bus, ASSET_DELETED, str(obj.id), {
            "owner_id": str(owner_id), "byte_size": obj.byte_size,
        })
        return DeleteResult(asset_id=obj.id, byte_size=obj.byte_size, backup_warning=warning)

    async def quota_status(self, owner_id: uuid.UUID) -> QuotaStatus:
        limit = await self.quota.limit_for(owner_id)
        plan = await PlanRepository(self.session).get(owner_id)
        usage = await self.quota.usage(owner_id)
        await self.session.commit()
        return QuotaStatus(plan=plan.plan, usage=usage, limit=limit)
