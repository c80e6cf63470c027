import asyncio
import hashlib
import logging
import uuid
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.errors import QuotaExceeded
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.assets.store import AssetStore, BackupOutcome, backup_key_for, provider_id_for
from mediavault.modules.embeddings.pipeline import OTHER, EmbeddingPipeline
from mediavault.modules.quota.service import QuotaLedger
from mediavault.platform.events import ASSET_UPLOADED, publish_event
from mediavault.platform.ports.event_bus import EventBusPort

log = logging.getLogger("uploads")

@dataclass
class IndexOutcome:
    embedding: list[float] | None = None
    category: str | None = None
    embedding_error: str | None = None
    classification_error: str | None = None

@dataclass
class UploadResult:
    asset: MediaAsset
    backup_error: str | None = None
    embedding_error: str | None = None
    classification_error: str | None = None

def tags_for(category: str | None) -> list[str]:
    if category and category != OTHER:
        return [category.upper()]
    return []

class UploadOrchestrator:
    """
    quota check -> primary write (mandatory) -> backup write and indexing
    (concurrent, best-effort, each capped by a timeout) -> record persisted.
    """
    def __init__(
        self,
        session: AsyncSession,
        store: AssetStore,
        pipeline: EmbeddingPipeline,
        *,
        bus: EventBusPort | None = None,
        indexing_timeout: float | None = None,
    ):
        self.session = session
        self.repo = AssetRepository(session)
        self.quota = QuotaLedger(session)
        self.store = store
        self.pipeline = pipeline
        self.bus = bus
        self.indexing_timeout = indexing_timeout or settings.INDEXING_TIMEOUT_S

    async def upload(self, owner_id: uuid.UUID, data: bytes, name: str, mime_type: str | None) -> UploadResult:
        mime_type = mime_type or "application/octet-stream"
        size = len(data)

        decision = await self.quota.check_and_reserve(owner_id, size)
        if not decision.allowed:
            raise QuotaExceeded(decision.current_usage, decision.limit, requested=size)
        # the plan row may have just been created for this owner
        await self.session.commit()

        asset_id = uuid.uuid4()
        provider_id = provider_id_for(owner_id, asset_id)
        primary = await self.store.put_primary(data, provider_id, mime_type)

        backup, index = await asyncio.gather(
            self.store.put_backup(backup_key_for(owner_id, asset_id), data, mime_type),
            self._index(owner_id, asset_id, data, mime_type),
        )

        try:
            obj = await self.repo.create(
                owner_id,
                id=asset_id,
                original_name=name,
                byte_size=size,
                mime_type=mime_type,
                sha256=hashlib.sha256(data).hexdigest(),
                provider_id=primary.provider_id,
                primary_locator=primary.locator,
                backup_locator=backup.locator,
                embedding=index.embedding,
                category=index.category,
                tags=tags_for(index.category),
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            log.error(f"Persisting asset {asset_id} failed; removing orphaned primary copy {provider_id}")
            await self._discard(provider_id, backup)
            raise

        log.info(
            f"Uploaded asset={asset_id} owner={owner_id} size={size} "
            f"backup={'yes' if backup.ok else 'no'} indexed={'yes' if index.embedding else 'no'}"
        )
        await publish_event(self.bus, ASSET_UPLOADED, str(asset_id), {
            "owner_id": str(owner_id), "byte_size": size, "backed_up": backup.ok,
            "indexed": index.embedding is not None,
        })
        return UploadResult(
            asset=obj,
            backup_error=backup.error,
            embedding_error=index.embedding_error,
            classification_error=index.classification_error,
        )

    async def _index(self, owner_id: uuid.UUID, asset_id: uuid.UUID, data: bytes, mime_type: str) -> IndexOutcome:
        if not mime_type.startswith("image/"):
            reason = f"unsupported media type {mime_type}"
            return IndexOutcome(embedding_error=reason, classification_error=reason)
        try:
            return await asyncio.wait_for(self._run_index(owner_id, asset_id, data), timeout=self.indexing_timeout)
        except asyncio.TimeoutError:
            log.warning(f"[AI] indexing asset={asset_id} timed out after {self.indexing_timeout}s; stored without embedding")
            reason = f"indexing timed out after {self.indexing_timeout}s"
            return IndexOutcome(embedding_error=reason, classification_error=reason)

    async def _run_index(self, owner_id: uuid.UUID, asset_id: uuid.UUID, data: bytes) -> IndexOutcome:
        out = IndexOutcome()
        embedding, classification = await asyncio.gather(
            self.pipeline.embed_image(data), self.pipeline.classify(data), return_exceptions=True
        )
        if isinstance(embedding, Exception):
            log.warning(f"[AI] embedding failed owner={owner_id} asset={asset_id}: {embedding}")
            out.embedding_error = str(embedding)
        elif isinstance(embedding, BaseException):
            raise embedding
        else:
            out.embedding = embedding
        if isinstance(classification, Exception):
            log.warning(f"[AI] categorization failed owner={owner_id} asset={asset_id}: {classification}")
            out.classification_error = str(classification)
        elif isinstance(classification, BaseException):
            raise classification
        else:
            out.category = classification.label
        return out

    async def _discard(self, provider_id: str, backup: BackupOutcome) -> None:
        try:
            await self.store.delete_primary(provider_id)
        except Exception as e:
            log.error(f"Could not remove orphaned primary copy {provider_id}: {e}")
        if backup.ok:
            await self.store.delete_backup(backup.locator)
