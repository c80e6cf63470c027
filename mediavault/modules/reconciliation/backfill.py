"""
Maintenance jobs that bring older assets up to the current storage contract:

- EmbeddingBackfill indexes assets stored without an embedding (uploaded
  before the encoder was available, or whose indexing timed out).
- BackupBackfill copies primary-only assets into the backup store.

Both are safe to re-run; each pass only selects rows still missing the field.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.errors import MediaVaultError
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.assets.store import AssetStore, backup_key_for
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline
from mediavault.modules.embeddings.strategies import AllStrategiesFailed, Strategy, first_success
from mediavault.modules.uploads.service import tags_for

log = logging.getLogger("reconciliation.backfill")


@dataclass
class BackfillReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class EmbeddingBackfill:
    def __init__(self, session: AsyncSession, store: AssetStore, pipeline: EmbeddingPipeline):
        self.session = session
        self.repo = AssetRepository(session)
        self.store = store
        self.pipeline = pipeline
        # the primary copy may be gone; the backup is a second source for the bytes
        self.sources = [
            Strategy("primary", self._from_primary),
            Strategy("backup", self._from_backup),
        ]

    async def _from_primary(self, asset: MediaAsset) -> bytes:
        return await self.store.get_primary(asset.provider_id)

    async def _from_backup(self, asset: MediaAsset) -> bytes:
        if asset.backup_locator is None:
            raise MediaVaultError("no backup")
        return await self.store.get_backup(asset.backup_locator)

    async def run(self, owner_id: uuid.UUID | None = None, limit: int | None = None) -> BackfillReport:
        report = BackfillReport()
        assets = await self.repo.list_missing_embedding(owner_id, limit)
        log.info(f"[REINDEX] {len(assets)} assets without embedding")
        for asset in assets:
            report.processed += 1
            if not (asset.mime_type or "").startswith("image/"):
                report.skipped += 1
                continue
            try:
                fetched = await first_success(self.sources, asset)
            except AllStrategiesFailed as e:
                log.warning(f"[REINDEX] asset={asset.id} bytes unavailable: {e}")
                report.failed += 1
                report.errors[str(asset.id)] = str(e)
                continue
            try:
                embedding = await self.pipeline.embed_image(fetched.value)
            except MediaVaultError as e:
                log.warning(f"[REINDEX] asset={asset.id} embedding failed: {e}")
                report.failed += 1
                report.errors[str(asset.id)] = str(e)
                continue

            fields = {"embedding": embedding}
            if asset.category is None:
                try:
                    classification = await self.pipeline.classify(fetched.value)
                    fields["category"] = classification.label
                    fields["tags"] = tags_for(classification.label)
                except MediaVaultError as e:
                    log.warning(f"[REINDEX] asset={asset.id} categorization failed, embedding kept: {e}")
            await self.repo.update(asset, **fields)
            await self.session.commit()
            report.succeeded += 1
            log.info(f"[REINDEX] asset={asset.id} indexed from {fetched.strategy} (category={asset.category})")
        return report


class BackupBackfill:
    def __init__(
        self,
        session: AsyncSession,
        store: AssetStore,
        *,
        concurrency: int | None = None,
        batch_delay_ms: int | None = None,
    ):
        self.session = session
        self.repo = AssetRepository(session)
        self.store = store
        self.concurrency = max(1, concurrency or settings.RECONCILE_CONCURRENCY)
        self.batch_delay = (settings.RECONCILE_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms) / 1000.0

    async def _copy(self, asset: MediaAsset) -> tuple[MediaAsset, str | None, str | None]:
        try:
            data = await self.store.get_primary(asset.provider_id)
        except MediaVaultError as e:
            return asset, None, f"primary read failed: {e}"
        outcome = await self.store.put_backup(backup_key_for(asset.owner_id, asset.id), data, asset.mime_type)
        return asset, outcome.locator, outcome.error

    async def run(self, owner_id: uuid.UUID | None = None, limit: int | None = None) -> BackfillReport:
        report = BackfillReport()
        assets = list(await self.repo.list_missing_backup(owner_id, limit))
        log.info(f"[MIGRATE] {len(assets)} assets without backup")
        for start in range(0, len(assets), self.concurrency):
            wave = assets[start:start + self.concurrency]
            # store I/O runs concurrently; database writes stay on the single session
            for asset, locator, error in await asyncio.gather(*(self._copy(a) for a in wave)):
                report.processed += 1
                if locator is None:
                    log.warning(f"[MIGRATE] asset={asset.id} not backed up: {error}")
                    report.failed += 1
                    report.errors[str(asset.id)] = error or "unknown error"
                    continue
                await self.repo.update(asset, backup_locator=locator)
                report.succeeded += 1
            await self.session.commit()
            log.info(f"[MIGRATE] progress {min(start + self.concurrency, len(assets))}/{len(assets)}")
            if start + self.concurrency < len(assets):
                await asyncio.sleep(self.batch_delay)
        return report
