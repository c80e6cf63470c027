"""
Restore protocol: repopulate the primary store from the backup copy.

Per asset:  DEGRADED -> FETCHING -> RESTORED
            DEGRADED -> FETCHING -> UNRECOVERABLE  (backup missing or unreadable)

The asset is republished under its original provider id so previously
distributed references (share links, cached thumbnails) resolve again. There
is no retry loop here; retrying is the caller's decision.
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.errors import (
    FetchFailed, MediaVaultError, NoBackupAvailable, NotFound, PrimaryStoreFailure, RepublishFailed,
)
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.assets.store import AssetStore
from mediavault.platform.events import ASSET_RESTORED, publish_event
from mediavault.platform.ports.event_bus import EventBusPort

log = logging.getLogger("reconciliation.restore")


class RestoreState(str, enum.Enum):
    DEGRADED = "degraded"
    FETCHING = "fetching"
    RESTORED = "restored"
    UNRECOVERABLE = "unrecoverable"


@dataclass
class RestoreResult:
    asset: MediaAsset
    state: RestoreState
    locator: str
    fetched_backup: bool


@dataclass
class RestoreReport:
    asset_id: uuid.UUID
    state: RestoreState | None
    locator: str | None = None
    error: str | None = None
    error_kind: str | None = None


class RestoreCoordinator:
    def __init__(self, session: AsyncSession, store: AssetStore, *, bus: EventBusPort | None = None):
        self.session = session
        self.repo = AssetRepository(session)
        self.store = store
        self.bus = bus

    async def restore(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> RestoreResult:
        asset = await self.repo.get(owner_id, asset_id)
        if asset is None:
            raise NotFound(f"asset {asset_id} not found")
        if asset.backup_locator is None:
            log.info(f"[RESTORE] asset={asset_id} has no backup; {RestoreState.UNRECOVERABLE.value}")
            raise NoBackupAvailable(
                f"No backup exists for {asset.original_name!r}; it was uploaded before backups were "
                f"enabled or its backup write failed. Re-upload the original manually."
            )

        if asset.primary_locator and await self._primary_present(asset):
            log.info(f"[RESTORE] asset={asset_id} already present in primary store; nothing to do")
            return RestoreResult(asset=asset, state=RestoreState.RESTORED, locator=asset.primary_locator, fetched_backup=False)

        log.info(f"[RESTORE] asset={asset_id} {RestoreState.DEGRADED.value} -> {RestoreState.FETCHING.value} from {asset.backup_locator}")
        try:
            data = await self.store.get_backup(asset.backup_locator)
        except NotFound:
            log.warning(f"[RESTORE] asset={asset_id} backup object {asset.backup_locator} is gone; {RestoreState.UNRECOVERABLE.value}")
            raise NoBackupAvailable(
                f"Backup for {asset.original_name!r} was not found in the backup store. Re-upload the original manually."
            )
        except MediaVaultError as e:
            log.warning(f"[RESTORE] asset={asset_id} backup fetch failed; {RestoreState.UNRECOVERABLE.value}: {e}")
            raise FetchFailed(f"Backup for {asset.original_name!r} exists but could not be read; try again later.") from e

        try:
            published = await self.store.put_primary(data, asset.provider_id, asset.mime_type)
        except PrimaryStoreFailure as e:
            log.warning(f"[RESTORE] asset={asset_id} republish of {asset.provider_id} failed: {e}")
            raise RepublishFailed(f"Backup for {asset.original_name!r} was read but re-publishing failed; try again.") from e

        await self.repo.update(asset, primary_locator=published.locator)
        await self.session.commit()
        log.info(f"[RESTORE] asset={asset_id} {RestoreState.RESTORED.value}: {asset.provider_id} -> {published.locator}")
        await publish_event(self.bus, ASSET_RESTORED, str(asset.id), {
            "owner_id": str(owner_id), "provider_id": asset.provider_id, "locator": published.locator,
        })
        return RestoreResult(asset=asset, state=RestoreState.RESTORED, locator=published.locator, fetched_backup=True)

    async def restore_many(self, owner_id: uuid.UUID, asset_ids: list[uuid.UUID]) -> list[RestoreReport]:
        # sequential: one AsyncSession cannot run statements concurrently
        reports = []
        delay = settings.RECONCILE_BATCH_DELAY_MS / 1000.0
        for i, asset_id in enumerate(dict.fromkeys(asset_ids)):
            if i:
                await asyncio.sleep(delay)
            try:
                res = await self.restore(owner_id, asset_id)
            except MediaVaultError as e:
                state = RestoreState.UNRECOVERABLE if isinstance(e, (NoBackupAvailable, FetchFailed)) else None
                reports.append(RestoreReport(asset_id=asset_id, state=state, error=str(e), error_kind=type(e).__name__))
                continue
            reports.append(RestoreReport(asset_id=asset_id, state=res.state, locator=res.locator))
        return reports

    async def _primary_present(self, asset: MediaAsset) -> bool:
        try:
            found = await self.store.exists_primary([asset.provider_id])
        except MediaVaultError as e:
            # cannot confirm presence; republishing is an idempotent overwrite
            log.warning(f"[RESTORE] existence check for {asset.provider_id} failed, restoring anyway: {e}")
            return False
        return found.get(asset.provider_id, False)
