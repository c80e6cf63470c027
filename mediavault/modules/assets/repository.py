import uuid
from datetime import datetime, timezone
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from mediavault.modules.assets.models import MediaAsset

class AssetRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _live(self, owner_id: uuid.UUID | None = None):
        conds = [MediaAsset.deleted_at.is_(None)]
        if owner_id is not None:
            conds.append(MediaAsset.owner_id == owner_id)
        return conds

    async def create(self, owner_id: uuid.UUID, **fields) -> MediaAsset:
        obj = MediaAsset(owner_id=owner_id, **fields)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, owner_id: uuid.UUID, asset_id: uuid.UUID) -> MediaAsset | None:
        q = select(MediaAsset).where(MediaAsset.id == asset_id, *self._live(owner_id))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_owner(self, owner_id: uuid.UUID, limit: int | None = None, offset: int = 0) -> Sequence[MediaAsset]:
        q = (
            select(MediaAsset)
            .where(*self._live(owner_id))
            .order_by(MediaAsset.created_at.desc(), MediaAsset.id)
            .offset(offset)
        )
        if limit is not None:
            q = q.limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_indexed(self, owner_id: uuid.UUID) -> Sequence[MediaAsset]:
        q = select(MediaAsset).where(*self._live(owner_id), MediaAsset.embedding.is_not(None))
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_with_backup(self, owner_id: uuid.UUID, asset_ids: Sequence[uuid.UUID] | None = None) -> Sequence[MediaAsset]:
        q = (
            select(MediaAsset)
            .where(*self._live(owner_id), MediaAsset.backup_locator.is_not(None))
            .order_by(MediaAsset.created_at.desc(), MediaAsset.id)
        )
        if asset_ids is not None:
            q = q.where(MediaAsset.id.in_(list(asset_ids)))
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_missing_embedding(self, owner_id: uuid.UUID | None = None, limit: int | None = None) -> Sequence[MediaAsset]:
        q = (
            select(MediaAsset)
            .where(*self._live(owner_id), MediaAsset.embedding.is_(None))
            .order_by(MediaAsset.created_at.asc(), MediaAsset.id)
        )
        if limit is not None:
            q = q.limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_missing_backup(self, owner_id: uuid.UUID | None = None, limit: int | None = None) -> Sequence[MediaAsset]:
        q = (
            select(MediaAsset)
            .where(
                *self._live(owner_id),
                MediaAsset.backup_locator.is_(None),
                MediaAsset.primary_locator.is_not(None),
            )
            .order_by(MediaAsset.created_at.asc(), MediaAsset.id)
        )
        if limit is not None:
            q = q.limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def total_bytes(self, owner_id: uuid.UUID) -> int:
        q = select(func.coalesce(func.sum(MediaAsset.byte_size), 0)).where(*self._live(owner_id))
        res = await self.session.execute(q)
        return int(res.scalar_one())

    async def update(self, obj: MediaAsset, **fields) -> MediaAsset:
        for k, v in fields.items():
            setattr(obj, k, v)
        obj.version = (obj.version or 1) + 1
        await self.session.flush()
        return obj

    async def soft_delete(self, obj: MediaAsset) -> None:
        obj.deleted_at = datetime.now(timezone.utc)
        await self.session.flush()
