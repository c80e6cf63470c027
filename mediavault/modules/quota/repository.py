import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from mediavault.modules.quota.models import StoragePlan

# dialects whose INSERT supports ON CONFLICT DO NOTHING
_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}

class PlanRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, owner_id: uuid.UUID) -> StoragePlan | None:
        q = select(StoragePlan).where(StoragePlan.owner_id == owner_id, StoragePlan.deleted_at.is_(None))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_or_create(self, owner_id: uuid.UUID, *, plan: str, storage_limit: int) -> StoragePlan:
        """Concurrent callers for a new owner all end up reading the same single row."""
        obj = await self.get(owner_id)
        if obj is not None:
            return obj
        insert = _INSERTS[self.session.get_bind().dialect.name]
        stmt = (
            insert(StoragePlan)
            .values(owner_id=owner_id, plan=plan, storage_limit=storage_limit)
            .on_conflict_do_nothing(index_elements=[StoragePlan.owner_id])
        )
        await self.session.execute(stmt)
        return await self.get(owner_id)

    async def upsert(self, owner_id: uuid.UUID, *, plan: str, storage_limit: int) -> StoragePlan:
        obj = await self.get_or_create(owner_id, plan=plan, storage_limit=storage_limit)
        obj.plan = plan
        obj.storage_limit = storage_limit
        await self.session.flush()
        return obj
