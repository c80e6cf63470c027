import logging
import uuid
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.quota.repository import PlanRepository

log = logging.getLogger("quota.ledger")

@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    current_usage: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_usage)

class QuotaLedger:
    """
    Per-owner storage accounting against the owner's plan limit.

    Usage is always a live SUM over the owner's non-deleted assets, never a
    stored counter, so out-of-band deletions cannot make it drift. The check
    takes no lock: two concurrent uploads from one owner can both pass and
    overshoot the limit by at most one in-flight upload. That bound is
    accepted; locking across the stores would cost more than it saves.
    """
    def __init__(self, session: AsyncSession, *, default_limit: int | None = None, default_plan: str | None = None):
        self.session = session
        self.assets = AssetRepository(session)
        self.plans = PlanRepository(session)
        self.default_limit = default_limit or settings.DEFAULT_STORAGE_LIMIT
        self.default_plan = default_plan or settings.DEFAULT_PLAN

    async def usage(self, owner_id: uuid.UUID) -> int:
        return await self.assets.total_bytes(owner_id)

    async def limit_for(self, owner_id: uuid.UUID) -> int:
        plan = await self.plans.get(owner_id)
        if plan is None:
            # owner row missing (signup hook never ran); fall back to the free plan
            plan = await self.plans.get_or_create(owner_id, plan=self.default_plan, storage_limit=self.default_limit)
        return int(plan.storage_limit)

    async def set_plan(self, owner_id: uuid.UUID, plan: str, storage_limit: int) -> None:
        await self.plans.upsert(owner_id, plan=plan, storage_limit=storage_limit)

    async def check_and_reserve(self, owner_id: uuid.UUID, additional_bytes: int) -> QuotaDecision:
        if additional_bytes < 0:
            raise ValueError("additional_bytes must be non-negative")
        current = await self.usage(owner_id)
        limit = await self.limit_for(owner_id)
        allowed = current + additional_bytes <= limit
        if not allowed:
            log.info(f"Quota deny owner={owner_id} usage={current} limit={limit} requested={additional_bytes}")
        return QuotaDecision(allowed=allowed, current_usage=current, limit=limit)
