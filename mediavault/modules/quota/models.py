from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, UniqueConstraint
from mediavault.core.base import Base, TimestampedOwnerMixin

class StoragePlan(Base, TimestampedOwnerMixin):
    __table_args__ = (UniqueConstraint("owner_id", name="uq_storageplan_owner"),)

    plan: Mapped[str] = mapped_column(String(32), default="FREE")
    storage_limit: Mapped[int] = mapped_column(BigInteger)
