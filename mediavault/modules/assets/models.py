from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, JSON
from pgvector.sqlalchemy import Vector
from mediavault.core.base import Base, TimestampedOwnerMixin
from mediavault.core.config import settings

# pgvector on PostgreSQL; plain JSON on engines without the extension (sqlite in tests)
EmbeddingType = Vector(dim=settings.EMBEDDINGS_DIM).with_variant(JSON(none_as_null=True), "sqlite")

class MediaAsset(Base, TimestampedOwnerMixin):
    original_name: Mapped[str] = mapped_column(String(512))
    byte_size: Mapped[int] = mapped_column(BigInteger)
    mime_type: Mapped[str] = mapped_column(String(128))
    sha256: Mapped[str] = mapped_column(String(64))

    # Identifier inside the primary store ("<owner_id>/<id>"); reused verbatim on restore.
    provider_id: Mapped[str] = mapped_column(String(512), index=True)
    primary_locator: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Null means "no backup yet": valid, permanent, and makes the asset unrecoverable.
    backup_locator: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    embedding: Mapped[list[float] | None] = mapped_column(EmbeddingType, nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)

    @property
    def is_indexed(self) -> bool:
        return self.embedding is not None

    @property
    def is_restorable(self) -> bool:
        return self.backup_locator is not None
