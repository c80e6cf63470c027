from mediavault.core.config import settings
from mediavault.platform.ports.primary_store import PrimaryStorePort
from mediavault.platform.adapters.primary_local import LocalFilesystemPrimaryStore
from mediavault.platform.adapters.primary_cloudinary import CloudinaryPrimaryStore
from mediavault.platform.ports.backup_store import BackupStorePort
from mediavault.platform.adapters.backup_local import LocalFilesystemBackupStore
from mediavault.platform.adapters.backup_s3 import S3BackupStore
from mediavault.platform.ports.event_bus import EventBusPort
from mediavault.platform.adapters.bus_noop import NoopEventBus
from mediavault.platform.adapters.bus_redis import RedisEventBus
from mediavault.platform.adapters.encoders_hash import hashing_loaders
from mediavault.platform.adapters.encoders_clip import clip_loaders
from mediavault.modules.assets.store import AssetStore
from mediavault.modules.embeddings.pool import EncoderPool
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline

class ProviderRegistry:
    _primary_store: PrimaryStorePort | None = None
    _backup_store: BackupStorePort | None = None
    _event_bus: EventBusPort | None = None
    _encoder_pool: EncoderPool | None = None
    _pipeline: EmbeddingPipeline | None = None
    _asset_store: AssetStore | None = None

    @classmethod
    def primary_store(cls) -> PrimaryStorePort:
        if cls._primary_store is None:
            if (settings.PRIMARY_STORE_PROVIDER or "local").lower() == "cloudinary":
                cls._primary_store = CloudinaryPrimaryStore()
            else:
                cls._primary_store = LocalFilesystemPrimaryStore(settings.LOCAL_PRIMARY_ROOT)
        return cls._primary_store

    @classmethod
    def backup_store(cls) -> BackupStorePort:
        if cls._backup_store is None:
            if (settings.BACKUP_STORE_PROVIDER or "local").lower() == "s3":
                cls._backup_store = S3BackupStore()
            else:
                cls._backup_store = LocalFilesystemBackupStore(settings.LOCAL_BACKUP_ROOT)
        return cls._backup_store

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def encoder_pool(cls) -> EncoderPool:
        # one pool per process: model weights are loaded once and shared
        if cls._encoder_pool is None:
            prov = (settings.ENCODER_PROVIDER or "hashing").lower()
            if prov == "clip":
                cls._encoder_pool = EncoderPool(clip_loaders())
            else:
                cls._encoder_pool = EncoderPool(hashing_loaders(settings.EMBEDDINGS_DIM))
        return cls._encoder_pool

    @classmethod
    def embedding_pipeline(cls) -> EmbeddingPipeline:
        if cls._pipeline is None:
            cls._pipeline = EmbeddingPipeline(cls.encoder_pool())
        return cls._pipeline

    @classmethod
    def asset_store(cls) -> AssetStore:
        if cls._asset_store is None:
            cls._asset_store = AssetStore(cls.primary_store(), cls.backup_store())
        return cls._asset_store

    @classmethod
    async def aclose(cls) -> None:
        if cls._event_bus is not None:
            await cls._event_bus.aclose()
        close = getattr(cls._primary_store, "aclose", None)
        if close is not None:
            await close()

registry = ProviderRegistry()
