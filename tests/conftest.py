"""Async fixtures for the media engine: in-memory SQLite plus in-memory stores and encoders."""

from __future__ import annotations

import io
import uuid

import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediavault.core.base import Base
from mediavault.core.errors import NotFound, RateLimited
from mediavault.modules.assets.models import MediaAsset  # noqa: F401
from mediavault.modules.assets.store import AssetStore
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline
from mediavault.modules.embeddings.pool import EncoderPool
from mediavault.modules.quota.models import StoragePlan  # noqa: F401
from mediavault.platform.ports.encoders import EncoderKind
from mediavault.platform.ports.primary_store import PrimaryPutResult

OWNER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_OWNER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
TEST_DIM = 8
MB = 1024 * 1024


def make_image(color: tuple[int, int, int], size: tuple[int, int] = (24, 24)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


# ============================================================================
# In-memory stores
# ============================================================================

class FakePrimaryStore:
    def __init__(self, max_batch: int = 100):
        self.max_batch = max_batch
        self.objects: dict[str, bytes] = {}
        self.puts: list[str] = []
        self.exists_calls: list[list[str]] = []
        self.fail_put = False
        self.fail_delete = False
        self.rate_limit_next = 0
        self._version = 0

    async def put(self, data: bytes, provider_id: str, content_type: str) -> PrimaryPutResult:
        if self.fail_put:
            raise RuntimeError("primary unavailable")
        self._version += 1
        self.objects[provider_id] = data
        self.puts.append(provider_id)
        return PrimaryPutResult(locator=f"mem://primary/v{self._version}/{provider_id}", provider_id=provider_id)

    async def exists_batch(self, provider_ids: list[str]) -> dict[str, bool]:
        if self.rate_limit_next > 0:
            self.rate_limit_next -= 1
            raise RateLimited("slow down", retry_after=0)
        self.exists_calls.append(list(provider_ids))
        return {pid: pid in self.objects for pid in provider_ids}

    async def get(self, provider_id: str) -> bytes:
        if provider_id not in self.objects:
            raise NotFound(f"{provider_id} not in primary")
        return self.objects[provider_id]

    async def delete(self, provider_id: str) -> None:
        if self.fail_delete:
            raise RuntimeError("primary delete failed")
        self.objects.pop(provider_id, None)

    def lose(self, provider_id: str) -> None:
        """Simulate the CDN dropping an object out from under us."""
        self.objects.pop(provider_id, None)


class FakeBackupStore:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False
        self.gets: list[str] = []

    async def put(self, key: str, data: bytes, content_type: str, upsert: bool = True) -> str:
        if self.fail_put:
            raise RuntimeError("backup bucket unreachable")
        self.objects[key] = data
        return key

    async def get(self, key: str) -> bytes:
        self.gets.append(key)
        if self.fail_get:
            raise RuntimeError("backup read error")
        if key not in self.objects:
            raise NotFound(f"{key} not in backup")
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise RuntimeError("backup delete failed")
        self.objects.pop(key, None)

    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str:
        if key not in self.objects:
            raise NotFound(key)
        return f"mem://backup/{key}?ttl={ttl_seconds}"


class FakeEventBus:
    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        self.events.append((topic, key, value))

    async def aclose(self) -> None:
        pass


# ============================================================================
# Encoders: colour in, colour out, so vectors are predictable
# ============================================================================

COLOR_WORDS = {
    "red": [1.0, 0.0, 0.0],
    "green": [0.0, 1.0, 0.0],
    "blue": [0.0, 0.0, 1.0],
    "purple": [1.0, 0.0, 1.0],
}


class MeanColorImageEncoder:
    def encode(self, image: Image.Image) -> list[float]:
        pixels = list(image.convert("RGB").getdata())
        n = len(pixels)
        return [sum(p[i] for p in pixels) / (255.0 * n) for i in range(3)]


class ColorWordTextEncoder:
    def encode(self, text: str) -> list[float]:
        vec = [0.0, 0.0, 0.0, 0.0]
        for word in text.lower().split():
            for i, x in enumerate(COLOR_WORDS.get(word, [])):
                vec[i] += x
        if not any(vec):
            vec[3] = 1.0  # orthogonal to every colour
        return vec


class FixedClassifier:
    def __init__(self, ranking: list[tuple[str, float]] | None = None):
        self.ranking = ranking or [("Nature", 0.8), ("Beach", 0.1)]

    def rank(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        return list(self.ranking)


def fake_loaders(classifier: FixedClassifier | None = None) -> dict:
    classifier = classifier or FixedClassifier()
    return {
        EncoderKind.IMAGE: MeanColorImageEncoder,
        EncoderKind.TEXT: ColorWordTextEncoder,
        EncoderKind.CLASSIFIER: lambda: classifier,
    }


# ============================================================================
# Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def primary() -> FakePrimaryStore:
    return FakePrimaryStore()


@pytest.fixture
def backup() -> FakeBackupStore:
    return FakeBackupStore()


@pytest.fixture
def bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def store(primary, backup) -> AssetStore:
    return AssetStore(
        primary, backup,
        primary_timeout=2, backup_timeout=2,
        concurrency=3, batch_delay_ms=0, rate_limit_retries=3,
    )


@pytest.fixture
def pipeline() -> EmbeddingPipeline:
    return EmbeddingPipeline(EncoderPool(fake_loaders()), dim=TEST_DIM, encoder_timeout=5, load_timeout=5)
