import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Any, Callable
import numpy as np
from PIL import Image, UnidentifiedImageError
from mediavault.core.config import settings
from mediavault.core.errors import EmbeddingFailure
from mediavault.platform.ports.encoders import EncoderKind, ImageEncoder, TextEncoder, ZeroShotClassifier
from mediavault.modules.embeddings.pool import EncoderPool
from mediavault.modules.embeddings.strategies import AllStrategiesFailed, Strategy, first_success
from mediavault.modules.embeddings.vectors import to_unit_vector

log = logging.getLogger("embeddings.pipeline")

OTHER = "Other"

DEFAULT_CATEGORIES = [
    "People", "Portrait", "Selfie", "Nature", "Landscape", "Beach", "Mountains",
    "Animals", "Food", "Architecture", "City", "Vehicles", "Sports", "Events",
    "Art", "Documents", "Screenshots", "Night", "Clothing", "Fashion",
]
PERSON_CATEGORIES = frozenset({"People", "Portrait", "Selfie"})
# clothing labels fire whenever someone is in frame
CLOTHING_CATEGORIES = frozenset({"Clothing", "Fashion"})


@dataclass(frozen=True)
class Classification:
    label: str
    score: float
    strategy: str | None = None


def pick_label(ranked: list[tuple[str, float]], floor: float, person_floor: float) -> tuple[str, float]:
    if not ranked:
        return OTHER, 0.0
    top_label, top_score = ranked[0]
    if top_label in CLOTHING_CATEGORIES and len(ranked) > 1:
        second_label, second_score = ranked[1]
        if second_label in PERSON_CATEGORIES and second_score > person_floor:
            return second_label, second_score
    if top_score > floor:
        return top_label, top_score
    return OTHER, top_score


class EmbeddingPipeline:
    def __init__(
        self,
        pool: EncoderPool,
        *,
        dim: int | None = None,
        encoder_timeout: float | None = None,
        load_timeout: float | None = None,
        confidence_floor: float | None = None,
        person_floor: float | None = None,
    ):
        self.pool = pool
        self.dim = dim or settings.EMBEDDINGS_DIM
        self.encoder_timeout = encoder_timeout or settings.ENCODER_TIMEOUT_S
        self.load_timeout = load_timeout or settings.ENCODER_LOAD_TIMEOUT_S
        self.confidence_floor = settings.CLASSIFY_CONFIDENCE_FLOOR if confidence_floor is None else confidence_floor
        self.person_floor = settings.PERSON_CONFIDENCE_FLOOR if person_floor is None else person_floor
        self.classify_strategies = [
            Strategy("zero-shot", self._rank_zero_shot),
            Strategy("embedding-match", self._rank_by_embeddings),
        ]

    # ---------- Embeddings ----------
    async def embed_image(self, data: bytes) -> list[float]:
        try:
            image = await self._infer(_decode_image, data)
            encoder: ImageEncoder = await self._encoder(EncoderKind.IMAGE)
            raw = await self._infer(encoder.encode, image)
            return to_unit_vector(raw, self.dim)
        except EmbeddingFailure:
            raise
        except Exception as e:
            raise EmbeddingFailure(f"image embedding failed: {e}") from e

    async def embed_text(self, query: str) -> list[float]:
        if not (query or "").strip():
            raise EmbeddingFailure("empty query")
        try:
            encoder: TextEncoder = await self._encoder(EncoderKind.TEXT)
            raw = await self._infer(encoder.encode, query)
            return to_unit_vector(raw, self.dim)
        except EmbeddingFailure:
            raise
        except Exception as e:
            raise EmbeddingFailure(f"text embedding failed: {e}") from e

    # ---------- Classification ----------
    async def classify(self, data: bytes, categories: list[str] | None = None) -> Classification:
        labels = list(categories or DEFAULT_CATEGORIES)
        try:
            image = await self._infer(_decode_image, data)
        except EmbeddingFailure:
            raise
        except Exception as e:
            raise EmbeddingFailure(f"classification failed: {e}") from e
        try:
            outcome = await first_success(self.classify_strategies, image, labels)
        except AllStrategiesFailed as e:
            raise EmbeddingFailure(f"classification failed: {e}") from e
        label, score = pick_label(outcome.value, self.confidence_floor, self.person_floor)
        return Classification(label=label, score=float(score), strategy=outcome.strategy)

    async def _rank_zero_shot(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        classifier: ZeroShotClassifier = await self._encoder(EncoderKind.CLASSIFIER)
        ranked = await self._infer(classifier.rank, image, labels)
        if not ranked:
            raise EmbeddingFailure("classifier returned no labels")
        return sorted(ranked, key=lambda p: p[1], reverse=True)

    async def _rank_by_embeddings(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        image_encoder: ImageEncoder = await self._encoder(EncoderKind.IMAGE)
        text_encoder: TextEncoder = await self._encoder(EncoderKind.TEXT)
        img = np.asarray(to_unit_vector(await self._infer(image_encoder.encode, image), self.dim))
        prompts = [f"a photo of {label.lower()}" for label in labels]
        raw = await self._infer(lambda: [text_encoder.encode(p) for p in prompts])
        sims = np.array([float(np.dot(img, to_unit_vector(v, self.dim))) for v in raw])
        logits = 100.0 * sims
        probs = np.exp(logits - logits.max())
        probs /= probs.sum()
        return sorted(zip(labels, probs.tolist()), key=lambda p: p[1], reverse=True)

    # ---------- Plumbing ----------
    async def _encoder(self, kind: EncoderKind) -> Any:
        try:
            return await asyncio.wait_for(self.pool.get(kind), timeout=self.load_timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingFailure(f"{kind.value} encoder did not load within {self.load_timeout}s") from e

    async def _infer(self, fn: Callable, *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.encoder_timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingFailure(f"encoder call exceeded {self.encoder_timeout}s") from e


def _decode_image(data: bytes) -> Image.Image:
    if not data:
        raise EmbeddingFailure("empty image payload")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise EmbeddingFailure(f"cannot decode image: {e}") from e
    return image.convert("RGB")
