import logging
import uuid
from dataclasses import dataclass
from typing import Sequence
import numpy as np
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.errors import EmbeddingFailure, NotFound
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline

log = logging.getLogger("search.engine")

@dataclass(frozen=True)
class SearchHit:
    asset: MediaAsset
    score: float | None  # None for lexical matches

def rank(query: Sequence[float], candidates: Sequence[MediaAsset], threshold: float, top_k: int) -> list[SearchHit]:
    """Cosine ranking by dot product; both sides are unit vectors."""
    q = np.asarray(query, dtype=np.float64)
    usable = []
    for a in candidates:
        if a.embedding is None:
            continue
        vec = np.asarray(a.embedding, dtype=np.float64)
        if vec.shape != q.shape:
            log.warning(f"Skipping asset {a.id}: embedding dim {vec.shape} != query dim {q.shape}")
            continue
        usable.append((a, vec))
    if not usable or top_k <= 0:
        return []
    scores = np.vstack([v for _, v in usable]) @ q
    order = np.argsort(-scores, kind="stable")
    hits = []
    for i in order:
        score = float(scores[i])
        if score < threshold:
            break
        hits.append(SearchHit(asset=usable[i][0], score=score))
        if len(hits) >= top_k:
            break
    return hits

def lexical_match(assets: Sequence[MediaAsset], query: str) -> list[SearchHit]:
    needle = query.strip().lower()
    hits = []
    for a in assets:
        haystack = [a.original_name or "", a.category or "", *(a.tags or [])]
        if any(needle in h.lower() for h in haystack):
            hits.append(SearchHit(asset=a, score=None))
    return hits

class SimilaritySearchEngine:
    def __init__(self, session: AsyncSession, pipeline: EmbeddingPipeline):
        self.repo = AssetRepository(session)
        self.pipeline = pipeline

    async def search_by_text(
        self, owner_id: uuid.UUID, query: str, threshold: float | None = None, top_k: int | None = None
    ) -> list[SearchHit]:
        threshold = settings.TEXT_SEARCH_THRESHOLD if threshold is None else threshold
        top_k = settings.TEXT_SEARCH_TOP_K if top_k is None else top_k
        if not (query or "").strip():
            return []

        try:
            vec = await self.pipeline.embed_text(query)
        except EmbeddingFailure as e:
            log.warning(f"[SEARCH] embedding failed for owner={owner_id}, falling back to keyword search: {e}")
            return await self._lexical(owner_id, query)

        hits = rank(vec, await self.repo.list_indexed(owner_id), threshold, top_k)
        if not hits:
            log.info(f"[SEARCH] vector search found 0 results for {query!r}, falling back to keyword search")
            return await self._lexical(owner_id, query)
        return hits

    async def find_similar(
        self, owner_id: uuid.UUID, asset_id: uuid.UUID, threshold: float | None = None, top_k: int | None = None
    ) -> list[SearchHit]:
        threshold = settings.SIMILAR_THRESHOLD if threshold is None else threshold
        top_k = settings.SIMILAR_TOP_K if top_k is None else top_k
        source = await self.repo.get(owner_id, asset_id)
        if source is None:
            raise NotFound(f"asset {asset_id} not found")
        if source.embedding is None:
            log.info(f"[SIMILAR] asset {asset_id} is not indexed yet; nothing to compare")
            return []
        candidates = [a for a in await self.repo.list_indexed(owner_id) if a.id != source.id]
        return rank(source.embedding, candidates, threshold, top_k)

    async def _lexical(self, owner_id: uuid.UUID, query: str) -> list[SearchHit]:
        return lexical_match(await self.repo.list_by_owner(owner_id), query)
