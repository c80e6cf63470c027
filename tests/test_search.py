import uuid

import pytest

from mediavault.core.errors import NotFound
from mediavault.modules.assets.repository import AssetRepository
from mediavault.modules.embeddings.pipeline import EmbeddingPipeline
from mediavault.modules.embeddings.pool import EncoderPool
from mediavault.modules.embeddings.vectors import to_unit_vector
from mediavault.modules.search.service import SimilaritySearchEngine, lexical_match, rank
from mediavault.platform.ports.encoders import EncoderKind

from conftest import OTHER_OWNER_ID, OWNER_ID, TEST_DIM


async def _asset(db, name: str, vec=None, owner_id=OWNER_ID, category=None, tags=None):
    asset_id = uuid.uuid4()
    obj = await AssetRepository(db).create(
        owner_id,
        id=asset_id,
        original_name=name,
        byte_size=10,
        mime_type="image/png",
        sha256="0" * 64,
        provider_id=f"{owner_id}/{asset_id}",
        primary_locator=f"mem://primary/{asset_id}",
        embedding=to_unit_vector(vec, TEST_DIM) if vec is not None else None,
        category=category,
        tags=tags,
    )
    await db.commit()
    return obj


@pytest.mark.asyncio
async def test_text_search_orders_by_score_and_applies_threshold(db, pipeline):
    red = await _asset(db, "red.png", [1, 0, 0])
    reddish = await _asset(db, "reddish.png", [0.8, 0.6, 0])
    await _asset(db, "blue.png", [0, 0, 1])
    await _asset(db, "unindexed.png")

    hits = await SimilaritySearchEngine(db, pipeline).search_by_text(OWNER_ID, "red", threshold=0.5)

    assert [h.asset.id for h in hits] == [red.id, reddish.id]
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)
    assert all(s >= 0.5 for s in scores)


@pytest.mark.asyncio
async def test_text_search_respects_top_k_and_owner(db, pipeline):
    for i in range(5):
        await _asset(db, f"r{i}.png", [1, 0.1 * i, 0])
    await _asset(db, "theirs.png", [1, 0, 0], owner_id=OTHER_OWNER_ID)

    hits = await SimilaritySearchEngine(db, pipeline).search_by_text(OWNER_ID, "red", threshold=0.1, top_k=3)
    assert len(hits) == 3
    assert all(h.asset.owner_id == OWNER_ID for h in hits)


@pytest.mark.asyncio
async def test_falls_back_to_keyword_search_when_nothing_scores(db, pipeline):
    await _asset(db, "holiday-beach.jpg", [0, 1, 0])
    await _asset(db, "receipt.jpg", [0, 1, 0], category="Documents", tags=["DOCUMENTS"])

    hits = await SimilaritySearchEngine(db, pipeline).search_by_text(OWNER_ID, "Beach")
    assert [h.asset.original_name for h in hits] == ["holiday-beach.jpg"]
    assert hits[0].score is None

    by_tag = await SimilaritySearchEngine(db, pipeline).search_by_text(OWNER_ID, "documents")
    assert [h.asset.original_name for h in by_tag] == ["receipt.jpg"]


@pytest.mark.asyncio
async def test_falls_back_to_keyword_search_when_encoder_is_down(db):
    def broken():
        raise RuntimeError("model server down")

    pipe = EmbeddingPipeline(EncoderPool({EncoderKind.TEXT: broken}), dim=TEST_DIM)
    await _asset(db, "red-car.png", [1, 0, 0])
    hits = await SimilaritySearchEngine(db, pipe).search_by_text(OWNER_ID, "red")
    assert [h.asset.original_name for h in hits] == ["red-car.png"]


@pytest.mark.asyncio
async def test_empty_query_returns_nothing(db, pipeline):
    await _asset(db, "a.png", [1, 0, 0])
    assert await SimilaritySearchEngine(db, pipeline).search_by_text(OWNER_ID, "  ") == []


@pytest.mark.asyncio
async def test_find_similar_excludes_source_and_caps(db, pipeline):
    source = await _asset(db, "src.png", [1, 0, 0])
    near = await _asset(db, "near.png", [0.95, 0.1, 0])
    await _asset(db, "far.png", [0, 0, 1])

    hits = await SimilaritySearchEngine(db, pipeline).find_similar(OWNER_ID, source.id)
    ids = [h.asset.id for h in hits]
    assert source.id not in ids
    assert ids == [near.id]
    assert hits[0].score >= 0.6


@pytest.mark.asyncio
async def test_find_similar_on_unindexed_source_is_empty(db, pipeline):
    source = await _asset(db, "raw.png")
    await _asset(db, "other.png", [1, 0, 0])
    assert await SimilaritySearchEngine(db, pipeline).find_similar(OWNER_ID, source.id) == []


@pytest.mark.asyncio
async def test_find_similar_unknown_asset(db, pipeline):
    with pytest.raises(NotFound):
        await SimilaritySearchEngine(db, pipeline).find_similar(OWNER_ID, uuid.uuid4())


@pytest.mark.asyncio
async def test_find_similar_does_not_cross_owners(db, pipeline):
    theirs = await _asset(db, "theirs.png", [1, 0, 0], owner_id=OTHER_OWNER_ID)
    with pytest.raises(NotFound):
        await SimilaritySearchEngine(db, pipeline).find_similar(OWNER_ID, theirs.id)


def test_rank_skips_mismatched_dimensions():
    class A:
        def __init__(self, id, embedding):
            self.id, self.embedding = id, embedding

    good = A(1, [1.0, 0.0])
    wrong = A(2, [1.0, 0.0, 0.0])
    hits = rank([1.0, 0.0], [good, wrong], threshold=0.0, top_k=10)
    assert [h.asset.id for h in hits] == [1]


def test_lexical_match_is_case_insensitive():
    class A:
        def __init__(self, name):
            self.original_name, self.category, self.tags = name, None, None

    assert len(lexical_match([A("Sunset.JPG"), A("dog.png")], "sunset")) == 1
