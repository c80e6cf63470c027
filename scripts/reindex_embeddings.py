import argparse
import asyncio
import os
import sys
import uuid

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

from mediavault.core.db import SessionLocal
from mediavault.core.logging import setup_logging
from mediavault.modules.reconciliation.backfill import EmbeddingBackfill
from mediavault.platform.provider_registry import registry

async def main(owner_id: uuid.UUID | None, limit: int | None):
    """
    Index every asset stored without an embedding (uploaded before the
    encoder was available, or whose indexing timed out).
    """
    print("Starting embedding backfill...")
    async with SessionLocal() as db:
        job = EmbeddingBackfill(db, registry.asset_store(), registry.embedding_pipeline())
        report = await job.run(owner_id=owner_id, limit=limit)
    await registry.aclose()

    print(f"Processed: {report.processed}")
    print(f"  indexed: {report.succeeded}")
    print(f"  failed:  {report.failed}")
    print(f"  skipped (not an image): {report.skipped}")
    for asset_id, err in report.errors.items():
        print(f"  - {asset_id}: {err}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill embeddings for unindexed assets")
    parser.add_argument("--owner", type=uuid.UUID, default=None, help="only this owner's assets")
    parser.add_argument("--limit", type=int, default=None)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(main(args.owner, args.limit))
