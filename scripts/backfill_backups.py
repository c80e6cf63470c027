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
from mediavault.modules.reconciliation.backfill import BackupBackfill
from mediavault.platform.provider_registry import registry

async def main(owner_id: uuid.UUID | None, limit: int | None):
    """
    Copy assets that only live in the primary store into the backup store, a
    few at a time so the CDN is not hammered.
    """
    print("Starting backup backfill...")
    async with SessionLocal() as db:
        report = await BackupBackfill(db, registry.asset_store()).run(owner_id=owner_id, limit=limit)
    await registry.aclose()

    print(f"Processed: {report.processed}")
    print(f"  backed up: {report.succeeded}")
    print(f"  failed:    {report.failed}")
    for asset_id, err in report.errors.items():
        print(f"  - {asset_id}: {err}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Copy primary-only assets into the backup store")
    parser.add_argument("--owner", type=uuid.UUID, default=None, help="only this owner's assets")
    parser.add_argument("--limit", type=int, default=None)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(main(args.owner, args.limit))
