#!/usr/bin/env python3
"""
Backfill the messages namespace of the vector index.

Embeds every existing chat message (oldest first) and upserts it into the
index. Safe to run again: existing records are overwritten.

Usage:
    python scripts/backfill_messages.py [--batch-size 100]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatgenius.core.config import settings
from chatgenius.core.logging import setup_logging
from chatgenius.db.session import AsyncSessionLocal, close_db
from chatgenius.services.container import build_services
from chatgenius.services.indexing.backfill import backfill_messages


async def main(batch_size: int) -> int:
    setup_logging()
    services = build_services(AsyncSessionLocal)

    print(f"\n🔄 Backfilling messages (batch size {batch_size})...")
    try:
        result = await backfill_messages(AsyncSessionLocal, services.pipeline, batch_size=batch_size)
    finally:
        await services.close()
        await close_db()

    print(f"✅ Scanned {result.scanned}/{result.total_messages} messages in {result.batches} batches")
    print(f"   Indexed: {result.indexed}")
    print(f"   Skipped (blank): {result.skipped}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Index all existing chat messages")
    parser.add_argument("--batch-size", type=int, default=settings.BACKFILL_BATCH_SIZE)
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.batch_size)))
