"""Delete stored messages older than the retention period."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import settings
from src.db.base import async_session
from src.store.messages import MessageStore


async def purge(days: int) -> None:
    async with async_session() as db:
        try:
            deleted = await MessageStore(db).delete_older_than(days)
            await db.commit()
        except Exception as e:
            await db.rollback()
            print(f"Error purging messages: {e}")
            raise

    print(f"Deleted {deleted} message(s) older than {days} days")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--days", type=int, default=settings.MESSAGE_RETENTION_DAYS)
    args = parser.parse_args()
    asyncio.run(purge(args.days))


if __name__ == "__main__":
    main()
