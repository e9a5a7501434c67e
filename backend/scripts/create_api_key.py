"""Create an API key for the session gateway and print it once."""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.security import DEFAULT_PERMISSIONS
from src.db.base import DATABASE_PATH, async_session, utcnow
from src.db.migrate import run_migrations
from src.store.api_keys import APIKeyStore


async def create_key(name: str, permissions: list[str], expires_days: int | None) -> None:
    await run_migrations(DATABASE_PATH)

    expires_at = utcnow() + timedelta(days=expires_days) if expires_days else None

    async with async_session() as db:
        try:
            created = await APIKeyStore(db).create(
                name=name, permissions=permissions, expires_at=expires_at
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            print(f"Error creating API key: {e}")
            raise

    print("=" * 80)
    print("NEW API KEY GENERATED - COPY THIS NOW!")
    print("=" * 80)
    print()
    print(f"   {created.key}")
    print()
    print("=" * 80)
    print(f"  Name:        {name}")
    print(f"  Permissions: {', '.join(permissions)}")
    print(f"  Expires:     {expires_at.isoformat() if expires_at else 'never'}")
    print()
    print("Send it in the X-API-Key header. It is stored hashed and cannot be shown again.")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default="manual-key")
    parser.add_argument(
        "--permissions",
        default=",".join(DEFAULT_PERMISSIONS),
        help="comma separated: read, write, admin or *",
    )
    parser.add_argument("--expires-days", type=int, default=None)
    args = parser.parse_args()

    permissions = [p.strip() for p in args.permissions.split(",") if p.strip()]
    asyncio.run(create_key(args.name, permissions, args.expires_days))


if __name__ == "__main__":
    main()
