"""List the WhatsApp groups of a connected session via the running API."""

import argparse
import asyncio
import os
import sys
from pathlib import Path

import httpx

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import settings


async def list_groups(base_url: str, api_key: str, session_id: str | None) -> int:
    headers = {"X-API-Key": api_key}
    async with httpx.AsyncClient(base_url=base_url, headers=headers, timeout=30) as client:
        if not session_id:
            resp = await client.get("/sessions")
            resp.raise_for_status()
            sessions = resp.json()["sessions"]
            print("Usage: python scripts/list_groups.py <session-id>")
            if sessions:
                print("\nAvailable sessions:\n")
                for s in sessions:
                    print(f"  {s['id']} - {s['name']} ({s['status']})")
            return 1

        resp = await client.get(f"/sessions/{session_id}/groups")
        if resp.status_code != 200:
            body = resp.json()
            print(f"Error: {body.get('message', resp.text)}")
            return 1

        groups = resp.json()["groups"]
        print(f"\n{len(groups)} group(s) found:\n")
        for group in groups:
            print(f"  {group['name']}")
            print(f"     ID: {group['id']}")
            print(f"     Participants: {group['participants']}")
            print(f"     Admin: {'yes' if group['is_admin'] else 'no'}")
            print()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("session_id", nargs="?")
    parser.add_argument(
        "--url",
        default=f"{settings.PUBLIC_URL.rstrip('/')}{settings.API_PREFIX}",
    )
    parser.add_argument("--api-key", default=os.environ.get("APP_API_KEY") or settings.API_KEY)
    args = parser.parse_args()

    if not args.api_key:
        print("An API key is required (--api-key or APP_API_KEY).")
        sys.exit(1)

    sys.exit(asyncio.run(list_groups(args.url, args.api_key, args.session_id)))


if __name__ == "__main__":
    main()
