#!/usr/bin/env python3
"""Issue, list or revoke API keys for a user.

Usage examples:
    # New key (printed once, never stored in clear)
    uv run python scripts/create_api_key.py alice --label "mobile app"

    # Key that expires in 30 days
    uv run python scripts/create_api_key.py alice --ttl-days 30

    # Show a user's keys
    uv run python scripts/create_api_key.py alice --list

    # Revoke one
    uv run python scripts/create_api_key.py alice --revoke 3f2a...
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from wisdomai.auth.store import ApiKeyStore


async def _create(user_id: str, label: str, ttl_days: int | None) -> None:
    raw_key, credential = await ApiKeyStore.get().create_key(user_id, label, ttl_days=ttl_days)
    print(f"Key ID:   {credential.id}")
    print(f"Label:    {credential.label}")
    print(f"Expires:  {credential.expires_at:%Y-%m-%d}")
    print()
    print(f"API key:  {raw_key}")
    print("Store it now; it cannot be shown again.")


async def _list(user_id: str) -> None:
    keys = await ApiKeyStore.get().list_keys(user_id)
    if not keys:
        print(f"No keys for {user_id}")
        return
    for cred in keys:
        status = "active" if cred.active and not cred.is_expired() else "inactive"
        last_used = f"{cred.last_used_at:%Y-%m-%d %H:%M}" if cred.last_used_at else "never"
        print(
            f"{cred.id}  {cred.label:<20} {status:<8} "
            f"uses={cred.usage_count:<5} last={last_used}  expires={cred.expires_at:%Y-%m-%d}"
        )


async def _revoke(user_id: str, key_id: str) -> None:
    if await ApiKeyStore.get().revoke(key_id, user_id):
        print(f"Revoked {key_id}")
    else:
        print(f"No active key {key_id} for {user_id}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage WisdomAI API keys")
    parser.add_argument("user_id", help="User the key belongs to")
    parser.add_argument("--label", default="default", help="Human-readable key label")
    parser.add_argument("--ttl-days", type=int, default=None, help="Days until expiry")
    parser.add_argument("--list", action="store_true", help="List the user's keys")
    parser.add_argument("--revoke", metavar="KEY_ID", help="Revoke a key by ID")
    args = parser.parse_args()

    if args.list:
        asyncio.run(_list(args.user_id))
    elif args.revoke:
        asyncio.run(_revoke(args.user_id, args.revoke))
    else:
        asyncio.run(_create(args.user_id, args.label, args.ttl_days))


if __name__ == "__main__":
    main()
