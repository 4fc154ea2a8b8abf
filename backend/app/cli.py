"""Management CLI.

Usage:
    python -m app.cli expire-runs [days]               # Abandon stale in-progress wizard runs
    python -m app.cli issue-token <user_id> [perm ...]  # Mint a development access token
"""

import asyncio
import sys

from app.auth.jwt import create_access_token
from app.auth.permissions import ALL_PERMISSIONS, SUPERUSER
from app.config import settings
from app.database import async_session
from app.services.wizard_runs import expire_stale_runs


async def _expire_runs(days: int) -> int:
    async with async_session() as session:
        try:
            count = await expire_stale_runs(session, days)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return count


def expire_runs(args: list[str]):
    """Mark IN_PROGRESS wizard runs idle for more than N days as ABANDONED."""
    days = int(args[0]) if args else settings.wizard_run_stale_days
    count = asyncio.run(_expire_runs(days))
    print(f"  Abandoned {count} wizard run(s) idle for more than {days} day(s)")


def issue_token(args: list[str]):
    if not args:
        print("Usage: python -m app.cli issue-token <user_id> [perm ...]")
        sys.exit(1)
    user_id, perms = args[0], args[1:] or [SUPERUSER]
    unknown = [p for p in perms if p != SUPERUSER and p not in ALL_PERMISSIONS]
    if unknown:
        print(f"  Unknown permission(s): {', '.join(unknown)}")
        sys.exit(1)
    print(create_access_token(user_id, perms))


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "expire-runs":
        expire_runs(sys.argv[2:])
    elif cmd == "issue-token":
        issue_token(sys.argv[2:])
    else:
        print("Usage: python -m app.cli [expire-runs|issue-token]")
