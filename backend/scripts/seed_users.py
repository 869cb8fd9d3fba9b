"""CLI script to create one user per workflow role."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Seed one user per workflow role as <role>@<domain>.",
    )
    parser.add_argument(
        "--domain",
        type=str,
        default="institution.edu",
        help="Email domain for seeded users (default: institution.edu)",
    )
    parser.add_argument(
        "--college",
        type=str,
        default=None,
        help="Optional college assigned to every seeded user",
    )
    return parser.parse_args()


async def seed_users(
    session: AsyncSession,
    *,
    domain: str = "institution.edu",
    college: str | None = None,
) -> tuple[list[str], list[str]]:
    """Create missing role users; returns `(created, skipped)` email lists."""
    from app.db import crud
    from app.models.users import User
    from app.services.workflow.vocabulary import Role, display_name

    created: list[str] = []
    skipped: list[str] = []
    for role in Role:
        email = f"{role.value}@{domain}"
        if await crud.get_by(session, User, email=email) is not None:
            skipped.append(email)
            continue
        session.add(
            User(email=email, name=display_name(role), role=role.value, college=college),
        )
        created.append(email)
    await session.commit()
    return created, skipped


async def _run() -> int:
    from app.db.session import async_session_maker, init_db

    args = _parse_args()
    await init_db()
    async with async_session_maker() as session:
        created, skipped = await seed_users(session, domain=args.domain, college=args.college)

    for email in created:
        sys.stdout.write(f"created {email}\n")
    for email in skipped:
        sys.stdout.write(f"skipped {email} (exists)\n")
    return 0


def main() -> None:
    """Run the async CLI workflow and exit with its return code."""
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
