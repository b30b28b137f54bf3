"""
create_tables.py — create the TasteSphere schema in DATABASE_URL.

Creation is idempotent. --reset drops every table first and is refused
when APP_ENV=production.

Usage:
    python scripts/create_tables.py
    python scripts/create_tables.py --reset
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tastesphere.config import settings
from tastesphere.database import check_db_connectivity, engine
from tastesphere.models import Base  # noqa: F401 — triggers model registration


async def main(reset: bool) -> int:
    if not await check_db_connectivity():
        print("  ✗ Database unreachable — check DATABASE_URL")
        await engine.dispose()
        return 1

    async with engine.begin() as conn:
        if reset:
            print("Dropping tables...")
            await conn.run_sync(Base.metadata.drop_all)
        print("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)

    for name in sorted(Base.metadata.tables):
        print(f"  ✓ {name}")
    print("\nDone. Start the API with `uvicorn tastesphere.main:app`.")
    await engine.dispose()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the TasteSphere schema")
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()

    if args.reset and settings.app_env == "production":
        print("  ✗ Refusing --reset with APP_ENV=production")
        sys.exit(2)
    sys.exit(asyncio.run(main(args.reset)))
