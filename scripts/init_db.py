#!/usr/bin/env python
"""Check database connectivity and create the ingest tables if absent.

Usage:
    python scripts/init_db.py
"""

import asyncio
import sys

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import get_settings
from app.core.database import Base
from app.features.ingest.models import CallRecord, ImportLog


async def init_database() -> int:
    """Verify connectivity, then create call_record and import_log."""
    settings = get_settings()

    print("CallIngest - Database Initialization")
    print("=" * 40)
    print(f"Database URL: {settings.database_url.split('@')[-1]}")  # Hide credentials
    print()

    engine = create_async_engine(settings.database_url)

    try:
        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1
            print("[OK] Basic connectivity")

            await conn.run_sync(
                Base.metadata.create_all,
                tables=[CallRecord.__table__, ImportLog.__table__],
            )
            print(f"[OK] Tables ready: {CallRecord.__tablename__}, {ImportLog.__tablename__}")

        print()
        print("Database initialization completed successfully!")
        return 0

    except Exception as e:
        print(f"[FAIL] Initialization failed: {e}")
        print()
        print("Troubleshooting:")
        print("  1. Ensure PostgreSQL is running")
        print("  2. Check DATABASE_URL in .env file")
        return 1

    finally:
        await engine.dispose()


def main() -> None:
    sys.exit(asyncio.run(init_database()))


if __name__ == "__main__":
    main()
