"""Initialize database schema for the user catalog.

Drops and recreates the users table. The API also creates missing tables
on startup, so this is only needed for a clean reset.
"""

import asyncio
import sys

from catalog.config import settings
from catalog.db import create_schema, engine
from catalog.models import Base


async def init_database():
    """Drop and create all database tables."""
    print(f"Initializing database: {settings.db.url}")

    await create_schema(drop_existing=True)
    await engine.dispose()

    print("✓ Dropped and recreated tables")
    print(f"Tables created: {', '.join(Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    try:
        await init_database()
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
