#!/usr/bin/env python3
"""
Check the PostgreSQL connection and create the MRS tables
"""
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import text

ROOT_DIR = Path(__file__).parent
sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / '.env')

from database import postgres_settings, init_postgres_db, get_engine, close_postgres_db  # noqa: E402


async def check_connection() -> bool:
    """Connect, create tables and list them"""
    print("=" * 50)
    print("Checking PostgreSQL connection...")
    print("=" * 50)
    print(f"Host: {postgres_settings.postgres_host}")
    print(f"Port: {postgres_settings.postgres_port}")
    print(f"Database: {postgres_settings.postgres_db}")
    print("=" * 50)

    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            print(f"Connection test: {result.scalar()}")

        print("\nCreating database tables...")
        await init_postgres_db()

        async with get_engine().connect() as conn:
            result = await conn.execute(text("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                ORDER BY table_name
            """))
            tables = result.fetchall()
            print(f"\nTables ({len(tables)}):")
            for table in tables:
                print(f"   - {table[0]}")

        print("\nPostgreSQL connection successful")
        return True

    except Exception as e:
        print(f"\nConnection failed: {e}")
        return False
    finally:
        await close_postgres_db()


if __name__ == "__main__":
    ok = asyncio.run(check_connection())
    sys.exit(0 if ok else 1)
