"""
Database migration tool.

Applies migrations/NNNN_name.sql files newer than the recorded version.

Usage:
    python -m app.migrate
"""

import os
import re
import sys
from pathlib import Path

import asyncpg

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"
MIGRATION_PATTERN = re.compile(r"^(\d{4})_(.+)\.sql$")


def pending_migrations(migrations_dir: Path, current_version: int) -> list[tuple[int, str, Path]]:
    """Migration files newer than `current_version`, in version order."""
    migrations = []
    for file in sorted(migrations_dir.iterdir()):
        match = MIGRATION_PATTERN.match(file.name)
        if match and int(match.group(1)) > current_version:
            migrations.append((int(match.group(1)), match.group(2), file))
    return migrations


async def run_migrations() -> None:
    database_url = os.environ["DATABASE_URL"]
    conn = await asyncpg.connect(database_url)

    try:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id SERIAL PRIMARY KEY,
                version INTEGER UNIQUE NOT NULL,
                name VARCHAR(255) NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)

        row = await conn.fetchrow("SELECT MAX(version) as version FROM _migrations")
        current_version = row["version"] or 0

        migrations = pending_migrations(MIGRATIONS_DIR, current_version)
        if not migrations:
            print(f"Database is up to date (version {current_version})")
            return

        for version, name, file in migrations:
            print(f"Applying migration {version:04d}_{name}...")
            # Each file and its bookkeeping row land together or not at all.
            async with conn.transaction():
                await conn.execute(file.read_text())
                await conn.execute(
                    "INSERT INTO _migrations (version, name) VALUES ($1, $2)",
                    version,
                    name,
                )
            print(f"  Applied {version:04d}_{name}")

        print(f"Migrations complete. Now at version {migrations[-1][0]}")

    finally:
        await conn.close()


if __name__ == "__main__":
    import asyncio

    try:
        asyncio.run(run_migrations())
    except KeyError:
        print("Error: DATABASE_URL environment variable not set", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
