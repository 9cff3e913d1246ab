#!/usr/bin/env python3
"""Database migration runner for the Jokes API.

Applies the migrations from jokes_api.migrations in order and reseeds the
role/permission tables. Applied migrations are tracked in _migration_history.

Usage:
    # Apply to the configured database (JOKES_DATABASE_URL / .env):
    python -m scripts.migrate

    # Apply to a specific database:
    python -m scripts.migrate --database-url sqlite:///./other.db

    # Dry run (show what would be applied):
    python -m scripts.migrate --dry-run

    # Show migration status:
    python -m scripts.migrate --status
"""

import argparse
import os
import sys

from jokes_api.config import get_settings
from jokes_api.database import create_db_engine, get_db_for
from jokes_api.migrations import (
    MIGRATIONS,
    apply_migrations,
    get_applied_migrations,
    migration_checksum,
    pending_migrations,
    seed_roles_and_permissions,
)


def show_status(cursor) -> None:
    applied = get_applied_migrations(cursor)
    print(f"  Applied: {len(applied)}, Available: {len(MIGRATIONS)}")
    for mid, sql in MIGRATIONS:
        status = "APPLIED" if mid in applied else "PENDING"
        info = ""
        if mid in applied and applied[mid] != migration_checksum(sql):
            info = " (CHECKSUM MISMATCH!)"
        print(f"    [{status}] {mid}{info}")


def run_migrations(database_url: str, dry_run: bool = False, status_only: bool = False) -> bool:
    """Run pending migrations on one database. Returns True if all succeeded."""
    print(f"\n--- {database_url} ---")
    engine = create_db_engine(database_url)

    try:
        with get_db_for(engine) as cursor:
            if status_only:
                show_status(cursor)
                return True

            pending = pending_migrations(cursor)
            if not pending:
                print("  All migrations already applied.")
            else:
                print(f"  {len(pending)} pending migration(s):")
                for mid, _ in pending:
                    print(f"    - {mid}")

            if dry_run:
                print("  (dry run, no changes applied)")
                return True

            applied = apply_migrations(cursor, applied_by=os.environ.get("USER", "migrate-script"))
            seed_roles_and_permissions(cursor)
            for mid in applied:
                print(f"  Applied {mid}")
            print("  Roles and permissions seeded.")
        return True
    except Exception as e:
        print(f"  FAILED: {e}")
        return False
    finally:
        engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Jokes API database migration runner")
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: settings)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be applied without executing")
    parser.add_argument("--status", action="store_true", help="Show migration status only")
    args = parser.parse_args()

    database_url = args.database_url or get_settings().database_url
    ok = run_migrations(database_url, args.dry_run, args.status)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
