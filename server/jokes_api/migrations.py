"""Jokes API - Schema migrations and seed data

Forward-only migrations, applied in order and tracked in _migration_history.
Each migration is one SQL script whose statements are separated by a
semicolon at the end of a line. A migration is applied in a single
transaction together with its history row.
"""

import hashlib
import re

from .database import utcnow
from .logging_config import get_logger
from .roles import PERMISSIONS, ROLE_LEVELS, ROLE_PERMISSIONS

logger = get_logger(__name__)

TRACKING_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS _migration_history (
    migration_id    TEXT NOT NULL PRIMARY KEY,
    applied_at      TEXT NOT NULL,
    applied_by      TEXT NOT NULL,
    checksum        TEXT NOT NULL
)
"""

MIGRATIONS: list[tuple[str, str]] = [
    ("001_users_and_roles", """
CREATE TABLE users (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    given_name      TEXT,
    family_name     TEXT,
    email           TEXT NOT NULL UNIQUE,
    password_hash   TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'suspended', 'banned')),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    deleted_at      TEXT
);

CREATE TABLE roles (
    name            TEXT PRIMARY KEY,
    level           INTEGER NOT NULL
);

CREATE TABLE permissions (
    name            TEXT PRIMARY KEY
);

CREATE TABLE role_permissions (
    role            TEXT NOT NULL REFERENCES roles(name) ON DELETE CASCADE,
    permission      TEXT NOT NULL REFERENCES permissions(name) ON DELETE CASCADE,
    PRIMARY KEY (role, permission)
);

CREATE TABLE user_roles (
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role            TEXT NOT NULL REFERENCES roles(name),
    PRIMARY KEY (user_id, role)
);
"""),
    ("002_tokens", """
CREATE TABLE personal_access_tokens (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name            TEXT NOT NULL,
    token_hash      TEXT NOT NULL UNIQUE,
    created_at      TEXT NOT NULL,
    last_used_at    TEXT,
    expires_at      TEXT
);

CREATE INDEX ix_tokens_user ON personal_access_tokens (user_id);

CREATE TABLE password_reset_tokens (
    email           TEXT PRIMARY KEY,
    token_hash      TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
"""),
    ("003_jokes_and_categories", """
CREATE TABLE categories (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    description     TEXT,
    user_id         INTEGER REFERENCES users(id) ON DELETE SET NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    deleted_at      TEXT
);

CREATE UNIQUE INDEX ux_categories_active_name ON categories (name) WHERE deleted_at IS NULL;

CREATE TABLE jokes (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    title           TEXT NOT NULL,
    content         TEXT NOT NULL,
    reference       TEXT,
    user_id         INTEGER REFERENCES users(id) ON DELETE SET NULL,
    published_at    TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    deleted_at      TEXT
);

CREATE INDEX ix_jokes_user ON jokes (user_id);

CREATE TABLE joke_category (
    joke_id         INTEGER NOT NULL REFERENCES jokes(id) ON DELETE CASCADE,
    category_id     INTEGER NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    PRIMARY KEY (joke_id, category_id)
);

CREATE INDEX ix_joke_category_category ON joke_category (category_id);
"""),
    ("004_votes", """
CREATE TABLE votes (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    joke_id         INTEGER NOT NULL REFERENCES jokes(id) ON DELETE CASCADE,
    rating          INTEGER NOT NULL CHECK (rating IN (1, -1)),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    UNIQUE (user_id, joke_id)
);

CREATE INDEX ix_votes_joke ON votes (joke_id);
"""),
    ("005_audit_log", """
CREATE TABLE audit_log (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    actor_id        INTEGER,
    operation       TEXT NOT NULL,
    entity_type     TEXT NOT NULL,
    entity_id       INTEGER,
    detail          TEXT,
    created_at      TEXT NOT NULL
);
"""),
]


def migration_checksum(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()[:16]


def split_statements(sql: str) -> list[str]:
    """Split a script on semicolons that end a line."""
    return [s.strip() for s in re.split(r";\s*$", sql, flags=re.MULTILINE) if s.strip()]


def get_applied_migrations(cursor) -> dict[str, str]:
    """migration_id -> checksum of everything already applied."""
    cursor.execute(TRACKING_TABLE_SQL)
    cursor.execute("SELECT migration_id, checksum FROM _migration_history ORDER BY migration_id")
    return {row[0]: row[1] for row in cursor.fetchall()}


def pending_migrations(cursor) -> list[tuple[str, str]]:
    applied = get_applied_migrations(cursor)
    return [(mid, sql) for mid, sql in MIGRATIONS if mid not in applied]


def apply_migrations(cursor, applied_by: str = "jokes-api") -> list[str]:
    """Apply every pending migration. Returns the ids applied, in order.

    The caller owns the transaction (get_db commits on success); a failing
    statement propagates and nothing of the batch is recorded.
    """
    applied_now = []
    for migration_id, sql in pending_migrations(cursor):
        for statement in split_statements(sql):
            cursor.execute(statement)
        cursor.execute(
            "INSERT INTO _migration_history (migration_id, applied_at, applied_by, checksum) VALUES (?, ?, ?, ?)",
            (migration_id, utcnow(), applied_by, migration_checksum(sql)),
        )
        applied_now.append(migration_id)
        logger.info("Migration applied", extra={"migration_id": migration_id})
    return applied_now


def seed_roles_and_permissions(cursor) -> None:
    """Mirror the in-code registry into the roles/permissions tables.

    Idempotent: safe to run on every startup. The registry in roles.py stays
    the source of truth; these rows exist for reporting and foreign keys.
    """
    for permission in PERMISSIONS:
        cursor.execute("INSERT OR IGNORE INTO permissions (name) VALUES (?)", (permission,))

    for role, level in ROLE_LEVELS.items():
        cursor.execute(
            "INSERT INTO roles (name, level) VALUES (?, ?) ON CONFLICT(name) DO UPDATE SET level = excluded.level",
            (role.value, level),
        )
        cursor.execute("DELETE FROM role_permissions WHERE role = ?", (role.value,))
        for permission in sorted(ROLE_PERMISSIONS[role]):
            cursor.execute(
                "INSERT INTO role_permissions (role, permission) VALUES (?, ?)",
                (role.value, permission),
            )
    logger.info("Roles and permissions seeded", extra={"roles": len(ROLE_LEVELS), "permissions": len(PERMISSIONS)})


def initialize_database(cursor) -> list[str]:
    """Apply migrations and seed the registry tables."""
    applied = apply_migrations(cursor)
    seed_roles_and_permissions(cursor)
    return applied
