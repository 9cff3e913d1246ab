"""Jokes API - Database Connection

Provides connection pooling via SQLAlchemy and retry logic with exponential
backoff for transient storage errors. Tools receive plain DB-API cursors
(qmark parameters) from get_db() / get_db_for().

Pool configuration:
- file databases: QueuePool, pool_pre_ping=True, pool_recycle from settings
- in-memory SQLite: StaticPool so every checkout shares the one database
- SQLite connections run with PRAGMA foreign_keys=ON (vote/category cascades)
"""

import hashlib
import secrets
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .logging_config import get_logger

logger = get_logger(__name__)

# Error fragments worth retrying (SQLite lock contention, dropped connections)
TRANSIENT_DB_ERRORS = (
    "database is locked",
    "database table is locked",
    "disk i/o error",
    "unable to open database file",
    "connection reset",
    "server closed the connection unexpectedly",
)

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.5        # seconds
MAX_DELAY = 10.0        # seconds

# Module-level engine (lazy init)
_engine = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str):
    """Build a SQLAlchemy engine for the given URL."""
    settings = get_settings()
    is_sqlite = database_url.startswith("sqlite")
    in_memory = is_sqlite and (database_url in ("sqlite://", "sqlite:///:memory:")
                               or "mode=memory" in database_url)

    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    if in_memory:
        kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_recycle=settings.pool_recycle,
        )

    engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "Database engine configured",
        extra={
            "dialect": engine.dialect.name,
            "in_memory": in_memory,
            "pool": type(engine.pool).__name__,
        }
    )
    return engine


def _get_engine():
    """Get or create the application engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_settings().database_url)
    return _engine


def set_engine(engine) -> None:
    """Replace the application engine (tests, CLI tools pointing at another DB)."""
    global _engine
    _engine = engine


def is_transient_error(exception: Exception) -> bool:
    """Check if a database error is transient and worth retrying."""
    error_str = str(exception).lower()
    return any(fragment in error_str for fragment in TRANSIENT_DB_ERRORS)


def retry_on_transient(max_retries: int = MAX_RETRIES, base_delay: float = BASE_DELAY, max_delay: float = MAX_DELAY):
    """
    Retry on transient database errors with exponential backoff.

    Delays: 0.5s -> 1.0s -> 2.0s (capped at max_delay).
    After all retries exhaust, returns a graceful error dict so API clients
    never see stack traces.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not is_transient_error(e):
                        raise  # Non-transient errors pass through immediately
                    last_exception = e
                    if attempt == max_retries:
                        logger.error(
                            "Database operation failed after %d attempts: %s",
                            attempt + 1, e, exc_info=True
                        )
                        return {
                            "error": True,
                            "code": "DATABASE_UNAVAILABLE",
                            "message": "Database temporarily unavailable. Please try again in a moment."
                        }
                    delay = min(base_delay * (2 ** attempt), max_delay)
                    logger.warning(
                        "Transient database error (attempt %d/%d): %s: %s. Retrying in %.1fs",
                        attempt + 1, max_retries + 1, type(e).__name__, e, delay
                    )
                    time.sleep(delay)
            raise last_exception  # Safety net
        return wrapper
    return decorator


@contextmanager
def get_db_for(engine) -> Generator[Any, None, None]:
    """Context manager yielding a cursor on `engine`; commits on success.

    The whole block is one transaction: a tool that fails halfway leaves no
    partial writes behind.
    """
    conn = engine.raw_connection()
    cursor = conn.cursor()
    try:
        yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()
        conn.close()  # Returns connection to pool (not a real close)


@contextmanager
def get_db() -> Generator[Any, None, None]:
    """Cursor on the application engine."""
    with get_db_for(_get_engine()) as cursor:
        yield cursor


def call_with_retry(engine, func, *args, **kwargs):
    """Run func(cursor, *args, **kwargs) in its own transaction, retrying transient errors."""
    @retry_on_transient()
    def _run():
        with get_db_for(engine) as cursor:
            return func(cursor, *args, **kwargs)
    return _run()


def test_connection() -> bool:
    """Test database connectivity for health probes."""
    with get_db() as cursor:
        cursor.execute("SELECT 1")
        return True


def row_to_dict(cursor, row: Any) -> Optional[dict]:
    """Convert a DB-API row to a dictionary."""
    if row is None:
        return None
    columns = [column[0] for column in cursor.description]
    return dict(zip(columns, row))


def rows_to_list(cursor, rows: list) -> list[dict]:
    """Convert multiple DB-API rows to a list of dictionaries."""
    columns = [column[0] for column in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


def utcnow() -> str:
    """Current UTC time as the ISO-8601 text stored in timestamp columns."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def placeholders(values) -> str:
    """'?, ?, ?' for an IN (...) clause."""
    return ", ".join("?" for _ in values)


# Default for update arguments the caller left out; an explicit None clears a nullable column.
UNSET = object()


def set_clause(fields: dict, clearable: tuple = ()) -> tuple[list[str], list]:
    """Build "column = ?" fragments for a partial UPDATE.

    UNSET values are skipped. None is skipped too, except for the clearable
    columns, where it is written as NULL.
    """
    updates = []
    params: list = []
    for column, value in fields.items():
        if value is UNSET or (value is None and column not in clearable):
            continue
        updates.append(f"{column} = ?")
        params.append(value)
    return updates, params


# ============================================================================
# PERSONAL ACCESS TOKENS
# ============================================================================

def hash_token(plaintext: str) -> str:
    """Single SHA256 hash of a plaintext token. Only the hash is stored."""
    return hashlib.sha256(plaintext.encode()).hexdigest()


def create_user_token(
    cursor,
    user_id: int,
    name: str = "api",
    expires_days: Optional[int] = None,
) -> dict:
    """Generate a new bearer token for a user and store its hash.

    Returns dict with {token (plaintext, shown ONCE), token_id, expires_at}.
    """
    if expires_days is None:
        expires_days = get_settings().token_ttl_days

    plaintext_token = secrets.token_urlsafe(32)
    expires_at = None
    if expires_days is not None:
        expires_at = (datetime.now(timezone.utc) + timedelta(days=expires_days)).isoformat(timespec="seconds")

    cursor.execute(
        """
        INSERT INTO personal_access_tokens (user_id, name, token_hash, created_at, expires_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (user_id, name, hash_token(plaintext_token), utcnow(), expires_at)
    )
    return {
        "token": plaintext_token,
        "token_id": cursor.lastrowid,
        "expires_at": expires_at or "never",
    }


def validate_user_token(cursor, token_hash: str) -> Optional[dict]:
    """Resolve a token hash to its (non-deleted) user.

    Returns {id, name, email, status, roles} if valid, None if unknown/expired.
    Updates last_used_at on success.
    """
    now = utcnow()
    cursor.execute(
        """
        SELECT u.id, u.name, u.email, u.status, t.id
        FROM personal_access_tokens t
        JOIN users u ON u.id = t.user_id
        WHERE t.token_hash = ?
          AND (t.expires_at IS NULL OR t.expires_at > ?)
          AND u.deleted_at IS NULL
        """,
        (token_hash, now)
    )
    row = cursor.fetchone()
    if not row:
        return None

    cursor.execute("UPDATE personal_access_tokens SET last_used_at = ? WHERE id = ?", (now, row[4]))
    cursor.execute("SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (row[0],))
    roles = [r[0] for r in cursor.fetchall()]
    return {"id": row[0], "name": row[1], "email": row[2], "status": row[3], "roles": roles}


def revoke_user_tokens(cursor, user_id: int) -> int:
    """Revoke every token of a user. Returns count revoked."""
    cursor.execute("DELETE FROM personal_access_tokens WHERE user_id = ?", (user_id,))
    return cursor.rowcount


def list_user_tokens(cursor, user_id: Optional[int] = None) -> list[dict]:
    """List tokens with metadata (NOT the hash, for admin display only)."""
    sql = """
        SELECT t.id, t.user_id, u.email, t.name, t.created_at, t.last_used_at, t.expires_at
        FROM personal_access_tokens t
        JOIN users u ON u.id = t.user_id
    """
    params: tuple = ()
    if user_id is not None:
        sql += " WHERE t.user_id = ?"
        params = (user_id,)
    cursor.execute(sql + " ORDER BY t.created_at DESC, t.id DESC", params)
    return rows_to_list(cursor, cursor.fetchall())


def revoke_token(cursor, token_id: int) -> bool:
    cursor.execute("DELETE FROM personal_access_tokens WHERE id = ?", (token_id,))
    return cursor.rowcount > 0


def paginate(cursor, select_sql: str, count_sql: str, params: tuple = (), page: int = 1,
             per_page: Optional[int] = None) -> dict:
    """Run a page of `select_sql` (no LIMIT clause) plus its count query.

    Returns {data, current_page, per_page, total, last_page}.
    """
    per_page = per_page or get_settings().page_size
    page = max(page, 1)

    cursor.execute(count_sql, params)
    total = cursor.fetchone()[0]

    cursor.execute(f"{select_sql} LIMIT ? OFFSET ?", tuple(params) + (per_page, (page - 1) * per_page))
    rows = rows_to_list(cursor, cursor.fetchall())

    return {
        "data": rows,
        "current_page": page,
        "per_page": per_page,
        "total": total,
        "last_page": max(1, -(-total // per_page)),
    }
