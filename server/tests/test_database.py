"""Tests for connection handling, retries, tokens and pagination.

Covers:
- get_db_for(): commit on success, rollback on error
- retry_on_transient(): retries lock errors, returns DATABASE_UNAVAILABLE when exhausted
- Personal access tokens: issue, validate, expire, revoke
- paginate(): page metadata
"""
import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from factories import count_rows, create_category, create_user
from jokes_api.database import (
    UNSET,
    call_with_retry,
    create_user_token,
    get_db_for,
    hash_token,
    is_transient_error,
    list_user_tokens,
    paginate,
    retry_on_transient,
    revoke_token,
    revoke_user_tokens,
    set_clause,
    utcnow,
    validate_user_token,
)


class TestTransactions:

    def test_commit_on_success(self, engine):
        with get_db_for(engine) as cursor:
            create_category(cursor, "Puns")
        with get_db_for(engine) as cursor:
            assert count_rows(cursor, "categories") == 1

    def test_rollback_on_error(self, engine):
        with pytest.raises(RuntimeError):
            with get_db_for(engine) as cursor:
                create_category(cursor, "Puns")
                raise RuntimeError("tool failed halfway")
        with get_db_for(engine) as cursor:
            assert count_rows(cursor, "categories") == 0

    def test_foreign_keys_enforced(self, engine):
        with pytest.raises(sqlite3.IntegrityError):
            with get_db_for(engine) as cursor:
                cursor.execute(
                    "INSERT INTO votes (user_id, joke_id, rating, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                    (999, 999, 1, utcnow(), utcnow()),
                )


class TestRetryOnTransient:

    def test_transient_detection(self):
        assert is_transient_error(sqlite3.OperationalError("database is locked"))
        assert not is_transient_error(sqlite3.IntegrityError("UNIQUE constraint failed"))

    def test_retries_then_succeeds(self):
        func = MagicMock(side_effect=[sqlite3.OperationalError("database is locked"), "ok"])
        with patch("jokes_api.database.time.sleep") as sleep:
            result = retry_on_transient()(func)()
        assert result == "ok"
        assert func.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_exhausted_retries_return_error_value(self):
        func = MagicMock(side_effect=sqlite3.OperationalError("database is locked"))
        with patch("jokes_api.database.time.sleep"):
            result = retry_on_transient(max_retries=2)(func)()
        assert result["error"] is True
        assert result["code"] == "DATABASE_UNAVAILABLE"
        assert func.call_count == 3

    def test_non_transient_error_raises_immediately(self):
        func = MagicMock(side_effect=ValueError("bug"))
        with pytest.raises(ValueError):
            retry_on_transient()(func)()
        assert func.call_count == 1

    def test_call_with_retry_passes_cursor_and_args(self, engine):
        def _tool(cursor, name):
            create_category(cursor, name)
            return {"name": name}

        assert call_with_retry(engine, _tool, "Puns") == {"name": "Puns"}
        with get_db_for(engine) as cursor:
            assert count_rows(cursor, "categories") == 1


class TestUserTokens:

    def test_issue_and_validate(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id)

        assert token["expires_at"] == "never"
        resolved = validate_user_token(cursor, hash_token(token["token"]))
        assert resolved["id"] == user.id
        assert resolved["roles"] == ["client"]
        assert resolved["status"] == "active"

    def test_only_hash_is_stored(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id)
        cursor.execute("SELECT token_hash FROM personal_access_tokens WHERE id = ?", (token["token_id"],))
        assert cursor.fetchone()[0] == hash_token(token["token"])

    def test_validation_records_last_use(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id)
        validate_user_token(cursor, hash_token(token["token"]))
        assert list_user_tokens(cursor, user.id)[0]["last_used_at"] is not None

    def test_unknown_token(self, cursor):
        assert validate_user_token(cursor, hash_token("nope")) is None

    def test_expired_token(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id, expires_days=-1)
        assert validate_user_token(cursor, hash_token(token["token"])) is None

    def test_deleted_user_token_rejected(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id)
        cursor.execute("UPDATE users SET deleted_at = ? WHERE id = ?", (utcnow(), user.id))
        assert validate_user_token(cursor, hash_token(token["token"])) is None

    def test_revoke_user_tokens_counts(self, cursor):
        user = create_user(cursor, "client")
        other = create_user(cursor, "client")
        create_user_token(cursor, user.id)
        create_user_token(cursor, user.id)
        create_user_token(cursor, other.id)

        assert revoke_user_tokens(cursor, user.id) == 2
        assert list_user_tokens(cursor, user.id) == []
        assert len(list_user_tokens(cursor)) == 1

    def test_revoke_single_token(self, cursor):
        user = create_user(cursor, "client")
        token = create_user_token(cursor, user.id)
        assert revoke_token(cursor, token["token_id"]) is True
        assert revoke_token(cursor, token["token_id"]) is False


class TestPaginate:

    def test_second_page(self, cursor):
        for i in range(20):
            create_category(cursor, f"Category {i:02d}")

        page = paginate(cursor, "SELECT id, name FROM categories ORDER BY name",
                        "SELECT COUNT(*) FROM categories", page=2)

        assert page["total"] == 20
        assert page["per_page"] == 15
        assert page["current_page"] == 2
        assert page["last_page"] == 2
        assert [row["name"] for row in page["data"]] == [f"Category {i:02d}" for i in range(15, 20)]

    def test_empty_result_has_one_page(self, cursor):
        page = paginate(cursor, "SELECT id FROM jokes", "SELECT COUNT(*) FROM jokes")
        assert page["data"] == []
        assert page["last_page"] == 1

    def test_page_below_one_is_clamped(self, cursor):
        create_category(cursor, "Puns")
        page = paginate(cursor, "SELECT id FROM categories", "SELECT COUNT(*) FROM categories", page=0, per_page=5)
        assert page["current_page"] == 1
        assert len(page["data"]) == 1


class TestSetClause:

    def test_unset_and_none_skipped(self):
        updates, params = set_clause({"title": "New", "content": None, "reference": UNSET})
        assert updates == ["title = ?"]
        assert params == ["New"]

    def test_none_written_for_clearable_columns(self):
        updates, params = set_clause({"reference": None, "published_at": UNSET}, clearable=("reference", "published_at"))
        assert updates == ["reference = ?"]
        assert params == [None]
