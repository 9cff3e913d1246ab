"""Tests for audit logging utility.

Covers:
- Audit log insertion with correct parameters
- Detail truncation to 500 chars
- Exception swallowing (audit failures must not break operations)
- NULL actor_id for anonymous flows such as registration
"""
from unittest.mock import MagicMock

from jokes_api.actor import make_actor
from jokes_api.audit import list_audit_entries, log_audit


class TestLogAudit:

    def test_inserts_row_with_correct_params(self):
        cursor = MagicMock()
        actor = make_actor(7, ["staff"])

        log_audit(cursor, actor, "delete", "joke", entity_id=42, detail="Chicken")

        cursor.execute.assert_called_once()
        sql, params = cursor.execute.call_args[0]
        assert "INSERT INTO audit_log" in sql
        assert params[:5] == (7, "delete", "joke", 42, "Chicken")

    def test_detail_truncated_to_500_chars(self):
        cursor = MagicMock()
        log_audit(cursor, make_actor(1, ["admin"]), "update", "user", 3, detail="x" * 1000)
        params = cursor.execute.call_args[0][1]
        assert len(params[4]) == 500

    def test_anonymous_actor_stored_as_null(self):
        cursor = MagicMock()
        log_audit(cursor, None, "register", "user", 9)
        params = cursor.execute.call_args[0][1]
        assert params[0] is None
        assert params[4] is None

    def test_exception_swallowed(self):
        """Audit failure must not propagate."""
        cursor = MagicMock()
        cursor.execute.side_effect = Exception("DB write failed")

        log_audit(cursor, make_actor(1, ["admin"]), "delete", "joke", 1)


class TestListAuditEntries:

    def test_newest_first_and_filtered(self, cursor):
        actor = make_actor(1, ["admin"])
        log_audit(cursor, actor, "create", "joke", 1)
        log_audit(cursor, actor, "create", "category", 2)
        log_audit(cursor, actor, "delete", "joke", 1)

        entries = list_audit_entries(cursor, entity_type="joke")
        assert [e["operation"] for e in entries] == ["delete", "create"]
        assert all(e["entity_type"] == "joke" for e in entries)

    def test_limit(self, cursor):
        actor = make_actor(1, ["admin"])
        for i in range(5):
            log_audit(cursor, actor, "update", "joke", i)
        assert len(list_audit_entries(cursor, limit=3)) == 3
