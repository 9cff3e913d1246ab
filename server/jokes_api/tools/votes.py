"""Jokes API - Vote Tools

A user holds at most one vote per joke. Casting again changes the rating of
the existing vote (one upsert statement on the (user_id, joke_id) key).
"""

from typing import Optional

from ..audit import log_audit
from ..database import row_to_dict, utcnow
from ..permissions import check_permission, denial
from ..policy import remove_vote_from_joke, vote_on_joke
from ..responses import not_found, validation_error
from .jokes import load_joke

VALID_RATINGS = (1, -1)


def _load_vote(cursor, user_id: int, joke_id: int) -> Optional[dict]:
    cursor.execute(
        "SELECT id, user_id, joke_id, rating, created_at, updated_at FROM votes WHERE user_id = ? AND joke_id = ?",
        (user_id, joke_id),
    )
    return row_to_dict(cursor, cursor.fetchone())


def cast_vote(cursor, actor, joke_id: int, rating) -> dict:
    """Like (+1) or dislike (-1) a joke. Returns `created` to tell a new vote from a changed one."""
    # isinstance guard: True/False must not pass as 1/0
    if isinstance(rating, bool) or rating not in VALID_RATINGS:
        return validation_error("Rating must be 1 (like) or -1 (dislike)", "rating")

    denied = check_permission(actor, "votes", "create")
    if denied:
        return denied

    joke = load_joke(cursor, joke_id)
    if joke is None:
        return not_found("Joke not found")

    denied = denial(actor, vote_on_joke(actor, joke), "votes", "create")
    if denied:
        return denied

    existed = _load_vote(cursor, actor.id, joke_id) is not None
    now = utcnow()
    cursor.execute(
        """
        INSERT INTO votes (user_id, joke_id, rating, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (user_id, joke_id) DO UPDATE SET rating = excluded.rating, updated_at = excluded.updated_at
        """,
        (actor.id, joke_id, rating, now, now),
    )

    vote = _load_vote(cursor, actor.id, joke_id)
    if existed:
        return {"vote": vote, "created": False, "message": "Vote updated successfully"}
    return {"vote": vote, "created": True, "message": "Vote created successfully"}


def remove_vote(cursor, actor, joke_id: int, user_id: Optional[int] = None) -> dict:
    """Remove the actor's vote on a joke, or (staff+) another user's vote.

    A vote the actor may not remove is reported exactly like a missing one.
    """
    denied = check_permission(actor, "votes", "remove")
    if denied:
        return denied

    joke = load_joke(cursor, joke_id)
    if joke is None:
        return not_found("Joke not found")

    vote = _load_vote(cursor, user_id or actor.id, joke_id)
    denied = denial(actor, remove_vote_from_joke(actor, joke, vote), "votes", "delete")
    if denied:
        return denied

    cursor.execute("DELETE FROM votes WHERE id = ?", (vote["id"],))
    if vote["user_id"] != actor.id:
        log_audit(cursor, actor, "delete", "vote", vote["id"], detail=f"user {vote['user_id']} joke {joke_id}")
    return {"message": "Vote removed successfully"}


def clear_user_votes(cursor, actor, user_id: int) -> dict:
    """Delete every vote cast by one user."""
    cursor.execute("SELECT id FROM users WHERE id = ? AND deleted_at IS NULL", (user_id,))
    if cursor.fetchone() is None:
        return not_found("User not found")

    denied = check_permission(actor, "votes", "clear_user")
    if denied:
        return denied

    cursor.execute("SELECT COUNT(*) FROM votes WHERE user_id = ?", (user_id,))
    count = cursor.fetchone()[0]
    cursor.execute("DELETE FROM votes WHERE user_id = ?", (user_id,))
    log_audit(cursor, actor, "clear_votes", "user", user_id, detail=f"{count} votes")
    return {"cleared_votes_count": count, "message": f"Cleared {count} votes for user"}


def clear_all_votes(cursor, actor) -> dict:
    """Delete every vote in the system."""
    denied = check_permission(actor, "votes", "clear_all")
    if denied:
        return denied

    cursor.execute("SELECT COUNT(*) FROM votes")
    count = cursor.fetchone()[0]
    cursor.execute("DELETE FROM votes")
    log_audit(cursor, actor, "clear_votes", "vote", None, detail=f"{count} votes")
    return {"cleared_votes_count": count, "message": f"Cleared {count} votes from the system"}
