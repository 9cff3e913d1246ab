"""Jokes API - Authentication Tools

Registration, login/logout with personal access tokens, password reset and
bulk logout by role. Tokens are random strings shown once; only their SHA256
hash is stored (see database.create_user_token).
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..actor import ACTIVE
from ..audit import log_audit
from ..config import get_settings
from ..database import create_user_token, hash_token, revoke_user_tokens, utcnow
from ..logging_config import get_logger
from ..passwords import hash_password, verify_password
from ..permissions import check_permission
from ..responses import error_result, forbidden, validation_error, UNAUTHENTICATED, VALIDATION_ERROR
from ..roles import Role, UnknownRole
from .users import email_taken, insert_user, load_user, with_permissions

logger = get_logger(__name__)

TOKEN_NAME = "api"

# notifier(email, plaintext_token) -> None
ResetNotifier = Callable[[str, str], None]


def log_reset_notifier(email: str, token: str) -> None:
    """Default notifier: delivery is out of scope, so the issue is only logged."""
    logger.info("Password reset link issued", extra={"email": email})


def register(cursor, name: str, email: str, password: str) -> dict:
    """Create a client account and log it in."""
    if email_taken(cursor, email):
        return validation_error("The email has already been taken.", "email")

    user_id = insert_user(cursor, name, email, password, roles=[Role.CLIENT.value])
    token = create_user_token(cursor, user_id, TOKEN_NAME)
    log_audit(cursor, None, "register", "user", user_id)
    logger.info("User registered", extra={"user_id": user_id})
    return {
        "token": token["token"],
        "user": load_user(cursor, user_id),
        "message": "User successfully created",
    }


def login(cursor, email: str, password: str) -> dict:
    """Verify credentials and issue a new token. Only active accounts may log in."""
    cursor.execute(
        "SELECT id, password_hash, status FROM users WHERE email = ? AND deleted_at IS NULL",
        (email,),
    )
    row = cursor.fetchone()
    if row is None or not verify_password(password, row[1]):
        logger.info("Login failed", extra={"email": email})
        return error_result(UNAUTHENTICATED, "Invalid credentials")

    user_id, _, status = row
    if status != ACTIVE:
        return forbidden(f"Account is {status}")

    token = create_user_token(cursor, user_id, TOKEN_NAME)
    return {
        "token": token["token"],
        "user": load_user(cursor, user_id),
        "message": "Login successful",
    }


def logout(cursor, actor) -> dict:
    """Revoke every token of the caller."""
    revoked = revoke_user_tokens(cursor, actor.id)
    logger.info("User logged out", extra={"user_id": actor.id, "revoked_tokens": revoked})
    return {"message": "Logout successful"}


def profile(cursor, actor) -> dict:
    user = load_user(cursor, actor.id)
    return {"user": with_permissions(user), "message": "User profile request successful"}


def forgot_password(cursor, email: str, notifier: Optional[ResetNotifier] = None) -> dict:
    """Issue a reset token for the account (replacing any earlier one)."""
    cursor.execute("SELECT id FROM users WHERE email = ? AND deleted_at IS NULL", (email,))
    if cursor.fetchone() is None:
        return error_result(
            VALIDATION_ERROR,
            "Unable to send reset link",
            {"email": ["We can't find a user with that email address."]},
        )

    token = secrets.token_urlsafe(32)
    cursor.execute(
        """
        INSERT INTO password_reset_tokens (email, token_hash, created_at) VALUES (?, ?, ?)
        ON CONFLICT (email) DO UPDATE SET token_hash = excluded.token_hash, created_at = excluded.created_at
        """,
        (email, hash_token(token), utcnow()),
    )
    (notifier or log_reset_notifier)(email, token)
    return {"message": "We have emailed your password reset link."}


def _reset_failed(message: str) -> dict:
    return error_result(VALIDATION_ERROR, "Password reset failed", {"email": [message]})


def reset_password(cursor, email: str, token: str, password: str) -> dict:
    """Set a new password with a valid reset token; ends all sessions."""
    cursor.execute("SELECT id FROM users WHERE email = ? AND deleted_at IS NULL", (email,))
    user = cursor.fetchone()
    if user is None:
        return _reset_failed("We can't find a user with that email address.")

    cursor.execute("SELECT token_hash, created_at FROM password_reset_tokens WHERE email = ?", (email,))
    stored = cursor.fetchone()
    if stored is None or not secrets.compare_digest(stored[0], hash_token(token)):
        return _reset_failed("This password reset token is invalid.")

    ttl = timedelta(minutes=get_settings().password_reset_ttl_minutes)
    if datetime.fromisoformat(stored[1]) + ttl < datetime.now(timezone.utc):
        cursor.execute("DELETE FROM password_reset_tokens WHERE email = ?", (email,))
        return _reset_failed("This password reset token is invalid.")

    user_id = user[0]
    cursor.execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
        (hash_password(password), utcnow(), user_id),
    )
    cursor.execute("DELETE FROM password_reset_tokens WHERE email = ?", (email,))
    revoke_user_tokens(cursor, user_id)
    logger.info("Password reset", extra={"user_id": user_id})
    return {"message": "Your password has been reset."}


def logout_by_role(cursor, actor, role: str) -> dict:
    """Revoke the tokens of every user holding the role."""
    denied = check_permission(actor, "auth", "logout_role")
    if denied:
        return denied

    try:
        role_name = Role.parse(role).value
    except UnknownRole:
        return validation_error(f"Invalid role. Must be one of: {', '.join(Role.values())}", "role")

    cursor.execute("SELECT user_id FROM user_roles WHERE role = ?", (role_name,))
    user_ids = [row[0] for row in cursor.fetchall()]

    revoked = 0
    for user_id in user_ids:
        revoked += revoke_user_tokens(cursor, user_id)

    log_audit(cursor, actor, "logout_role", "token", None, detail=f"{role_name}: {revoked} tokens")
    return {
        "revoked_tokens": revoked,
        "role": role_name,
        "users_affected": len(user_ids),
        "message": "Logout by role completed",
    }
