"""
Password hashing with bcrypt.

The work factor comes from settings (bcrypt_rounds); tests lower it to keep
the suite fast.
"""

import bcrypt

from .config import get_settings
from .logging_config import get_logger

logger = get_logger(__name__)

# bcrypt only looks at the first 72 bytes; longer input is rejected
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Raises:
        ValueError: If password is empty or too long
    """
    if not password:
        raise ValueError("Password cannot be empty")
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds maximum length of {MAX_PASSWORD_BYTES} bytes")

    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """True if the plaintext matches the stored hash."""
    if not password or not hashed:
        return False
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError as e:
        # Malformed stored hash
        logger.error("Password verification error: %s", e)
        return False
