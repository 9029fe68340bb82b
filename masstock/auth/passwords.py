from __future__ import annotations

import bcrypt

from ..errors import ValidationError

BCRYPT_ROUNDS = 10
# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    if password_too_long(password):
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes", "PASSWORD_TOO_LONG"
        )
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check ``password`` against a stored bcrypt hash. Missing hashes never match."""
    if not password_hash or password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
