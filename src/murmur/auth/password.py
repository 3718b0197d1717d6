"""Password hashing utilities.

bcrypt handles salting itself and is slow on purpose: the default work
factor of 12 rounds costs ~100ms per hash. Tests lower it through
MURMUR_BCRYPT_ROUNDS. bcrypt only looks at the first 72 bytes of a password.
"""

import bcrypt

from murmur.config import settings


def hash_password(password: str) -> str:
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:72],
            password_hash.encode("utf-8"),
        )
    except (ValueError, TypeError):
        return False
