"""
Password hashing and session tokens.

Passwords are stored as ``pbkdf2_sha256$<iterations>$<salt>$<hash>`` so the
work factor can be raised later without invalidating existing hashes.
Session tokens are opaque random strings; their validity lives in the
``user_sessions`` table.
"""

import hashlib
import hmac
import secrets

PASSWORD_MIN_LENGTH = 6
PBKDF2_ITERATIONS = 260_000
_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt, expected = password_hash.split("$", 3)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if algorithm != _ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds)
    return hmac.compare_digest(digest.hex(), expected)


def validate_password(password: str) -> bool:
    return bool(password) and len(password) >= PASSWORD_MIN_LENGTH


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)
