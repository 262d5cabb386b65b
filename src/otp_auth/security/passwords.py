"""Temporary password generation and Argon2 hashing for new customers."""

from __future__ import annotations

import secrets
import string

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"

_hasher = PasswordHasher()


def generate_password(length: int = 12) -> str:
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False
