"""Password hashing and the optional strength policy."""

from __future__ import annotations

import secrets
import string

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import InvalidHash, VerificationError

from ..errors import WeakPassword

MIN_PASSWORD_LENGTH = 8


class PasswordHasher:
    """Salted argon2id hashing.

    Each account carries its own salt which is mixed into the argon2 input;
    argon2 adds its own random salt inside the encoded hash as well.
    """

    def __init__(self) -> None:
        self._hasher = Argon2Hasher(type=Type.ID)

    def hash(self, password: str, salt: str | None = None) -> tuple[str, str]:
        """Return ``(salt, hash)`` for ``password``, generating a salt when none is given."""
        salt = salt or secrets.token_hex(16)
        return salt, self._hasher.hash(salt + password)

    def verify(self, salt: str, password: str, password_hash: str) -> bool:
        try:
            return self._hasher.verify(password_hash, salt + password)
        except (VerificationError, InvalidHash):
            return False


def password_violations(password: str) -> list[str]:
    """Return the names of the strength rules ``password`` breaks."""
    violations = []
    if len(password) < MIN_PASSWORD_LENGTH:
        violations.append("min_length")
    if not any(ch.islower() for ch in password):
        violations.append("lowercase")
    if not any(ch.isupper() for ch in password):
        violations.append("uppercase")
    if not any(ch.isdigit() for ch in password):
        violations.append("digit")
    if not any(ch in string.punctuation for ch in password):
        violations.append("symbol")
    return violations


def enforce_password_policy(password: str, *, enabled: bool) -> None:
    if not enabled:
        return
    violations = password_violations(password)
    if violations:
        raise WeakPassword(violations)
