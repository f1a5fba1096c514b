"""Per-request validation of access tokens against current account state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .account import Account
from ..errors import AccountNotActive, AccountNotFound, AuthError, TokenRevoked
from ..repository import AccountStore
from ..security.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    claims: dict[str, Any] | None = None
    error: AuthError | None = None


class SessionGuard:
    """Decides whether a previously issued token still grants access.

    Revocation is a single watermark per account (``session_revoked_at``):
    every token issued before it is refused, so all sessions of an account
    are revoked together and there is no per-token deny-list.
    """

    def __init__(self, store: AccountStore, codec: TokenCodec) -> None:
        self._store = store
        self._codec = codec

    def authenticate(self, token: str) -> tuple[Account, dict[str, Any]]:
        """Return the account and claims behind ``token`` or raise why it is refused."""
        claims = self._codec.verify_access(token)
        account = self._store.get_by_id(claims["sub"])
        if account is None:
            raise AccountNotFound()
        if not account.is_active:
            raise AccountNotActive()
        if account.issued_before_revocation(int(claims["iat"])):
            raise TokenRevoked()
        return account, claims

    def validate(self, token: str) -> ValidationResult:
        try:
            _, claims = self.authenticate(token)
        except AuthError as exc:
            logger.info("token rejected: %s", exc.error_code)
            return ValidationResult(valid=False, error=exc)
        return ValidationResult(valid=True, claims=claims)

    def resolve_account(self, token: str) -> Account | None:
        try:
            account, _ = self.authenticate(token)
        except AuthError:
            return None
        return account
