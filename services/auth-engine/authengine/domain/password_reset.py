"""Single-use password reset tokens and authenticated password changes."""

from __future__ import annotations

import logging
from datetime import timedelta

from .account import AccountStatus
from .contracts import ForgotPasswordResult, MessageResult, ResetPasswordResult
from ..config import RESET_TOKEN_TTL_SECONDS, Settings
from ..errors import AccountNotFound, OldPasswordMismatch, ResetTokenInvalid
from ..notifications import (
    TEMPLATE_PASSWORD_CHANGED,
    TEMPLATE_PASSWORD_RESET,
    NotificationDispatcher,
    deliver,
    mask_contact,
)
from ..repository import AccountStore
from ..security.passwords import PasswordHasher, enforce_password_policy
from ..security.tokens import Clock, generate_reset_token, hash_token, utcnow

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a reset link has been sent."


class PasswordResetManager:
    """Issues hashed reset tokens and consumes them exactly once.

    Only the SHA-256 digest of a reset token is stored. The raw token leaves
    the engine once, through the notification dispatcher.
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        dispatcher: NotificationDispatcher,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._dispatcher = dispatcher
        self._base_url = settings.app_base_url.rstrip("/")
        self._policy_enabled = settings.password_validation_enabled
        self._ttl = timedelta(seconds=RESET_TOKEN_TTL_SECONDS)
        self._clock = clock

    def request_reset(self, email: str) -> ForgotPasswordResult:
        """Send a reset link when ``email`` belongs to an active account.

        The response is the same whether or not the account exists.
        """
        result = ForgotPasswordResult(message=RESET_REQUESTED_MESSAGE, email=email)
        account = self._store.get_by_email(email)
        if account is None or account.status is not AccountStatus.ACTIVE:
            logger.info("password reset requested for unknown address %s", mask_contact(email))
            return result

        raw_token, token_hash = generate_reset_token()
        self._store.update_by_id(
            account.account_id,
            {
                "password_reset_token": token_hash,
                "password_reset_token_expires_at": self._clock() + self._ttl,
            },
        )
        deliver(
            self._dispatcher.send_templated,
            TEMPLATE_PASSWORD_RESET,
            {
                "full_name": account.full_name,
                "reset_token": raw_token,
                "reset_link": f"{self._base_url}/auth/reset-password?token={raw_token}",
            },
            account.email,
            account.account_id,
        )
        logger.info("password reset issued for account %s", account.account_id)
        return result

    def consume_reset(self, raw_token: str, new_password: str) -> ResetPasswordResult:
        """Set a new password with a reset token and revoke every open session.

        The update is conditional on the stored digest, so of two concurrent
        consumers of the same token only one succeeds.
        """
        enforce_password_policy(new_password, enabled=self._policy_enabled)
        token_hash = hash_token(raw_token)
        now = self._clock()
        account = self._store.find_by_reset_token(token_hash, now)
        if account is None:
            raise ResetTokenInvalid()

        salt, password_hash = self._hasher.hash(new_password)
        updated = self._store.update_by_id(
            account.account_id,
            {
                "password_hash": password_hash,
                "password_salt": salt,
                "password_reset_token": None,
                "password_reset_token_expires_at": None,
                "session_revoked_at": account.revocation_watermark(now),
            },
            expected={"password_reset_token": token_hash},
        )
        if updated is None:
            raise ResetTokenInvalid()

        deliver(
            self._dispatcher.send_templated,
            TEMPLATE_PASSWORD_CHANGED,
            {"full_name": updated.full_name},
            updated.email,
            updated.account_id,
        )
        logger.info("password reset completed for account %s", updated.account_id)
        return ResetPasswordResult(message="Your password has been reset.")

    def change_password(self, account_id: str, old_password: str, new_password: str) -> MessageResult:
        """Replace the password of an authenticated account.

        Existing sessions stay valid on this path; only a reset revokes them.
        """
        account = self._store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound(f"account {account_id} not found")
        if not self._hasher.verify(account.password_salt, old_password, account.password_hash):
            raise OldPasswordMismatch()
        enforce_password_policy(new_password, enabled=self._policy_enabled)

        salt, password_hash = self._hasher.hash(new_password)
        self._store.update_by_id(account_id, {"password_hash": password_hash, "password_salt": salt})
        deliver(
            self._dispatcher.send_templated,
            TEMPLATE_PASSWORD_CHANGED,
            {"full_name": account.full_name},
            account.email,
            account_id,
        )
        logger.info("password changed for account %s", account_id)
        return MessageResult(message="Your password has been changed.")
