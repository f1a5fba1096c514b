"""One-time code issuance, verification and resend throttling."""

from __future__ import annotations

import hmac
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from .account import OtpMethod, OtpState, otp_cleared
from ..config import OTP_MAX_ATTEMPTS, OTP_RESEND_COOLDOWN_SECONDS, Settings
from ..errors import (
    AccountNotFound,
    NoActiveOtp,
    OtpExpired,
    OtpMismatch,
    ResendTooSoon,
    TooManyAttempts,
)
from ..repository import AccountStore
from ..security.tokens import Clock, utcnow

logger = logging.getLogger(__name__)


def _codes_match(submitted: str, stored: str) -> bool:
    return hmac.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))


@dataclass(slots=True)
class OtpIssue:
    """A freshly stored code; the raw value must only travel out-of-band."""

    code: str
    expires_at: datetime
    method: OtpMethod


class OtpManager:
    """Stores codes on the account record and checks them lazily against the clock."""

    def __init__(self, store: AccountStore, settings: Settings, clock: Clock = utcnow) -> None:
        self._store = store
        self._ttl = timedelta(minutes=settings.otp_ttl_minutes)
        self._whitelist_code = settings.otp_whitelist_code
        self._clock = clock

    @staticmethod
    def generate_code() -> str:
        """Return a six digit code in the range 100000-999999."""
        return str(100000 + secrets.randbelow(900000))

    def create_otp(self, account_id: str, method: OtpMethod) -> OtpIssue:
        code = self.generate_code()
        expires_at = self._clock() + self._ttl
        self._store.update_by_id(
            account_id,
            {
                "otp_code": code,
                "otp_expires_at": expires_at,
                "otp_method": method,
                "otp_attempts": 0,
            },
        )
        logger.info("otp issued for account %s via %s", account_id, method.value)
        return OtpIssue(code=code, expires_at=expires_at, method=method)

    def clear_otp(self, account_id: str) -> None:
        self._store.update_by_id(account_id, otp_cleared())

    def verify_otp(self, account_id: str, code: str) -> None:
        """Consume ``code`` for the account or raise the reason it was refused.

        A wrong code counts as an attempt. The attempt that reaches the limit
        is reported as :class:`TooManyAttempts` rather than as a mismatch, and
        every later attempt fails the same way until a new code is issued.
        """
        account = self._store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound(f"account {account_id} not found")

        if self._whitelist_code and _codes_match(code, self._whitelist_code):
            logger.warning("whitelisted otp accepted for account %s", account_id)
            self.clear_otp(account_id)
            return

        state = account.otp_state(self._clock(), OTP_MAX_ATTEMPTS)
        if state is OtpState.NONE:
            raise NoActiveOtp()
        if state is OtpState.EXPIRED:
            raise OtpExpired()
        if state is OtpState.LOCKED:
            raise TooManyAttempts()

        if not _codes_match(code, account.otp_code or ""):
            attempts = account.otp_attempts + 1
            self._store.update_by_id(account_id, {"otp_attempts": attempts})
            logger.info("otp mismatch for account %s (attempt %d)", account_id, attempts)
            if attempts >= OTP_MAX_ATTEMPTS:
                raise TooManyAttempts()
            raise OtpMismatch(remaining_attempts=max(0, OTP_MAX_ATTEMPTS - attempts))

        self.clear_otp(account_id)

    def resend_otp(self, account_id: str) -> OtpIssue:
        account = self._store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound(f"account {account_id} not found")

        if account.otp_expires_at is not None:
            created_at = account.otp_expires_at - self._ttl
            elapsed = (self._clock() - created_at).total_seconds()
            if elapsed < OTP_RESEND_COOLDOWN_SECONDS:
                raise ResendTooSoon(wait_seconds=math.ceil(OTP_RESEND_COOLDOWN_SECONDS - elapsed))

        return self.create_otp(account_id, account.otp_method or OtpMethod.EMAIL)
