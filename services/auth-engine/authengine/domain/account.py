from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AccountStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class OtpMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class OtpState(str, Enum):
    """Lifecycle of the one-time code stored on an account.

    A consumed code is cleared from the record and therefore reads back as
    ``NONE``; ``EXPIRED`` and ``LOCKED`` both require a fresh code.
    """

    NONE = "none"
    PENDING = "pending"
    EXPIRED = "expired"
    LOCKED = "locked"


@dataclass(slots=True)
class Account:
    """Aggregate root for a user identity and its credential state."""

    account_id: str
    email: str | None
    phone: str | None
    password_hash: str
    password_salt: str
    created_at: datetime
    full_name: str | None = None
    status: AccountStatus = AccountStatus.INACTIVE
    is_admin: bool = False
    email_verified: bool = False
    email_verified_at: datetime | None = None
    phone_verified: bool = False
    phone_verified_at: datetime | None = None
    otp_code: str | None = None
    otp_expires_at: datetime | None = None
    otp_method: OtpMethod | None = None
    otp_attempts: int = 0
    access_token: str | None = None
    password_reset_token: str | None = None
    password_reset_token_expires_at: datetime | None = None
    session_revoked_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE

    def otp_state(self, now: datetime, max_attempts: int) -> OtpState:
        if not self.otp_code or self.otp_expires_at is None:
            return OtpState.NONE
        if now > self.otp_expires_at:
            return OtpState.EXPIRED
        if self.otp_attempts >= max_attempts:
            return OtpState.LOCKED
        return OtpState.PENDING

    def activation_patch(self, now: datetime) -> dict[str, Any]:
        """Return the update moving the account to ACTIVE for its OTP channel.

        The status only ever moves forward; an already active account keeps
        its status and only gains the channel verification flag.
        """
        patch: dict[str, Any] = {"status": AccountStatus.ACTIVE}
        if self.otp_method is OtpMethod.SMS:
            patch["phone_verified"] = True
            patch["phone_verified_at"] = now
        else:
            patch["email_verified"] = True
            patch["email_verified_at"] = now
        return patch

    def contact_for(self, method: OtpMethod) -> str | None:
        return self.phone if method is OtpMethod.SMS else self.email

    def revocation_watermark(self, now: datetime) -> datetime:
        """Return the next ``session_revoked_at`` value; it never moves backwards."""
        if self.session_revoked_at is not None and self.session_revoked_at > now:
            return self.session_revoked_at
        return now

    def issued_before_revocation(self, issued_at: int) -> bool:
        """Return ``True`` when a token issued at ``issued_at`` (epoch seconds) is revoked.

        ``iat`` only has whole-second resolution, so a token issued in the same
        second as the revocation but after it is refused as well.
        """
        if self.session_revoked_at is None:
            return False
        return datetime.fromtimestamp(issued_at, timezone.utc) < self.session_revoked_at


def otp_cleared() -> dict[str, Any]:
    """Patch removing the active code and resetting the attempt counter."""
    return {"otp_code": None, "otp_expires_at": None, "otp_attempts": 0}
