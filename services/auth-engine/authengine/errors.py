"""Typed failures raised by the authentication engine.

Every class maps to a caller-recoverable outcome. ``status_code`` follows the
HTTP status a transport layer would use, and ``error_code`` is the stable
machine-readable identifier.
"""

from __future__ import annotations

from typing import Any, Optional


class AuthError(Exception):
    """Base class for engine failures that callers are expected to handle."""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "authentication failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        detail: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.detail,
            }
        }


class InvalidCredentials(AuthError):
    """Unknown identifier or wrong password; the two are never distinguished."""

    status_code = 401
    error_code = "invalid_credentials"
    default_message = "invalid email/phone or password"


class AccountNotVerified(AuthError):
    status_code = 403
    error_code = "account_not_verified"
    default_message = "account must be verified before logging in"


class AccountNotActive(AuthError):
    status_code = 403
    error_code = "account_not_active"
    default_message = "account is not active"


class AccountNotFound(AuthError):
    status_code = 404
    error_code = "account_not_found"
    default_message = "account not found"


class EmailTaken(AuthError):
    status_code = 409
    error_code = "email_taken"
    default_message = "email address is already in use"


class PhoneTaken(AuthError):
    status_code = 409
    error_code = "phone_taken"
    default_message = "phone number is already in use"


class AlreadyVerified(AuthError):
    error_code = "already_verified"
    default_message = "account is already verified"


class NoActiveOtp(AuthError):
    error_code = "no_active_otp"
    default_message = "no active verification code for this account"


class OtpExpired(AuthError):
    error_code = "otp_expired"
    default_message = "verification code has expired, request a new one"


class OtpMismatch(AuthError):
    """Wrong code submitted; carries the number of attempts left."""

    error_code = "otp_mismatch"

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(
            f"incorrect verification code, {remaining_attempts} attempt(s) remaining",
            detail={"remaining_attempts": remaining_attempts},
        )
        self.remaining_attempts = remaining_attempts


class TooManyAttempts(AuthError):
    error_code = "too_many_attempts"
    default_message = "maximum number of attempts reached, request a new code"


class ResendTooSoon(AuthError):
    """A new code was requested before the cool-down elapsed."""

    status_code = 429
    error_code = "resend_too_soon"

    def __init__(self, wait_seconds: int) -> None:
        super().__init__(
            f"wait {wait_seconds} second(s) before requesting a new code",
            detail={"wait_seconds": wait_seconds},
        )
        self.wait_seconds = wait_seconds


class TooManyRequests(AuthError):
    status_code = 429
    error_code = "rate_limited"
    default_message = "rate limited"


class TokenInvalid(AuthError):
    status_code = 401
    error_code = "token_invalid"
    default_message = "token is invalid or expired"


class TokenRevoked(AuthError):
    status_code = 401
    error_code = "token_revoked"
    default_message = "token has been revoked"


class ResetTokenInvalid(AuthError):
    error_code = "reset_token_invalid"
    default_message = "reset link is invalid or has expired, request a new one"


class OldPasswordMismatch(AuthError):
    status_code = 401
    error_code = "old_password_mismatch"
    default_message = "current password is incorrect"


class WeakPassword(AuthError):
    """New password rejected by the password policy."""

    error_code = "weak_password"

    def __init__(self, violations: list[str]) -> None:
        super().__init__(
            "password does not meet the security requirements",
            detail={"violations": violations},
        )
        self.violations = violations


__all__ = [
    "AuthError",
    "InvalidCredentials",
    "AccountNotVerified",
    "AccountNotActive",
    "AccountNotFound",
    "EmailTaken",
    "PhoneTaken",
    "AlreadyVerified",
    "NoActiveOtp",
    "OtpExpired",
    "OtpMismatch",
    "TooManyAttempts",
    "ResendTooSoon",
    "TooManyRequests",
    "TokenInvalid",
    "TokenRevoked",
    "ResetTokenInvalid",
    "OldPasswordMismatch",
    "WeakPassword",
]
