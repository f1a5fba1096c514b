"""Domain-level request and response contracts for the public authentication operations."""

from __future__ import annotations

from dataclasses import dataclass

from identity_schemas import PublicAccount

from .account import OtpMethod
from ..security.tokens import TokenPair


@dataclass(slots=True)
class RegisterInput:
    """Details required to open a new, not yet verified account."""

    email: str
    phone: str
    password: str
    full_name: str | None = None
    otp_method: OtpMethod = OtpMethod.EMAIL


@dataclass(slots=True)
class NewAccount:
    """Record handed to the user store when an account is created."""

    email: str
    phone: str
    password_hash: str
    password_salt: str
    full_name: str | None = None
    is_admin: bool = False


@dataclass(slots=True)
class VerifyOtpInput:
    account_id: str
    code: str


@dataclass(slots=True)
class ResendOtpInput:
    account_id: str


@dataclass(slots=True)
class LoginInput:
    """Credentials; ``identifier`` is an email when it contains ``@``, else a phone."""

    identifier: str
    password: str


@dataclass(slots=True)
class RefreshTokenInput:
    refresh_token: str


@dataclass(slots=True)
class ForgotPasswordInput:
    email: str


@dataclass(slots=True)
class ResetPasswordInput:
    token: str
    password: str


@dataclass(slots=True)
class ChangePasswordInput:
    account_id: str
    old_password: str
    new_password: str


@dataclass(slots=True)
class MessageResult:
    message: str


@dataclass(slots=True)
class RegisterResult:
    account: PublicAccount
    message: str
    requires_verification: bool = True


@dataclass(slots=True)
class AuthResult:
    """Account projection plus the freshly issued token pair."""

    account: PublicAccount
    tokens: TokenPair
    message: str


@dataclass(slots=True)
class ForgotPasswordResult:
    """Identical for known and unknown emails."""

    message: str
    email: str


@dataclass(slots=True)
class ResetPasswordResult:
    message: str
    success: bool = True
