"""Auth service orchestrating the account lifecycle, tokens and password flows."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from identity_schemas import PublicAccount

from .account import Account, OtpMethod
from .contracts import (
    AuthResult,
    ChangePasswordInput,
    ForgotPasswordInput,
    ForgotPasswordResult,
    LoginInput,
    MessageResult,
    NewAccount,
    RefreshTokenInput,
    RegisterInput,
    RegisterResult,
    ResendOtpInput,
    ResetPasswordInput,
    ResetPasswordResult,
    VerifyOtpInput,
)
from .otp import OtpIssue, OtpManager
from .password_reset import PasswordResetManager
from .sessions import SessionGuard
from .. import metrics
from ..config import Settings
from ..errors import (
    AccountNotFound,
    AccountNotVerified,
    AlreadyVerified,
    AuthError,
    EmailTaken,
    InvalidCredentials,
    PhoneTaken,
    TokenInvalid,
    TooManyRequests,
)
from ..notifications import NotificationDispatcher, deliver, mask_contact
from ..repository import AccountStore
from ..security.passwords import PasswordHasher, enforce_password_policy
from ..security.rate_limiter import AttemptLimiter
from ..security.tokens import Clock, TokenCodec, TokenPair, utcnow

logger = logging.getLogger(__name__)


def to_public(account: Account) -> PublicAccount:
    """Build the caller-facing projection of an account."""
    return PublicAccount(
        account_id=account.account_id,
        email=account.email,
        phone=account.phone,
        full_name=account.full_name,
        status=account.status.value,
        is_admin=account.is_admin,
        email_verified=account.email_verified,
        email_verified_at=account.email_verified_at,
        phone_verified=account.phone_verified,
        phone_verified_at=account.phone_verified_at,
        otp_method=account.otp_method.value if account.otp_method else None,
        created_at=account.created_at,
    )


class AuthService:
    """Public authentication operations over a user store.

    The service keeps no state between calls: every operation reads the
    account, decides, and writes back through the store. Notification
    delivery is best-effort and never undoes a state change.
    """

    def __init__(
        self,
        store: AccountStore,
        dispatcher: NotificationDispatcher,
        settings: Settings,
        *,
        hasher: PasswordHasher | None = None,
        clock: Clock = utcnow,
        limiter: AttemptLimiter | None = None,
    ) -> None:
        """Wire the engine components around a single store, settings and clock."""
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings
        self._hasher = hasher or PasswordHasher()
        self._clock = clock
        self._limiter = limiter
        self.codec = TokenCodec(settings, clock)
        self.otp = OtpManager(store, settings, clock)
        self.sessions = SessionGuard(store, self.codec)
        self.password_reset = PasswordResetManager(
            store, self._hasher, dispatcher, settings, clock
        )

    @contextmanager
    def _observe(self, operation: str) -> Iterator[None]:
        try:
            yield
        except AuthError as exc:
            metrics.record(operation, exc.error_code)
            raise
        except Exception:
            metrics.record(operation, "error")
            logger.exception("%s failed unexpectedly", operation)
            raise
        else:
            metrics.record(operation, "success")

    def _throttle(self, key: str) -> None:
        if self._limiter is not None and not self._limiter.allow(key):
            raise TooManyRequests()

    def _send_otp(self, account: Account, issue: OtpIssue) -> None:
        deliver(
            self._dispatcher.send_otp,
            issue.method,
            account.contact_for(issue.method),
            issue.code,
            account.account_id,
        )

    def _start_session(self, account: Account) -> tuple[Account, TokenPair]:
        tokens = self.codec.issue_pair(
            account.account_id, email=account.email, is_admin=account.is_admin
        )
        updated = self._store.update_by_id(account.account_id, {"access_token": tokens.access_token})
        return updated or account, tokens

    def register(self, payload: RegisterInput) -> RegisterResult:
        """Create an INACTIVE account and send its first verification code.

        Raises
        ------
        EmailTaken, PhoneTaken
            When the contact is already attached to another account.
        WeakPassword
            When password validation is enabled and the password is too weak.
        """
        with self._observe("register"):
            logger.info("registering account for %s", mask_contact(payload.email))
            enforce_password_policy(payload.password, enabled=self._settings.password_validation_enabled)
            if self._store.get_by_email(payload.email) is not None:
                raise EmailTaken(f"email address {payload.email} is already in use")
            if self._store.get_by_phone(payload.phone) is not None:
                raise PhoneTaken(f"phone number {payload.phone} is already in use")

            salt, password_hash = self._hasher.hash(payload.password)
            account = self._store.create(
                NewAccount(
                    email=payload.email,
                    phone=payload.phone,
                    password_hash=password_hash,
                    password_salt=salt,
                    full_name=payload.full_name,
                )
            )
            issue = self.otp.create_otp(account.account_id, payload.otp_method)
            self._send_otp(account, issue)
            account = self._store.get_by_id(account.account_id) or account

        channel = "phone" if payload.otp_method is OtpMethod.SMS else "email"
        return RegisterResult(
            account=to_public(account),
            message=f"Registration successful. Check your {channel} for the verification code.",
        )

    def verify_otp(self, payload: VerifyOtpInput) -> AuthResult:
        """Consume a verification code, activate the account and open a session."""
        with self._observe("verify_otp"):
            self.otp.verify_otp(payload.account_id, payload.code)
            account = self._store.get_by_id(payload.account_id)
            if account is None:
                raise AccountNotFound(f"account {payload.account_id} not found")
            activated = self._store.update_by_id(
                account.account_id, account.activation_patch(self._clock())
            )
            account, tokens = self._start_session(activated or account)
            logger.info("account %s verified", account.account_id)
        return AuthResult(account=to_public(account), tokens=tokens, message="Account verified.")

    def resend_otp(self, payload: ResendOtpInput) -> MessageResult:
        with self._observe("resend_otp"):
            account = self._store.get_by_id(payload.account_id)
            if account is None:
                raise AccountNotFound(f"account {payload.account_id} not found")
            if account.is_active:
                raise AlreadyVerified()
            issue = self.otp.resend_otp(account.account_id)
            self._send_otp(account, issue)
        return MessageResult(message="A new verification code has been sent.")

    def login(self, payload: LoginInput) -> AuthResult:
        """Authenticate with an email or phone number and a password.

        Unknown identifiers and wrong passwords both raise
        :class:`InvalidCredentials` so callers cannot probe for accounts.
        """
        with self._observe("login"):
            identifier = payload.identifier.strip()
            throttle_key = f"login:{identifier.lower()}"
            self._throttle(throttle_key)
            if "@" in identifier:
                account = self._store.get_by_email(identifier)
            else:
                account = self._store.get_by_phone(identifier)
            if account is None:
                raise InvalidCredentials()
            if not account.is_active:
                raise AccountNotVerified()
            if not self._hasher.verify(account.password_salt, payload.password, account.password_hash):
                raise InvalidCredentials()

            account, tokens = self._start_session(account)
            if self._limiter is not None:
                self._limiter.reset(throttle_key)
            logger.info("account %s logged in", account.account_id)
        return AuthResult(account=to_public(account), tokens=tokens, message="Login successful.")

    def refresh_tokens(self, payload: RefreshTokenInput) -> TokenPair:
        """Exchange a refresh token for a new pair.

        Every failure surfaces as :class:`TokenInvalid`, whatever the cause.
        """
        with self._observe("refresh_tokens"):
            claims = self.codec.verify_refresh(payload.refresh_token)
            account = self._store.get_by_id(claims["sub"])
            if account is None:
                logger.warning("refresh token for unknown account %s", claims["sub"])
                raise TokenInvalid()
            if not account.is_active:
                logger.warning("refresh token for inactive account %s", account.account_id)
                raise TokenInvalid()
            if account.issued_before_revocation(int(claims["iat"])):
                logger.warning("revoked refresh token for account %s", account.account_id)
                raise TokenInvalid()
            _, tokens = self._start_session(account)
        return tokens

    def logout(self, account_id: str) -> MessageResult:
        """Revoke every session of the account by advancing its watermark."""
        with self._observe("logout"):
            account = self._store.get_by_id(account_id)
            if account is not None:
                self._store.update_by_id(
                    account_id,
                    {
                        "access_token": None,
                        "session_revoked_at": account.revocation_watermark(self._clock()),
                    },
                )
                logger.info("account %s logged out", account_id)
        return MessageResult(message="Logged out.")

    def forgot_password(self, payload: ForgotPasswordInput) -> ForgotPasswordResult:
        with self._observe("forgot_password"):
            self._throttle(f"forgot:{payload.email.strip().lower()}")
            return self.password_reset.request_reset(payload.email)

    def reset_password(self, payload: ResetPasswordInput) -> ResetPasswordResult:
        with self._observe("reset_password"):
            return self.password_reset.consume_reset(payload.token, payload.password)

    def change_password(self, payload: ChangePasswordInput) -> MessageResult:
        with self._observe("change_password"):
            return self.password_reset.change_password(
                payload.account_id, payload.old_password, payload.new_password
            )
