from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from authengine.config import Settings
from authengine.domain.account import Account, AccountStatus, OtpMethod
from authengine.domain.contracts import NewAccount, RegisterInput
from authengine.domain.service import AuthService
from authengine.security.passwords import PasswordHasher

START = datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class FakeRepository:
    """In-memory user store mimicking the Postgres repository semantics."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.accounts: dict[str, Account] = {}

    def _copy(self, account: Account | None) -> Account | None:
        return replace(account) if account is not None else None

    def get_by_id(self, account_id: str) -> Account | None:
        return self._copy(self.accounts.get(account_id))

    def get_by_email(self, email: str) -> Account | None:
        email = email.strip().lower()
        return self._copy(next((a for a in self.accounts.values() if a.email == email), None))

    def get_by_phone(self, phone: str) -> Account | None:
        phone = phone.strip()
        return self._copy(next((a for a in self.accounts.values() if a.phone == phone), None))

    def find_by_reset_token(self, token_hash: str, now: datetime) -> Account | None:
        for account in self.accounts.values():
            if (
                account.password_reset_token == token_hash
                and account.password_reset_token_expires_at is not None
                and account.password_reset_token_expires_at > now
            ):
                return self._copy(account)
        return None

    def create(self, record: NewAccount) -> Account:
        account = Account(
            account_id=str(uuid.uuid4()),
            email=record.email.strip().lower(),
            phone=record.phone.strip(),
            full_name=record.full_name,
            password_hash=record.password_hash,
            password_salt=record.password_salt,
            is_admin=record.is_admin,
            created_at=self._clock(),
        )
        self.accounts[account.account_id] = account
        return self._copy(account)

    def update_by_id(
        self,
        account_id: str,
        patch: dict[str, Any],
        *,
        expected: dict[str, Any] | None = None,
    ) -> Account | None:
        account = self.accounts.get(account_id)
        if account is None:
            return None
        for name, value in (expected or {}).items():
            if getattr(account, name) != value:
                return None
        for name, value in patch.items():
            setattr(account, name, value)
        account.updated_at = self._clock()
        return self._copy(account)


@dataclass
class RecordingDispatcher:
    """Captures every message; optionally fails to mimic a broken transport."""

    otps: list[dict[str, Any]] = field(default_factory=list)
    templated: list[dict[str, Any]] = field(default_factory=list)
    fail: bool = False

    def send_otp(self, method: OtpMethod, recipient: str, code: str, account_id: str) -> None:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.otps.append(
            {"method": method, "recipient": recipient, "code": code, "account_id": account_id}
        )

    def send_templated(
        self, template_key: str, payload: dict[str, Any], recipient: str, account_id: str
    ) -> None:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.templated.append(
            {
                "template": template_key,
                "payload": payload,
                "recipient": recipient,
                "account_id": account_id,
            }
        )

    def last_code(self) -> str:
        return self.otps[-1]["code"]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        jwt_secret="Test-Secret-Key_for-Automation-Only-987654321!",
        jwt_issuer="authengine.test",
        jwt_access_expires_in="30m",
        jwt_refresh_expires_in="7d",
        otp_ttl_minutes=10,
        otp_whitelist_code="",
        app_base_url="https://app.example.com/",
        password_validation_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(clock) -> FakeRepository:
    return FakeRepository(clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher()


@pytest.fixture
def service(repository, dispatcher, settings, clock, hasher) -> AuthService:
    return AuthService(repository, dispatcher, settings, hasher=hasher, clock=clock)


@pytest.fixture
def registered(service, dispatcher) -> Account:
    """An INACTIVE account with a pending email code."""
    result = service.register(
        RegisterInput(email="a@x.com", phone="+1000", password="Secret123!")
    )
    return service._store.get_by_id(result.account.account_id)  # type: ignore[attr-defined]


@pytest.fixture
def active_account(repository, hasher, clock) -> Account:
    """A verified account with password ``Secret123!``."""
    salt, password_hash = hasher.hash("Secret123!")
    account = repository.create(
        NewAccount(
            email="active@x.com",
            phone="+2000",
            password_hash=password_hash,
            password_salt=salt,
            full_name="Ada Active",
        )
    )
    return repository.update_by_id(
        account.account_id,
        {"status": AccountStatus.ACTIVE, "email_verified": True, "email_verified_at": clock()},
    )
