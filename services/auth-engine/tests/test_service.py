from __future__ import annotations

from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from authengine.domain.account import AccountStatus, OtpMethod
from authengine.domain.contracts import (
    LoginInput,
    RefreshTokenInput,
    RegisterInput,
    ResendOtpInput,
    VerifyOtpInput,
)
from authengine.domain.service import AuthService
from authengine.errors import (
    AccountNotFound,
    AccountNotVerified,
    AlreadyVerified,
    EmailTaken,
    InvalidCredentials,
    OtpMismatch,
    PhoneTaken,
    ResendTooSoon,
    TokenInvalid,
    TooManyRequests,
    WeakPassword,
)
from authengine.security.rate_limiter import SlidingWindowRateLimiter


def test_register_verify_login_scenario(service, repository, dispatcher):
    registration = service.register(
        RegisterInput(email="a@x.com", phone="+1000", password="Secret123!")
    )
    account_id = registration.account.account_id

    assert registration.account.status == "inactive"
    assert registration.requires_verification
    assert dispatcher.otps[-1]["recipient"] == "a@x.com"
    assert dispatcher.otps[-1]["method"] is OtpMethod.EMAIL

    verified = service.verify_otp(VerifyOtpInput(account_id=account_id, code=dispatcher.last_code()))
    assert verified.account.status == "active"
    assert verified.account.email_verified
    assert not verified.account.phone_verified
    assert repository.get_by_id(account_id).access_token == verified.tokens.access_token

    login = service.login(LoginInput(identifier="a@x.com", password="Secret123!"))
    assert login.tokens.access_token
    assert service.codec.verify(login.tokens.access_token)["sub"] == account_id


def test_public_account_hides_credentials(service):
    registration = service.register(
        RegisterInput(email="a@x.com", phone="+1000", password="Secret123!")
    )

    dumped = registration.account.model_dump()
    assert "password_hash" not in dumped
    assert "otp_code" not in dumped
    assert dumped["otp_method"] == "email"


def test_sms_verification_marks_phone(service, dispatcher):
    registration = service.register(
        RegisterInput(email="b@x.com", phone="+3000", password="Secret123!", otp_method=OtpMethod.SMS)
    )
    assert dispatcher.otps[-1]["recipient"] == "+3000"
    assert "phone" in registration.message

    verified = service.verify_otp(
        VerifyOtpInput(account_id=registration.account.account_id, code=dispatcher.last_code())
    )

    assert verified.account.phone_verified
    assert verified.account.phone_verified_at is not None
    assert not verified.account.email_verified


def test_register_rejects_taken_contacts(service, active_account):
    with pytest.raises(EmailTaken):
        service.register(RegisterInput(email="ACTIVE@x.com", phone="+9999", password="Secret123!"))
    with pytest.raises(PhoneTaken):
        service.register(RegisterInput(email="new@x.com", phone=active_account.phone, password="Secret123!"))


def test_register_survives_dispatch_failure(service, repository, dispatcher):
    dispatcher.fail = True

    registration = service.register(
        RegisterInput(email="a@x.com", phone="+1000", password="Secret123!")
    )

    stored = repository.get_by_id(registration.account.account_id)
    assert stored.status is AccountStatus.INACTIVE
    assert stored.otp_code is not None


def test_register_enforces_password_policy_when_enabled(repository, dispatcher, settings, clock, hasher):
    service = AuthService(
        repository,
        dispatcher,
        replace(settings, password_validation_enabled=True),
        hasher=hasher,
        clock=clock,
    )

    with pytest.raises(WeakPassword) as excinfo:
        service.register(RegisterInput(email="a@x.com", phone="+1000", password="short"))
    assert "min_length" in excinfo.value.violations
    assert repository.accounts == {}


def test_wrong_code_leaves_account_inactive(service, registered, dispatcher):
    code = dispatcher.last_code()
    wrong = "100000" if code != "100000" else "100001"

    with pytest.raises(OtpMismatch):
        service.verify_otp(VerifyOtpInput(account_id=registered.account_id, code=wrong))

    assert not service._store.get_by_id(registered.account_id).is_active  # type: ignore[attr-defined]


def test_resend_otp_rules(service, registered, dispatcher, clock, active_account):
    with pytest.raises(ResendTooSoon):
        service.resend_otp(ResendOtpInput(account_id=registered.account_id))

    clock.advance(seconds=60)
    service.resend_otp(ResendOtpInput(account_id=registered.account_id))
    assert len(dispatcher.otps) == 2

    with pytest.raises(AlreadyVerified):
        service.resend_otp(ResendOtpInput(account_id=active_account.account_id))
    with pytest.raises(AccountNotFound):
        service.resend_otp(ResendOtpInput(account_id="missing"))


def test_login_failures_do_not_distinguish_unknown_identifier(service, active_account):
    with pytest.raises(InvalidCredentials) as unknown:
        service.login(LoginInput(identifier="nobody@x.com", password="Secret123!"))
    with pytest.raises(InvalidCredentials) as wrong:
        service.login(LoginInput(identifier=active_account.email, password="nope"))

    assert unknown.value.message == wrong.value.message
    assert unknown.value.status_code == wrong.value.status_code == 401


def test_login_by_phone_and_unverified_account(service, registered, active_account):
    assert service.login(LoginInput(identifier="+2000", password="Secret123!")).account.account_id == (
        active_account.account_id
    )
    with pytest.raises(AccountNotVerified):
        service.login(LoginInput(identifier=registered.email, password="Secret123!"))


def test_login_attempts_are_throttled(repository, dispatcher, settings, clock, hasher, active_account):
    service = AuthService(
        repository,
        dispatcher,
        settings,
        hasher=hasher,
        clock=clock,
        limiter=SlidingWindowRateLimiter(max_requests=2, window_seconds=60),
    )

    for _ in range(2):
        with pytest.raises(InvalidCredentials):
            service.login(LoginInput(identifier=active_account.email, password="nope"))
    with pytest.raises(TooManyRequests):
        service.login(LoginInput(identifier=active_account.email, password="Secret123!"))


def test_refresh_issues_new_pair(service, active_account, clock):
    login = service.login(LoginInput(identifier=active_account.email, password="Secret123!"))

    clock.advance(minutes=45)
    with pytest.raises(TokenInvalid):
        service.codec.verify(login.tokens.access_token)

    refreshed = service.refresh_tokens(RefreshTokenInput(refresh_token=login.tokens.refresh_token))
    assert service.sessions.validate(refreshed.access_token).valid


def test_refresh_failures_collapse_to_token_invalid(service, repository, active_account, clock):
    login = service.login(LoginInput(identifier=active_account.email, password="Secret123!"))
    refresh = RefreshTokenInput(refresh_token=login.tokens.refresh_token)

    with pytest.raises(TokenInvalid):
        service.refresh_tokens(RefreshTokenInput(refresh_token="garbage"))

    repository.update_by_id(active_account.account_id, {"status": AccountStatus.INACTIVE})
    with pytest.raises(TokenInvalid):
        service.refresh_tokens(refresh)

    repository.update_by_id(active_account.account_id, {"status": AccountStatus.ACTIVE})
    clock.advance(seconds=1)
    service.logout(active_account.account_id)
    with pytest.raises(TokenInvalid):
        service.refresh_tokens(refresh)

    orphan = service.codec.issue_pair("ghost", email=None, is_admin=False)
    with pytest.raises(TokenInvalid):
        service.refresh_tokens(RefreshTokenInput(refresh_token=orphan.refresh_token))


def test_logout_clears_token_reference_and_only_advances_watermark(service, repository, active_account, clock):
    service.login(LoginInput(identifier=active_account.email, password="Secret123!"))
    clock.advance(seconds=10)
    service.logout(active_account.account_id)

    stored = repository.get_by_id(active_account.account_id)
    assert stored.access_token is None
    watermark = stored.session_revoked_at
    assert watermark == clock()

    clock.current = clock.current.replace(second=0)
    service.logout(active_account.account_id)
    assert repository.get_by_id(active_account.account_id).session_revoked_at == watermark


def test_logout_of_unknown_account_is_a_no_op(service):
    assert service.logout("missing").message


def test_outcomes_are_counted_per_operation(service, active_account):
    labels = {"operation": "login", "outcome": "invalid_credentials"}
    before = REGISTRY.get_sample_value("authengine_events_total", labels) or 0.0

    with pytest.raises(InvalidCredentials):
        service.login(LoginInput(identifier=active_account.email, password="nope"))

    assert REGISTRY.get_sample_value("authengine_events_total", labels) == before + 1


def test_refresh_rejects_access_token(service, active_account):
    login = service.login(LoginInput(identifier=active_account.email, password="Secret123!"))

    with pytest.raises(TokenInvalid):
        service.refresh_tokens(RefreshTokenInput(refresh_token=login.tokens.access_token))
