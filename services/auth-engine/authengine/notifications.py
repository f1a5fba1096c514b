"""Notification dispatch used to deliver codes and password notices."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from .domain.account import OtpMethod

logger = logging.getLogger(__name__)

TEMPLATE_PASSWORD_RESET = "password-reset"
TEMPLATE_PASSWORD_CHANGED = "password-changed"


class NotificationDispatcher(Protocol):
    """Fire-and-forget delivery of messages over email or SMS."""

    def send_otp(self, method: OtpMethod, recipient: str, code: str, account_id: str) -> None: ...

    def send_templated(
        self,
        template_key: str,
        payload: dict[str, Any],
        recipient: str,
        account_id: str,
    ) -> None: ...


def mask_contact(value: str | None) -> str:
    """Redact an email or phone number for log output."""
    if not value:
        return "redacted"
    if "@" in value:
        local, domain = value.split("@", 1)
        return f"{local[:2]}***@{domain}"
    return f"***{value[-2:]}"


def deliver(send: Callable[..., None], *args: Any) -> bool:
    """Invoke a dispatcher method, logging and absorbing delivery failures.

    State changes made before delivery are kept whatever the outcome; the
    return value only reports whether the dispatcher accepted the message.
    """
    try:
        send(*args)
    except Exception:
        logger.exception("notification delivery failed in %s", getattr(send, "__name__", send))
        return False
    return True


class LoggingDispatcher:
    """Dispatcher that only writes log lines; used when no transport is configured.

    With ``reveal_codes`` enabled the OTP code itself is logged, which is
    only acceptable on development machines.
    """

    def __init__(self, *, reveal_codes: bool = False) -> None:
        self._reveal_codes = reveal_codes

    def send_otp(self, method: OtpMethod, recipient: str, code: str, account_id: str) -> None:
        if self._reveal_codes:
            logger.info(
                "otp for account %s via %s to %s: %s",
                account_id,
                method.value,
                mask_contact(recipient),
                code,
            )
        else:
            logger.info(
                "otp for account %s via %s to %s", account_id, method.value, mask_contact(recipient)
            )

    def send_templated(
        self,
        template_key: str,
        payload: dict[str, Any],
        recipient: str,
        account_id: str,
    ) -> None:
        logger.info(
            "notification %s for account %s to %s (fields: %s)",
            template_key,
            account_id,
            mask_contact(recipient),
            ", ".join(sorted(payload)),
        )
