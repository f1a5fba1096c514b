"""Account DTOs safe to hand to callers outside the engine."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class PublicAccount(BaseModel):
    """Account projection without credential, OTP or token material."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str | None = None
    phone: str | None = None
    full_name: str | None = None
    status: Literal["inactive", "active"]
    is_admin: bool = False
    email_verified: bool = False
    email_verified_at: datetime | None = None
    phone_verified: bool = False
    phone_verified_at: datetime | None = None
    otp_method: Literal["email", "sms"] | None = None
    created_at: datetime
