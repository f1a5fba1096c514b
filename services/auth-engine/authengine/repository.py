"""User store interface and its Postgres implementation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, AccountStatus, OtpMethod
from .domain.contracts import NewAccount

_COLUMNS = (
    "account_id",
    "email",
    "phone",
    "full_name",
    "password_hash",
    "password_salt",
    "status",
    "is_admin",
    "email_verified",
    "email_verified_at",
    "phone_verified",
    "phone_verified_at",
    "otp_code",
    "otp_expires_at",
    "otp_method",
    "otp_attempts",
    "access_token",
    "password_reset_token",
    "password_reset_token_expires_at",
    "session_revoked_at",
    "created_at",
    "updated_at",
)

_UPDATABLE = frozenset(_COLUMNS) - {"account_id", "created_at", "updated_at"}


class AccountStore(Protocol):
    """Operations the engine needs from the user store."""

    def get_by_id(self, account_id: str) -> Account | None: ...

    def get_by_email(self, email: str) -> Account | None: ...

    def get_by_phone(self, phone: str) -> Account | None: ...

    def create(self, record: NewAccount) -> Account: ...

    def update_by_id(
        self,
        account_id: str,
        patch: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> Account | None: ...

    def find_by_reset_token(self, token_hash: str, now: datetime) -> Account | None: ...


def normalise_email(email: str) -> str:
    return email.strip().lower()


def build_update(
    account_id: str,
    patch: Mapping[str, Any],
    expected: Mapping[str, Any] | None = None,
) -> tuple[sql.Composed, list[Any]]:
    """Compose a single-row conditional UPDATE returning the new row.

    ``expected`` adds equality conditions so that a concurrent writer who
    already changed those columns makes the update match nothing.
    """
    unknown = (set(patch) | set(expected or {})) - _UPDATABLE
    if unknown:
        raise ValueError(f"unknown account fields: {sorted(unknown)}")
    if not patch:
        raise ValueError("empty account patch")

    assignments = [sql.SQL("{} = %s").format(sql.Identifier(name)) for name in patch]
    assignments.append(sql.SQL("updated_at = %s"))
    params: list[Any] = [_to_db(value) for value in patch.values()]
    params.append(datetime.now(timezone.utc))

    conditions = [sql.SQL("account_id = %s")]
    params.append(account_id)
    for name, value in (expected or {}).items():
        if value is None:
            conditions.append(sql.SQL("{} IS NULL").format(sql.Identifier(name)))
        else:
            conditions.append(sql.SQL("{} = %s").format(sql.Identifier(name)))
            params.append(_to_db(value))

    query = sql.SQL("UPDATE accounts SET {} WHERE {} RETURNING {}").format(
        sql.SQL(", ").join(assignments),
        sql.SQL(" AND ").join(conditions),
        sql.SQL(", ").join(sql.Identifier(name) for name in _COLUMNS),
    )
    return query, params


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class AccountRepository:
    """Postgres-backed account persistence.

    Every mutation is one statement against one row, which gives the
    single-document atomicity the engine relies on.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def _fetch_one(self, where: str, params: tuple[Any, ...]) -> Account | None:
        query = sql.SQL("SELECT {} FROM accounts WHERE " + where).format(
            sql.SQL(", ").join(sql.Identifier(name) for name in _COLUMNS)
        )
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def get_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one("account_id = %s", (account_id,))

    def get_by_email(self, email: str) -> Account | None:
        return self._fetch_one("email = %s", (normalise_email(email),))

    def get_by_phone(self, phone: str) -> Account | None:
        return self._fetch_one("phone = %s", (phone.strip(),))

    def find_by_reset_token(self, token_hash: str, now: datetime) -> Account | None:
        """Return the account holding ``token_hash`` whose reset window is still open."""
        return self._fetch_one(
            "password_reset_token = %s AND password_reset_token_expires_at > %s",
            (token_hash, now),
        )

    def create(self, record: NewAccount) -> Account:
        """Insert a new INACTIVE account and return it."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        query = sql.SQL(
            """
            INSERT INTO accounts (
                account_id, email, phone, full_name, password_hash, password_salt,
                status, is_admin, email_verified, phone_verified, otp_attempts,
                created_at, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, false, false, 0, %s, %s)
            RETURNING {}
            """
        ).format(sql.SQL(", ").join(sql.Identifier(name) for name in _COLUMNS))
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    query,
                    (
                        account_id,
                        normalise_email(record.email),
                        record.phone.strip(),
                        record.full_name,
                        record.password_hash,
                        record.password_salt,
                        AccountStatus.INACTIVE.value,
                        record.is_admin,
                        now,
                        now,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def update_by_id(
        self,
        account_id: str,
        patch: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> Account | None:
        """Apply ``patch`` to one account; ``None`` when no row matched."""
        query, params = build_update(account_id, patch, expected)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row) if row else None

    def _map_record(self, row: Mapping[str, Any]) -> Account:
        """Convert a database row into the domain ``Account`` dataclass."""
        data = dict(row)
        data["status"] = AccountStatus(data["status"])
        if data.get("otp_method"):
            data["otp_method"] = OtpMethod(data["otp_method"])
        data["otp_attempts"] = data.get("otp_attempts") or 0
        return Account(**data)
