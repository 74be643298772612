"""Database repository for account credentials and lifecycle state."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

import psycopg
from psycopg import sql
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, normalize_email
from .domain.contracts import NewAccount, TokenGuard
from .domain.errors import DuplicateEmailError, PersistenceError

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = (
    "account_id",
    "email",
    "name",
    "password_hash",
    "role",
    "photo",
    "email_verified",
    "email_verification_token_hash",
    "email_verification_expires_at",
    "password_reset_token_hash",
    "password_reset_expires_at",
    "password_changed_at",
    "active",
    "created_at",
)
_UPDATABLE_COLUMNS = frozenset(_ACCOUNT_COLUMNS) - {"account_id", "created_at"}
_GUARD_COLUMNS = {
    "email_verification_token_hash": "email_verification_expires_at",
    "password_reset_token_hash": "password_reset_expires_at",
}
_SELECT = sql.SQL("SELECT {columns} FROM accounts").format(
    columns=sql.SQL(", ").join(map(sql.Identifier, _ACCOUNT_COLUMNS))
)
_RETURNING = sql.SQL("RETURNING {columns}").format(
    columns=sql.SQL(", ").join(map(sql.Identifier, _ACCOUNT_COLUMNS))
)


class PostgresCredentialStore:
    """Postgres-backed account persistence.

    Token consumption uses a single conditional ``UPDATE ... RETURNING`` so
    the hash/expiry check and the state change cannot be interleaved with a
    concurrent consumer of the same token.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_by_email(self, email: str, *, include_inactive: bool = False) -> Account | None:
        query = _SELECT + sql.SQL(" WHERE email = %s")
        if not include_inactive:
            query += sql.SQL(" AND active")
        return self._fetch_one(query, (normalize_email(email),))

    def find_by_id(self, account_id: str) -> Account | None:
        try:
            uuid.UUID(account_id)
        except ValueError:
            return None
        return self._fetch_one(_SELECT + sql.SQL(" WHERE account_id = %s AND active"), (account_id,))

    def find_by_verification_token_hash(
        self, token_hash: str, not_expired_before: datetime
    ) -> Account | None:
        query = _SELECT + sql.SQL(
            " WHERE email_verification_token_hash = %s"
            " AND email_verification_expires_at >= %s AND active"
        )
        return self._fetch_one(query, (token_hash, not_expired_before))

    def find_by_reset_token_hash(
        self, token_hash: str, not_expired_before: datetime
    ) -> Account | None:
        query = _SELECT + sql.SQL(
            " WHERE password_reset_token_hash = %s"
            " AND password_reset_expires_at >= %s AND active"
        )
        return self._fetch_one(query, (token_hash, not_expired_before))

    def create_account(self, payload: NewAccount) -> Account:
        """Insert an account and return it, translating unique-email conflicts."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        email = normalize_email(payload.email)
        query = sql.SQL(
            """
            INSERT INTO accounts (account_id, email, name, password_hash, role, photo,
                                  email_verified, password_changed_at, active, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, TRUE, %s, %s)
            """
        ) + _RETURNING
        params = (
            account_id,
            email,
            payload.name,
            payload.password_hash,
            payload.role,
            payload.photo,
            payload.email_verified,
            payload.password_changed_at,
            now,
            now,
        )
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                    conn.commit()
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateEmailError(email) from exc
        except psycopg.Error as exc:
            logger.error("account insert failed: %s", exc)
            raise PersistenceError("account insert failed") from exc
        return self._map_record(row)

    def update_account_fields(
        self,
        account_id: str,
        fields: Mapping[str, Any],
        *,
        guard: TokenGuard | None = None,
    ) -> Account | None:
        """Apply ``fields`` to one account, optionally conditioned on ``guard``.

        Returns the updated account, or ``None`` when no row matched.
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"unknown account fields: {sorted(unknown)}")

        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        ]
        assignments.append(sql.SQL("updated_at = NOW()"))
        params: list[Any] = list(fields.values())

        clauses = [sql.SQL("account_id = %s")]
        params.append(account_id)
        if guard is not None:
            if _GUARD_COLUMNS.get(guard.hash_field) != guard.expiry_field:
                raise ValueError(f"unsupported token guard on {guard.hash_field}")
            clauses.append(
                sql.SQL("{} = %s AND {} >= %s AND active").format(
                    sql.Identifier(guard.hash_field), sql.Identifier(guard.expiry_field)
                )
            )
            params.extend([guard.token_hash, guard.now])

        query = sql.SQL("UPDATE accounts SET {assignments} WHERE {where} ").format(
            assignments=sql.SQL(", ").join(assignments),
            where=sql.SQL(" AND ").join(clauses),
        ) + _RETURNING
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                    conn.commit()
        except psycopg.Error as exc:
            logger.error("account update failed for %s: %s", account_id, exc)
            raise PersistenceError("account update failed") from exc
        if not row:
            return None
        return self._map_record(row)

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing credential lifecycle activity."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO auth_audit_log (account_id, event_type, metadata)
                        VALUES (%s, %s, %s)
                        """,
                        (account_id, event_type, Json(metadata or {})),
                    )
                    conn.commit()
        except psycopg.Error as exc:
            logger.error("audit insert failed for %s: %s", event_type, exc)
            raise PersistenceError("audit insert failed") from exc

    def _fetch_one(self, query: sql.Composable, params: tuple) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        values = dict(zip(_ACCOUNT_COLUMNS, row))
        values["account_id"] = str(values["account_id"])
        return Account(**values)
