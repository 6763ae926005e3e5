"""Postgres implementation of the accounts storage contract.

Tables: users, login_emails, verification_codes, sessions, session_tokens.
These are read during authentication, before any user context exists.
Digests are stored as BYTEA; raw codes and secrets never reach the database.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from accounts.exceptions import CodeNotFoundError, DuplicateResourceError, UserNotFoundError
from accounts.validation import obfuscate_email
from accounts.types import (
    CodeType,
    LoginEmail,
    Session,
    SessionToken,
    User,
    UserWithEmail,
    VerificationCode,
)

_CODE_COLUMNS = (
    "code_digest, type, email, caller_state, created_at, expires_at, consumed_at, invalidated_at"
)


def _uuid(value: Any) -> UUID:
    return UUID(value) if isinstance(value, str) else value


def _bytes(value: Any) -> bytes:
    # psycopg2 returns BYTEA as memoryview
    return bytes(value) if value is not None else value


class PostgresStorage:
    """Database operations for accounts and authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def insert_user(self, user: User, log: logging.Logger) -> User:
        """Insert a new user."""
        log.debug(f"Inserting user {user.name} ({user.id}) into database")
        self._db.execute_returning(
            """INSERT INTO users
               (id, name, password_hash, banned, login_method, second_factor_enabled, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                user.id,
                user.name,
                user.password_hash,
                user.banned,
                user.login_method.value,
                user.second_factor_enabled,
                user.created_at,
            ),
        )
        return user

    def get_user_by_email(
        self, email: str, log: logging.Logger, throw_if_missing: bool = False
    ) -> UserWithEmail | None:
        """Find user by one of their login emails."""
        log.debug(f"Getting user by email {obfuscate_email(email)}")
        row = self._db.execute_single(
            """SELECT u.id, u.name, u.password_hash, u.banned, u.login_method,
                      u.second_factor_enabled, u.created_at,
                      e.email, e.verified_at, e.created_at AS login_email_created_at
               FROM users u JOIN login_emails e ON (u.id = e.user_id)
               WHERE e.email = %s""",
            (email,),
        )
        if row is None:
            if throw_if_missing:
                raise UserNotFoundError(
                    f"No users with email {email} exist in our system. Try signing up."
                )
            return None
        return UserWithEmail(
            id=_uuid(row["id"]),
            name=row["name"],
            password_hash=row["password_hash"],
            banned=row["banned"],
            login_method=row["login_method"],
            second_factor_enabled=row["second_factor_enabled"],
            created_at=row["created_at"],
            email=row["email"],
            verified_at=row["verified_at"],
            login_email_created_at=row["login_email_created_at"],
        )

    def insert_login_email(
        self, user_id: UUID, email: str, log: logging.Logger
    ) -> LoginEmail:
        """
        Register a login email for a user.

        Uses ON CONFLICT so two concurrent registrations of the same address
        cannot both succeed.
        """
        log.debug(f"Inserting email {obfuscate_email(email)} for user {user_id}")
        rows = self._db.execute_returning(
            """INSERT INTO login_emails (email, user_id, verified_at, created_at)
               VALUES (%s, %s, NULL, now())
               ON CONFLICT (email) DO NOTHING
               RETURNING email, user_id, verified_at, created_at""",
            (email, user_id),
        )
        if not rows:
            rows = self._db.execute(
                """SELECT email, user_id, verified_at, created_at
                   FROM login_emails WHERE email = %s""",
                (email,),
            )
        row = rows[0]
        if _uuid(row["user_id"]) != user_id:
            raise DuplicateResourceError(
                f"Email {email} is already in use by another user on the platform."
            )
        return LoginEmail(
            email=row["email"],
            user_id=_uuid(row["user_id"]),
            verified_at=row["verified_at"],
            created_at=row["created_at"],
        )

    def invalidate_verification_codes_for(
        self,
        code_type: CodeType,
        email: str,
        invalidated_at: datetime,
        log: logging.Logger,
    ) -> int:
        """Invalidate outstanding codes of the given type for the given email."""
        rows = self._db.execute_returning(
            """UPDATE verification_codes SET invalidated_at = %s
               WHERE type = %s AND email = %s
                 AND invalidated_at IS NULL AND consumed_at IS NULL
               RETURNING code_digest""",
            (invalidated_at, code_type.value, email),
        )
        log.debug(f"Invalidated {len(rows)} outstanding {code_type.value} codes")
        return len(rows)

    def save_verification_code(
        self, verification: VerificationCode, log: logging.Logger
    ) -> VerificationCode:
        """Store a verification code by digest."""
        self._db.execute_returning(
            f"""INSERT INTO verification_codes ({_CODE_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING code_digest""",
            (
                verification.code_digest,
                verification.type.value,
                verification.email,
                verification.caller_state,
                verification.created_at,
                verification.expires_at,
                verification.consumed_at,
                verification.invalidated_at,
            ),
        )
        return verification

    def get_verification_by_code(
        self, code_digest: bytes, log: logging.Logger, throw_if_missing: bool = False
    ) -> VerificationCode | None:
        """Retrieve a verification code by digest."""
        row = self._db.execute_single(
            f"SELECT {_CODE_COLUMNS} FROM verification_codes WHERE code_digest = %s",
            (code_digest,),
        )
        if row is None:
            if throw_if_missing:
                raise CodeNotFoundError("The verification code you've provided doesn't exist.")
            return None
        return VerificationCode(
            code_digest=_bytes(row["code_digest"]),
            type=row["type"],
            email=row["email"],
            caller_state=row["caller_state"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            consumed_at=row["consumed_at"],
            invalidated_at=row["invalidated_at"],
        )

    def consume_verification_code(
        self, code_digest: bytes, consumed_at: datetime, log: logging.Logger
    ) -> bool:
        """Mark a code consumed if and only if it is still unconsumed."""
        rows = self._db.execute_returning(
            """UPDATE verification_codes SET consumed_at = %s
               WHERE code_digest = %s AND consumed_at IS NULL
               RETURNING code_digest""",
            (consumed_at, code_digest),
        )
        return len(rows) > 0

    def mark_email_verified(
        self, email: str, verified_at: datetime, log: logging.Logger
    ) -> None:
        """Set verified_at on a login email."""
        self._db.execute_returning(
            "UPDATE login_emails SET verified_at = %s WHERE email = %s RETURNING email",
            (verified_at, email),
        )

    def insert_session(self, session: Session, log: logging.Logger) -> Session:
        """Insert a new session."""
        log.debug(f"Inserting session {session.id} into database")
        self._db.execute_returning(
            """INSERT INTO sessions
               (id, user_agent, ip, user_id, refresh_digest, invalidated_at, created_at, expires_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                session.id,
                session.user_agent,
                session.ip,
                session.user_id,
                session.refresh_digest,
                session.invalidated_at,
                session.created_at,
                session.expires_at,
            ),
        )
        return session

    def insert_session_token(
        self, token: SessionToken, log: logging.Logger
    ) -> SessionToken:
        """Insert a session access token."""
        log.debug(f"Inserting session token into database for session {token.session_id}")
        self._db.execute_returning(
            """INSERT INTO session_tokens (token_digest, session_id, created_at, expires_at)
               VALUES (%s, %s, %s, %s)
               RETURNING session_id""",
            (token.token_digest, token.session_id, token.created_at, token.expires_at),
        )
        return token
