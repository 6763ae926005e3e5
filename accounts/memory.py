"""In-process implementations of the accounts storage and audit contracts.

All state lives in dicts guarded by a single lock, so compound operations
(consume, invalidate, duplicate-email checks) are atomic across threads.
"""

import logging
import threading
from datetime import datetime
from typing import Any
from uuid import UUID

from accounts.exceptions import CodeNotFoundError, DuplicateResourceError, UserNotFoundError
from accounts.types import (
    CodeType,
    LoginEmail,
    SecurityEvent,
    SecurityEventRecord,
    Session,
    SessionToken,
    User,
    UserWithEmail,
    VerificationCode,
)
from utils.timezone import Clock, now_utc


class MemoryStorage:
    """Dict-backed storage. Models are copied in and out."""

    def __init__(self, clock: Clock = now_utc):
        self._clock = clock
        self._lock = threading.RLock()
        self.users: dict[UUID, User] = {}
        self.login_emails: dict[str, LoginEmail] = {}
        self.verification_codes: dict[bytes, VerificationCode] = {}
        self.sessions: dict[UUID, Session] = {}
        self.session_tokens: dict[bytes, SessionToken] = {}

    def insert_user(self, user: User, log: logging.Logger) -> User:
        log.debug(f"Inserting user {user.name} ({user.id})")
        with self._lock:
            if user.id in self.users:
                raise DuplicateResourceError(f"User {user.id} already exists")
            self.users[user.id] = user.model_copy()
        return user

    def get_user_by_email(
        self, email: str, log: logging.Logger, throw_if_missing: bool = False
    ) -> UserWithEmail | None:
        log.debug("Getting user by email")
        with self._lock:
            login_email = self.login_emails.get(email)
            user = self.users.get(login_email.user_id) if login_email else None

        if user is None:
            if throw_if_missing:
                raise UserNotFoundError(
                    f"No users with email {email} exist in our system. Try signing up."
                )
            return None

        return UserWithEmail(
            **user.model_dump(),
            email=login_email.email,
            verified_at=login_email.verified_at,
            login_email_created_at=login_email.created_at,
        )

    def insert_login_email(
        self, user_id: UUID, email: str, log: logging.Logger
    ) -> LoginEmail:
        log.debug(f"Inserting login email for user {user_id}")
        with self._lock:
            existing = self.login_emails.get(email)
            if existing is not None:
                if existing.user_id != user_id:
                    raise DuplicateResourceError(
                        f"Email {email} is already in use by another user on the platform."
                    )
                return existing.model_copy()

            login_email = LoginEmail(
                email=email,
                user_id=user_id,
                verified_at=None,
                created_at=self._clock(),
            )
            self.login_emails[email] = login_email
            return login_email.model_copy()

    def invalidate_verification_codes_for(
        self,
        code_type: CodeType,
        email: str,
        invalidated_at: datetime,
        log: logging.Logger,
    ) -> int:
        count = 0
        with self._lock:
            for digest, code in self.verification_codes.items():
                if (
                    code.type == code_type
                    and code.email == email
                    and code.consumed_at is None
                    and code.invalidated_at is None
                ):
                    self.verification_codes[digest] = code.model_copy(
                        update={"invalidated_at": invalidated_at}
                    )
                    count += 1
        log.debug(f"Invalidated {count} outstanding {code_type.value} codes")
        return count

    def save_verification_code(
        self, verification: VerificationCode, log: logging.Logger
    ) -> VerificationCode:
        # Never keep a raw code, even if handed a GeneratedCode
        record = VerificationCode(**verification.model_dump(exclude={"code"}))
        with self._lock:
            self.verification_codes[record.code_digest] = record
        return verification

    def get_verification_by_code(
        self, code_digest: bytes, log: logging.Logger, throw_if_missing: bool = False
    ) -> VerificationCode | None:
        with self._lock:
            record = self.verification_codes.get(code_digest)
        if record is None:
            if throw_if_missing:
                raise CodeNotFoundError("The verification code you've provided doesn't exist.")
            return None
        return record.model_copy()

    def consume_verification_code(
        self, code_digest: bytes, consumed_at: datetime, log: logging.Logger
    ) -> bool:
        with self._lock:
            record = self.verification_codes.get(code_digest)
            if record is None or record.consumed_at is not None:
                return False
            self.verification_codes[code_digest] = record.model_copy(
                update={"consumed_at": consumed_at}
            )
            return True

    def mark_email_verified(
        self, email: str, verified_at: datetime, log: logging.Logger
    ) -> None:
        with self._lock:
            login_email = self.login_emails.get(email)
            if login_email is not None:
                self.login_emails[email] = login_email.model_copy(
                    update={"verified_at": verified_at}
                )

    def insert_session(self, session: Session, log: logging.Logger) -> Session:
        log.debug(f"Inserting session {session.id}")
        with self._lock:
            self.sessions[session.id] = session.model_copy()
        return session

    def insert_session_token(
        self, token: SessionToken, log: logging.Logger
    ) -> SessionToken:
        log.debug(f"Inserting session token for session {token.session_id}")
        with self._lock:
            self.session_tokens[token.token_digest] = token.model_copy()
        return token

    def valid_codes_for(self, code_type: CodeType, email: str) -> list[VerificationCode]:
        """Codes of a type/email that could still be redeemed right now."""
        now = self._clock()
        with self._lock:
            return [
                code.model_copy()
                for code in self.verification_codes.values()
                if code.type == code_type and code.email == email and code.is_valid(now)
            ]


class MemorySecurityLog:
    """Append-only list of security events."""

    def __init__(self, clock: Clock = now_utc):
        self._clock = clock
        self._lock = threading.Lock()
        self.events: list[SecurityEventRecord] = []

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        record = SecurityEventRecord(
            event=event,
            email=email,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=dict(details) if details else None,
            created_at=self._clock(),
        )
        with self._lock:
            self.events.append(record)

    def of_type(self, event: SecurityEvent) -> list[SecurityEventRecord]:
        with self._lock:
            return [record for record in self.events if record.event == event]
