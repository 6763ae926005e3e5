"""
Port interfaces - Protocol definitions for the engine's collaborators.

The engine consumes persistence, email delivery, a get-or-compute cache
and a security event log through these protocols. Adapters live in
accounts.database, accounts.memory, accounts.cache, accounts.security_logger
and clients.email_client.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Protocol
from uuid import UUID

from accounts.types import (
    CodeType,
    LoginEmail,
    SecurityEvent,
    Session,
    SessionToken,
    User,
    UserWithEmail,
    VerificationCode,
)


class AccountsStorage(Protocol):
    """
    Port interface for account persistence.

    Every method takes the caller's logger as ``log`` for diagnostics.
    Lookups with ``throw_if_missing=True`` raise UserNotFoundError or
    CodeNotFoundError instead of returning None.
    """

    def insert_user(self, user: User, log: logging.Logger) -> User:
        """Persist a new user."""
        ...

    def get_user_by_email(
        self, email: str, log: logging.Logger, throw_if_missing: bool = False
    ) -> UserWithEmail | None:
        """Find the user owning a login email."""
        ...

    def insert_login_email(
        self, user_id: UUID, email: str, log: logging.Logger
    ) -> LoginEmail:
        """
        Register a login email for a user.

        Idempotent for the owning user. Raises DuplicateResourceError if
        another user owns the email.
        """
        ...

    def invalidate_verification_codes_for(
        self,
        code_type: CodeType,
        email: str,
        invalidated_at: datetime,
        log: logging.Logger,
    ) -> int:
        """Invalidate all unconsumed, uninvalidated codes. Returns count."""
        ...

    def save_verification_code(
        self, verification: VerificationCode, log: logging.Logger
    ) -> VerificationCode:
        """Persist a new verification code."""
        ...

    def get_verification_by_code(
        self, code_digest: bytes, log: logging.Logger, throw_if_missing: bool = False
    ) -> VerificationCode | None:
        """Find a verification code by digest."""
        ...

    def consume_verification_code(
        self, code_digest: bytes, consumed_at: datetime, log: logging.Logger
    ) -> bool:
        """
        Atomically mark a code consumed.

        Compare-and-set: succeeds only if the code is still unconsumed.
        Returns True if this call consumed it, False otherwise.
        """
        ...

    def mark_email_verified(
        self, email: str, verified_at: datetime, log: logging.Logger
    ) -> None:
        """Set verified_at on a login email."""
        ...

    def insert_session(self, session: Session, log: logging.Logger) -> Session:
        """Persist a new session."""
        ...

    def insert_session_token(
        self, token: SessionToken, log: logging.Logger
    ) -> SessionToken:
        """Persist a new session token."""
        ...


class CodeSender(Protocol):
    """Port interface for delivering codes by email."""

    def send_code(self, code_type: str, email: str, link: str) -> None:
        """Send the link to the address. Failures raise."""
        ...


class SecretCache(Protocol):
    """Port interface for a time-bounded get-or-compute cache."""

    def get(self, key: str, compute: Callable[[], Any], ttl_seconds: int) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        ...


class SecurityEventSink(Protocol):
    """Port interface for the append-only security event log."""

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Append one event. Failures raise."""
        ...
