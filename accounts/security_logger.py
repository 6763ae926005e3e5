"""Audit trail for authentication events.

Rows go to the append-only security_events table. Each event is mirrored
to the module logger with the address shortened.

Services record events through ``record_security_event``: an audit write
that fails is logged and never replaces the outcome of the operation
being audited.
"""

import logging
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from accounts.ports import SecurityEventSink
from accounts.types import SecurityEvent
from accounts.validation import obfuscate_email
from clients.postgres_client import PostgresClient
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


# Events that indicate a refused or failed attempt
FAILURE_EVENTS = {
    SecurityEvent.PASSWORD_FAILED,
    SecurityEvent.CODE_REJECTED,
    SecurityEvent.LOGIN_REJECTED,
}


def record_security_event(
    sink: SecurityEventSink,
    event: SecurityEvent,
    email: str | None = None,
    user_id: UUID | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Write an event to the sink; a failing write is logged, not raised."""
    who = obfuscate_email(email) if email else "unknown"
    level = logging.WARNING if event in FAILURE_EVENTS else logging.INFO
    logger.log(level, f"Security event {event.value} for {who} from {ip_address or '-'}")

    try:
        sink.log(
            event,
            email=email,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )
    except Exception:
        logger.exception(f"Failed to record security event {event.value} for {who}")


class SecurityLogger:
    """Postgres event sink. Writes security events; never reads them back."""

    def __init__(self, postgres: PostgresClient, clock: Clock = now_utc):
        self._db = postgres
        self._clock = clock

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Insert one event row. Database errors propagate to the caller."""
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, email, user_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email,
                user_id,
                ip_address,
                user_agent,
                Json(details) if details else None,
                self._clock(),
            ),
        )
