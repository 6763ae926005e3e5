"""Session issuance.

A session is two independent secrets: a long-lived refresh secret that
identifies the session, and a short-lived access token. Only SHA-256
digests are stored; the raw values are returned to the caller once.
"""

import logging
from uuid import UUID, uuid4

from accounts.config import AccountsConfig
from accounts.crypto import RandomSource, TokenDigester
from accounts.ports import AccountsStorage
from accounts.types import IssuedSession, Session, SessionToken
from utils.timezone import Clock, expires_after, now_utc

logger = logging.getLogger(__name__)


class SessionService:
    """Mints session and access-token pairs."""

    def __init__(
        self,
        storage: AccountsStorage,
        config: AccountsConfig,
        random: RandomSource | None = None,
        digester: TokenDigester | None = None,
        clock: Clock = now_utc,
    ):
        self._storage = storage
        self._config = config
        self._random = random or RandomSource()
        self._digester = digester or TokenDigester()
        self._clock = clock

    def issue(self, user_id: UUID, user_agent: str | None, ip: str | None) -> IssuedSession:
        """Create and persist a new session for the user."""
        logger.info(f"Generating a new session for user {user_id}")

        refresh = self._random.token_bytes()
        access = self._random.token_bytes()
        now = self._clock()

        session = self._storage.insert_session(
            Session(
                id=uuid4(),
                user_id=user_id,
                user_agent=user_agent or None,
                ip=ip,
                refresh_digest=self._digester.digest(refresh),
                invalidated_at=None,
                created_at=now,
                expires_at=expires_after(now, hours=self._config.session_expiry_hours),
            ),
            logger,
        )
        self._storage.insert_session_token(
            SessionToken(
                token_digest=self._digester.digest(access),
                session_id=session.id,
                created_at=now,
                expires_at=expires_after(now, minutes=self._config.session_token_expiry_minutes),
            ),
            logger,
        )

        return IssuedSession(
            session_id=session.id,
            token=access.hex(),
            refresh=refresh.hex(),
        )
