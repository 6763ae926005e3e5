"""Shared test fixtures for the accounts test suite.

Everything runs in-process: MemoryStorage stands in for Postgres,
MemoryCache for Valkey, MemorySecurityLog for the security event table
and a mock for the email gateway.
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse
from uuid import UUID, uuid4

import pytest

from accounts.cache import MemoryCache
from accounts.codes import VerificationCodeService
from accounts.config import AccountsConfig
from accounts.emails import EmailVerificationService
from accounts.flow import AuthenticationFlow
from accounts.hasher import SecretHasher
from accounts.memory import MemorySecurityLog, MemoryStorage
from accounts.registration import RegistrationService
from accounts.security_logger import SecurityLogger
from accounts.sessions import SessionService
from accounts.types import LoginMethod, User
from clients.email_client import EmailGatewayClient


# =============================================================================
# TEST CONSTANTS
# =============================================================================

START_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

STRONG_PASSWORD = "Sup3rSecr3t!!"

TEST_USER_EMAIL = "alice@example.com"


class FakeClock:
    """Settable UTC clock. Call it to read the time."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def config():
    """Config with fast bcrypt for tests."""
    return AccountsConfig(
        session_expiry_hours=24,
        session_token_expiry_minutes=15,
        verification_code_expiry_minutes=60,
        login_code_expiry_minutes=10,
        bcrypt_rounds=4,
        app_base_url="https://app.example.com",
    )


@pytest.fixture
def clock():
    return FakeClock(START_TIME)


@pytest.fixture
def storage(clock):
    return MemoryStorage(clock=clock)


@pytest.fixture
def sender():
    """Mock email gateway - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_code.return_value = None
    return mock


@pytest.fixture
def security_logger(clock):
    return MemorySecurityLog(clock=clock)


@pytest.fixture
def unreachable_security_log():
    """Security log whose writes fail as if the database were down."""
    mock = Mock(spec=SecurityLogger)
    mock.log.side_effect = ConnectionError("security_events unavailable")
    return mock


@pytest.fixture
def hasher(config):
    return SecretHasher(MemoryCache(), rounds=config.bcrypt_rounds)


@pytest.fixture
def codes(storage, config, sender, clock):
    return VerificationCodeService(storage, config, sender, clock=clock)


@pytest.fixture
def sessions(storage, config, clock):
    return SessionService(storage, config, clock=clock)


@pytest.fixture
def flow(config, storage, codes, sessions, hasher, security_logger, clock):
    return AuthenticationFlow(
        config, storage, codes, sessions, hasher, security_logger, clock=clock
    )


@pytest.fixture
def registration(storage, codes, sessions, hasher, security_logger, clock):
    return RegistrationService(storage, codes, sessions, hasher, security_logger, clock=clock)


@pytest.fixture
def emails(storage, codes, security_logger, clock):
    return EmailVerificationService(storage, codes, security_logger, clock=clock)


# =============================================================================
# HELPERS
# =============================================================================


@pytest.fixture
def make_user(storage, hasher, clock):
    """Insert a user and login email directly into storage."""
    log = logging.getLogger("tests")

    def _make(
        email: str = TEST_USER_EMAIL,
        password: str | None = STRONG_PASSWORD,
        banned: bool = False,
        second_factor_enabled: bool = False,
        verified: bool = False,
        user_id: UUID | None = None,
    ):
        user = User(
            id=user_id or uuid4(),
            name="Test User",
            password_hash=hasher.hash(password) if password else None,
            banned=banned,
            login_method=LoginMethod.PASSWORD if password else LoginMethod.EMAIL,
            second_factor_enabled=second_factor_enabled,
            created_at=clock(),
        )
        storage.insert_user(user, log)
        storage.insert_login_email(user.id, email, log)
        if verified:
            storage.mark_email_verified(email, clock(), log)
        return storage.get_user_by_email(email, log, True)

    return _make


@pytest.fixture
def last_sent_code(sender):
    """Raw code and state from the link in the most recent email."""

    def _last():
        code_type, email, link = sender.send_code.call_args.args
        query = parse_qs(urlparse(link).query)
        state = query["state"][0] if "state" in query else None
        return query["code"][0], state

    return _last
