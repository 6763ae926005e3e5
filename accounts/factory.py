"""Engine wiring.

`build_accounts` assembles the services around any adapters, for example
MemoryStorage, MemoryCache and MemorySecurityLog in a single process.
`create_accounts` builds the production engine: secrets come from Vault,
storage and the security log are Postgres, the comparison cache is Valkey
and codes are delivered through the email gateway.
"""

import logging
from dataclasses import dataclass

from accounts.cache import ValkeyCache
from accounts.codes import VerificationCodeService
from accounts.config import AccountsConfig
from accounts.database import PostgresStorage
from accounts.emails import EmailVerificationService
from accounts.flow import AuthenticationFlow
from accounts.hasher import SecretHasher
from accounts.ports import AccountsStorage, CodeSender, SecretCache, SecurityEventSink
from accounts.registration import RegistrationService
from accounts.security_logger import SecurityLogger
from accounts.sessions import SessionService
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_email_config, get_valkey_url
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


@dataclass
class Accounts:
    """The assembled engine."""

    flow: AuthenticationFlow
    registration: RegistrationService
    emails: EmailVerificationService
    codes: VerificationCodeService
    sessions: SessionService
    hasher: SecretHasher


def build_accounts(
    config: AccountsConfig,
    storage: AccountsStorage,
    sender: CodeSender,
    cache: SecretCache,
    security_logger: SecurityEventSink,
    clock: Clock = now_utc,
) -> Accounts:
    """Assemble the services around the given adapters."""
    hasher = SecretHasher(
        cache,
        rounds=config.bcrypt_rounds,
        cache_ttl_seconds=config.compare_cache_ttl_seconds,
    )
    codes = VerificationCodeService(storage, config, sender, clock=clock)
    sessions = SessionService(storage, config, clock=clock)

    return Accounts(
        flow=AuthenticationFlow(
            config, storage, codes, sessions, hasher, security_logger, clock=clock
        ),
        registration=RegistrationService(
            storage, codes, sessions, hasher, security_logger, clock=clock
        ),
        emails=EmailVerificationService(storage, codes, security_logger, clock=clock),
        codes=codes,
        sessions=sessions,
        hasher=hasher,
    )


def create_accounts(config: AccountsConfig) -> Accounts:
    """
    Build the engine against Postgres, Valkey and the email gateway.

    Raises:
        ValueError, PermissionError: Missing or unreadable Vault configuration.
        redis.ConnectionError: If Valkey is unreachable.
    """
    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())
    email_config = get_email_config()

    accounts = build_accounts(
        config,
        storage=PostgresStorage(postgres),
        sender=EmailGatewayClient(
            gateway_url=email_config["gateway_url"],
            api_key=email_config["api_key"],
            hmac_secret=email_config["hmac_secret"],
        ),
        cache=ValkeyCache(valkey),
        security_logger=SecurityLogger(postgres),
    )
    logger.info("Accounts engine ready")
    return accounts
