"""User registration.

Creates the user, claims the login email, emails a verification code and
returns a first session. Each step is a separate write; a failure part way
leaves earlier writes in place.
"""

import logging
from uuid import uuid4

from accounts.codes import VerificationCodeService
from accounts.exceptions import DuplicateResourceError, UserDataInvalidError
from accounts.hasher import SecretHasher
from accounts.hooks import AuthHooks, run_hooks
from accounts.ports import AccountsStorage, SecurityEventSink
from accounts.security_logger import record_security_event
from accounts.sessions import SessionService
from accounts.types import IssuedSession, LoginMethod, NewUser, SecurityEvent, User
from accounts.validation import normalize_email, validate_new_user
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


class RegistrationService:
    """Creates users and their first session."""

    def __init__(
        self,
        storage: AccountsStorage,
        codes: VerificationCodeService,
        sessions: SessionService,
        hasher: SecretHasher,
        security_logger: SecurityEventSink,
        clock: Clock = now_utc,
    ):
        self._storage = storage
        self._codes = codes
        self._sessions = sessions
        self._hasher = hasher
        self._security_logger = security_logger
        self._clock = clock

    def create_user(
        self,
        new_user: NewUser,
        user_agent: str | None,
        ip_address: str | None,
        hooks: AuthHooks | None = None,
    ) -> IssuedSession:
        """
        Register a user and log them in.

        Flow:
        1. Validate email and, if given, password strength and confirmation
        2. Reject emails already registered
        3. Hash the password (none means email-only login)
        4. Insert user, then login email
        5. Email a verification code
        6. Issue and return a session

        Raises:
            UserDataInvalidError: With one obstruction per failed rule.
            DuplicateResourceError: If the email is already registered.
            EmailGatewayError: If the verification email fails.
        """
        logger.debug("Called create_user")

        obstructions = validate_new_user(new_user)
        if obstructions:
            raise UserDataInvalidError("Couldn't create user", obstructions=obstructions)

        email = normalize_email(new_user.email)
        if self._storage.get_user_by_email(email, logger) is not None:
            raise DuplicateResourceError(
                "A user with this email already exists",
                obstructions=[
                    {
                        "code": "Duplicate User",
                        "text": f"Email {email} is already registered to a user in our "
                        "system. Please try logging in.",
                    }
                ],
            )

        logger.info("New user passed validation")

        password_hash = None
        if new_user.password:
            logger.debug("Hashing password")
            password_hash = self._hasher.hash(new_user.password)

        user = self._storage.insert_user(
            User(
                id=new_user.id or uuid4(),
                name=new_user.name,
                password_hash=password_hash,
                banned=False,
                login_method=LoginMethod.PASSWORD if new_user.password else LoginMethod.EMAIL,
                second_factor_enabled=False,
                created_at=self._clock(),
            ),
            logger,
        )
        run_hooks(hooks, "post_insert_user", user)

        login_email = self._storage.insert_login_email(user.id, email, logger)
        run_hooks(hooks, "post_insert_login_email", login_email)

        record_security_event(
            self._security_logger,
            SecurityEvent.USER_CREATED,
            email=email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"login_method": user.login_method.value},
        )

        self._codes.send_verification_code_email(email, hooks)

        session = self._sessions.issue(user.id, user_agent, ip_address)
        run_hooks(hooks, "post_issue_session", session)

        return session
