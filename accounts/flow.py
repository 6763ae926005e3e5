"""Authentication flow - orchestrates the multi-step login protocol.

Steps:
- email:    email a login code bound to the caller's state; no session yet
- password: check the password, then either issue a session or, for users
            with a second factor, return a step carrying a fresh login code
- code:     redeem a login code (emailed or second-factor) for a session
- totp:     declared, not available

A code consumed by the code step stays consumed even if a later part of
the step fails.
"""

import logging

from accounts.codes import VerificationCodeService
from accounts.config import AccountsConfig
from accounts.exceptions import (
    AccountsError,
    BadRequestError,
    InvalidPasswordError,
    StepNotImplementedError,
    UserBannedError,
)
from accounts.hasher import SecretHasher
from accounts.hooks import AuthHooks, run_hooks
from accounts.ports import AccountsStorage, SecurityEventSink
from accounts.security_logger import record_security_event
from accounts.sessions import SessionService
from accounts.types import (
    AuthnResponse,
    AuthnType,
    CodeAuthnRequest,
    CodeType,
    EmailAuthnRequest,
    IssuedSession,
    PasswordAuthnRequest,
    SecurityEvent,
    Step,
    TotpAuthnRequest,
    UserWithEmail,
)
from accounts.validation import normalize_email
from utils.timezone import Clock, expires_after, now_utc

logger = logging.getLogger(__name__)


class AuthenticationFlow:
    """Multi-step login state machine."""

    def __init__(
        self,
        config: AccountsConfig,
        storage: AccountsStorage,
        codes: VerificationCodeService,
        sessions: SessionService,
        hasher: SecretHasher,
        security_logger: SecurityEventSink,
        clock: Clock = now_utc,
    ):
        self._config = config
        self._storage = storage
        self._codes = codes
        self._sessions = sessions
        self._hasher = hasher
        self._security_logger = security_logger
        self._clock = clock

    def authenticate(
        self,
        request: EmailAuthnRequest | PasswordAuthnRequest | CodeAuthnRequest | TotpAuthnRequest,
        user_agent: str | None,
        ip_address: str | None,
        hooks: AuthHooks | None = None,
    ) -> AuthnResponse | None:
        """
        Dispatch an authentication request to its step.

        Returns:
            None for the email step, otherwise a Step or an IssuedSession.

        Raises:
            BadRequestError: If the request type is unknown.
        """
        if isinstance(request, EmailAuthnRequest):
            logger.info("Initiating email authn")
            self.send_login_email(request.email, request.state, ip_address, user_agent, hooks)
            return None

        if isinstance(request, PasswordAuthnRequest):
            logger.info("Initiating authn password step")
            return self.process_password_step(
                request.email, request.password, request.state, user_agent, ip_address, hooks
            )

        if isinstance(request, CodeAuthnRequest):
            logger.info("Initiating authn code step")
            return self.process_code_step(
                request.code, request.state, user_agent, ip_address, hooks
            )

        if isinstance(request, TotpAuthnRequest):
            logger.info("Initiating authn TOTP step")
            return self.process_totp_step(request.code, request.state, request.secret)

        raise BadRequestError(f"Unknown authentication type {type(request).__name__}")

    def send_login_email(
        self,
        email: str,
        state: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        hooks: AuthHooks | None = None,
    ) -> None:
        """
        Email a login code bound to ``state``.

        Raises:
            UserNotFoundError: If the email is not registered.
            EmailGatewayError: If delivery fails.
        """
        email = normalize_email(email)
        verification = self._codes.send_login_code_email(email, state, hooks)

        record_security_event(
            self._security_logger,
            SecurityEvent.LOGIN_CODE_SENT,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"expires_at": verification.expires_at.isoformat()},
        )

    def process_password_step(
        self,
        email: str,
        password: str,
        state: str,
        user_agent: str | None,
        ip_address: str | None,
        hooks: AuthHooks | None = None,
    ) -> AuthnResponse:
        """
        Check a password and either issue a session or require a second factor.

        Raises:
            UserNotFoundError: If the email is not registered.
            UserBannedError: If the user is banned.
            InvalidPasswordError: If the password does not match.
        """
        email = normalize_email(email)
        user = self._storage.get_user_by_email(email, logger, True)

        if not self._hasher.compare(password, user.password_hash):
            record_security_event(
                self._security_logger,
                SecurityEvent.PASSWORD_FAILED,
                email=email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidPasswordError("The password you've supplied is not correct.")

        self._ensure_not_banned(user, ip_address, user_agent)

        if user.second_factor_enabled:
            return self._second_factor_step(user, state, ip_address, user_agent, hooks)

        return self._issue_session(user, user_agent, ip_address, hooks)

    def process_code_step(
        self,
        code: str,
        state: str,
        user_agent: str | None,
        ip_address: str | None,
        hooks: AuthHooks | None = None,
    ) -> IssuedSession:
        """
        Redeem a login code for a session.

        Raises:
            CodeNotFoundError, CodeConsumedError, ResendCodeError: From consume.
            UserNotFoundError: If the code's email no longer has an owner.
            UserBannedError: If the user is banned.
        """
        try:
            verification = self._codes.consume(code, state)
        except AccountsError as e:
            record_security_event(
                self._security_logger,
                SecurityEvent.CODE_REJECTED,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": e.code, "error": type(e).__name__},
            )
            raise
        run_hooks(hooks, "post_consume_code", verification)

        record_security_event(
            self._security_logger,
            SecurityEvent.CODE_CONSUMED,
            email=verification.email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"type": verification.type.value},
        )

        user = self._storage.get_user_by_email(verification.email, logger, True)
        self._ensure_not_banned(user, ip_address, user_agent)

        return self._issue_session(user, user_agent, ip_address, hooks)

    def process_totp_step(self, code: str, state: str, secret: str) -> AuthnResponse:
        """Second-factor TOTP redemption. Reserved.

        Raises:
            StepNotImplementedError: Always.
        """
        raise StepNotImplementedError("TOTP authentication is not yet implemented")

    def _second_factor_step(
        self,
        user: UserWithEmail,
        state: str,
        ip_address: str | None,
        user_agent: str | None,
        hooks: AuthHooks | None,
    ) -> Step:
        logger.info("User has 2fa enabled. Returning TOTP step.")
        verification = self._codes.replace(
            CodeType.LOGIN,
            user.email,
            state,
            expires_after(self._clock(), minutes=self._config.login_code_expiry_minutes),
        )
        run_hooks(hooks, "post_generate_code", verification)

        record_security_event(
            self._security_logger,
            SecurityEvent.SECOND_FACTOR_REQUIRED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return Step(step=AuthnType.TOTP, code=verification.code, state=state)

    def _issue_session(
        self,
        user: UserWithEmail,
        user_agent: str | None,
        ip_address: str | None,
        hooks: AuthHooks | None,
    ) -> IssuedSession:
        session = self._sessions.issue(user.id, user_agent, ip_address)
        run_hooks(hooks, "post_issue_session", session)

        record_security_event(
            self._security_logger,
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"session_id": str(session.session_id)},
        )
        return session

    def _ensure_not_banned(
        self, user: UserWithEmail, ip_address: str | None, user_agent: str | None
    ) -> None:
        if user.banned:
            record_security_event(
                self._security_logger,
                SecurityEvent.LOGIN_REJECTED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "user_banned"},
            )
            raise UserBannedError("This account has been banned.")
