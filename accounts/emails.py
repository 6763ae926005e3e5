"""Email address verification and verification-code resends."""

import logging
from uuid import UUID

from accounts.codes import VerificationCodeService
from accounts.exceptions import BadRequestError, CodeNotFoundError
from accounts.hooks import AuthHooks, run_hooks
from accounts.ports import AccountsStorage, SecurityEventSink
from accounts.security_logger import record_security_event
from accounts.types import GeneratedCode, ResendByCode, ResendByEmail, SecurityEvent
from accounts.validation import normalize_email
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


class EmailVerificationService:
    """Verifies login emails by code and resends verification codes."""

    def __init__(
        self,
        storage: AccountsStorage,
        codes: VerificationCodeService,
        security_logger: SecurityEventSink,
        clock: Clock = now_utc,
    ):
        self._storage = storage
        self._codes = codes
        self._security_logger = security_logger
        self._clock = clock

    def verify_email(self, code: str, hooks: AuthHooks | None = None) -> str:
        """
        Consume a verification code and mark its email verified.

        Verification codes carry no caller state.

        Returns:
            The verified email address.

        Raises:
            CodeNotFoundError, CodeConsumedError, ResendCodeError: From consume.
        """
        logger.info("Verifying email using code")
        verification = self._codes.consume(code, None)
        run_hooks(hooks, "post_consume_code", verification)
        logger.info("Code successfully consumed")

        self._storage.mark_email_verified(verification.email, self._clock(), logger)
        run_hooks(hooks, "post_mark_email_verified", verification.email)
        logger.info("Email marked verified")

        record_security_event(
            self._security_logger, SecurityEvent.EMAIL_VERIFIED, email=verification.email
        )
        return verification.email

    def resend_verification(
        self,
        request: ResendByCode | ResendByEmail,
        user_id: UUID | None,
        hooks: AuthHooks | None = None,
    ) -> GeneratedCode:
        """
        Send a fresh verification code.

        With a prior code, the code must exist and not have been invalidated.
        With an email, the caller must be logged in as the owner of that
        address and the address must still be unverified.

        Raises:
            CodeNotFoundError: Prior code missing or invalidated.
            BadRequestError: LOGIN-REQUIRED, UNREGISTERED-EMAIL or ALREADY-VERIFIED.
        """
        if isinstance(request, ResendByCode):
            logger.debug("Code submitted")
            verification = self._codes.lookup(request.code, throw_if_missing=True)
            if verification.invalidated_at is not None:
                raise CodeNotFoundError("The verification code you've provided doesn't exist.")
            logger.info("Found valid verification code. Resending email.")
            email = verification.email
        else:
            if user_id is None:
                raise BadRequestError(
                    "You must have an active session to use this endpoint, or submit a "
                    "valid prior verification code.",
                    code="LOGIN-REQUIRED",
                )

            email = normalize_email(request.email)
            user = self._storage.get_user_by_email(email, logger)
            if user is None or user.id != user_id:
                raise BadRequestError(
                    "This email is not associated with your account",
                    code="UNREGISTERED-EMAIL",
                )
            if user.verified_at is not None:
                raise BadRequestError(
                    "This email has already been verified",
                    code="ALREADY-VERIFIED",
                )

        logger.info("Resending verification email")
        verification = self._codes.send_verification_code_email(email, hooks)

        record_security_event(
            self._security_logger,
            SecurityEvent.VERIFICATION_CODE_SENT,
            email=email,
            details={"resend": True},
        )
        return verification
