"""Verification code lifecycle.

A code is 32 random bytes handed to the client as hex. Only its SHA-256
digest is persisted. For a given (type, email) at most one code is valid
at a time: outstanding codes are invalidated before a new one is minted.

A code moves once from valid to consumed or invalidated. Expiry is not a
stored transition; it is checked whenever the code is read.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from urllib.parse import urlencode

from accounts.config import AccountsConfig
from accounts.crypto import RandomSource, TokenDigester
from accounts.exceptions import (
    CodeConsumedError,
    CodeExpiredError,
    CodeInvalidatedError,
    CodeNotFoundError,
    StateMismatchError,
)
from accounts.hooks import AuthHooks, run_hooks
from accounts.ports import AccountsStorage, CodeSender
from accounts.types import CodeType, GeneratedCode, VerificationCode
from accounts.validation import obfuscate_email
from utils.timezone import Clock, expires_after, now_utc

logger = logging.getLogger(__name__)


class VerificationCodeService:
    """Generates, invalidates, looks up, consumes and delivers one-time codes."""

    def __init__(
        self,
        storage: AccountsStorage,
        config: AccountsConfig,
        sender: CodeSender,
        random: RandomSource | None = None,
        digester: TokenDigester | None = None,
        clock: Clock = now_utc,
    ):
        self._storage = storage
        self._config = config
        self._sender = sender
        self._random = random or RandomSource()
        self._digester = digester or TokenDigester()
        self._clock = clock

    def _digest(self, raw_code: str) -> bytes:
        """Digest a client-supplied code. Non-hex input matches nothing."""
        try:
            return self._digester.digest_hex(raw_code)
        except ValueError:
            raise CodeNotFoundError("The verification code you've provided doesn't exist.")

    def generate(
        self,
        code_type: CodeType,
        email: str,
        caller_state: str | None,
        expires_at: datetime,
    ) -> GeneratedCode:
        """
        Mint and persist a new code.

        Does not invalidate earlier codes; call invalidate_outstanding first.

        Returns:
            The persisted record plus the raw hex code. The raw code cannot
            be recovered after this call.
        """
        logger.debug("Generating new verification code")

        raw = self._random.token_bytes()
        record = VerificationCode(
            code_digest=self._digester.digest(raw),
            type=code_type,
            email=email,
            caller_state=caller_state,
            created_at=self._clock(),
            expires_at=expires_at,
            consumed_at=None,
            invalidated_at=None,
        )
        self._storage.save_verification_code(record, logger)

        return GeneratedCode(**record.model_dump(), code=raw.hex())

    def invalidate_outstanding(self, code_type: CodeType, email: str) -> int:
        """Invalidate every still-redeemable code of this type for this email."""
        return self._storage.invalidate_verification_codes_for(
            code_type, email, self._clock(), logger
        )

    def replace(
        self,
        code_type: CodeType,
        email: str,
        caller_state: str | None,
        expires_at: datetime,
    ) -> GeneratedCode:
        """Invalidate outstanding codes, then mint a new one."""
        self.invalidate_outstanding(code_type, email)
        return self.generate(code_type, email, caller_state, expires_at)

    def lookup(self, raw_code: str, throw_if_missing: bool = False) -> VerificationCode | None:
        """
        Read-only lookup by raw code.

        Raises:
            CodeNotFoundError: If missing and throw_if_missing is set.
        """
        try:
            digest = self._digest(raw_code)
        except CodeNotFoundError:
            if throw_if_missing:
                raise
            return None
        return self._storage.get_verification_by_code(digest, logger, throw_if_missing)

    def consume(self, raw_code: str, expected_caller_state: str | None) -> VerificationCode:
        """
        Redeem a code exactly once.

        Returns:
            The record as it was before consumption.

        Raises:
            CodeNotFoundError: No code matches.
            CodeConsumedError: Already redeemed, including by a concurrent call.
            CodeInvalidatedError: Superseded by a newer code.
            CodeExpiredError: Past its expiry.
            StateMismatchError: Caller state differs from the issuing one.
        """
        digest = self._digest(raw_code)
        verification = self._storage.get_verification_by_code(digest, logger, True)
        now = self._clock()

        if verification.consumed_at is not None:
            raise CodeConsumedError(
                "This verification code has already been consumed! "
                "You don't need to do anything else."
            )
        if verification.invalidated_at is not None:
            raise CodeInvalidatedError(
                "This verification code has been invalidated. "
                "Please try requesting another email."
            )
        if verification.expires_at < now:
            raise CodeExpiredError(
                "This verification code has expired. Please try requesting another email."
            )
        if verification.caller_state != expected_caller_state:
            raise StateMismatchError(
                "The state parameter you've passed does not match with the one used when "
                "creating this authentication code. Please try again."
            )

        if not self._storage.consume_verification_code(digest, now, logger):
            # Lost the race to a concurrent redemption
            raise CodeConsumedError(
                "This verification code has already been consumed! "
                "You don't need to do anything else."
            )

        return verification

    def build_link(self, code_type: CodeType, code: str, caller_state: str | None) -> str:
        """Link the emailed code points at."""
        base = self._config.app_base_url.rstrip("/")
        if code_type == CodeType.LOGIN:
            query = {"code": code}
            if caller_state is not None:
                query["state"] = caller_state
            return f"{base}{self._config.login_path}?{urlencode(query)}"
        return f"{base}{self._config.verify_email_path}?{urlencode({'code': code})}"

    def send_code_email(
        self,
        code_type: CodeType,
        email: str,
        caller_state: str | None,
        expires_at: datetime,
        hooks: AuthHooks | None = None,
    ) -> GeneratedCode:
        """
        Replace any outstanding code for the address and email a new one.

        The user lookup and the invalidation are independent, so they run
        concurrently. Both finish before the new code is minted.

        Raises:
            UserNotFoundError: If no user owns the email.
            EmailGatewayError: If delivery fails. The code stays persisted.
        """
        logger.debug(f"Invalidating existing {code_type.value} codes and getting user by email")
        with ThreadPoolExecutor(max_workers=2) as executor:
            user_future = executor.submit(self._storage.get_user_by_email, email, logger, True)
            invalidate_future = executor.submit(self.invalidate_outstanding, code_type, email)
            invalidate_future.result()
            user_future.result()

        verification = self.generate(code_type, email, caller_state, expires_at)
        run_hooks(hooks, "post_generate_code", verification)

        link = self.build_link(code_type, verification.code, caller_state)
        self._sender.send_code(code_type.value, email, link)
        logger.info(f"Sent {code_type.value} code to {obfuscate_email(email)}")
        run_hooks(hooks, "post_send_code", verification)

        return verification

    def send_verification_code_email(
        self, email: str, hooks: AuthHooks | None = None
    ) -> GeneratedCode:
        """Email a new address-verification code."""
        expires_at = expires_after(
            self._clock(), minutes=self._config.verification_code_expiry_minutes
        )
        return self.send_code_email(CodeType.VERIFICATION, email, None, expires_at, hooks)

    def send_login_code_email(
        self, email: str, caller_state: str, hooks: AuthHooks | None = None
    ) -> GeneratedCode:
        """Email a new login code bound to the caller's state."""
        expires_at = expires_after(self._clock(), minutes=self._config.login_code_expiry_minutes)
        return self.send_code_email(CodeType.LOGIN, email, caller_state, expires_at, hooks)
