"""Typed exceptions for account and authentication failures.

Every error carries an HTTP-style status and an optional machine-readable
code so an outer HTTP layer can map it without inspecting messages.
"""

from typing import Any


class AccountsError(Exception):
    """Base class for account/authentication errors."""

    status: int = 500
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        obstructions: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.obstructions: list[dict[str, Any]] = list(obstructions or [])


class BadRequestError(AccountsError):
    """The request cannot be honored as submitted."""

    status = 400


class UnauthorizedError(AccountsError):
    """Credentials were supplied but are not valid."""

    status = 401


class ForbiddenError(AccountsError):
    """The caller is known but not permitted to proceed."""

    status = 403


class NotFoundError(AccountsError):
    """The requested resource does not exist."""

    status = 404


class DuplicateResourceError(AccountsError):
    """The resource is already claimed by someone else."""

    status = 409
    default_code = "DUPLICATE"


class StepNotImplementedError(AccountsError):
    """The requested authentication step is declared but not available."""

    status = 501


class UserNotFoundError(NotFoundError):
    """
    Email not associated with any user.

    Note: This does reveal that the email is unregistered. Whether to fold
    it into a generic rejection is left to the HTTP layer.
    """


class InvalidPasswordError(UnauthorizedError):
    """Password did not match the stored hash."""


class UserBannedError(ForbiddenError):
    """User account is banned. Login not permitted."""

    default_code = "BANNED"


class UserDataInvalidError(BadRequestError):
    """Registration payload failed validation. See obstructions."""

    default_code = "USER_DATA_INVALID"


class CodeNotFoundError(BadRequestError):
    """No verification code matches the supplied value."""

    default_code = "CODE-NOT-FOUND"


class CodeConsumedError(BadRequestError):
    """Verification code was already redeemed."""

    default_code = "CODE_CONSUMED"


class ResendCodeError(BadRequestError):
    """
    Code can no longer be redeemed.

    The client's only remedy is to request a new code.
    """

    default_code = "RESEND"


class CodeInvalidatedError(ResendCodeError):
    """Code was superseded by a newer one or otherwise invalidated."""


class CodeExpiredError(ResendCodeError):
    """Code is past its expiry."""


class StateMismatchError(ResendCodeError):
    """Caller state differs from the one the code was issued for."""
