"""Account registration, email verification and multi-step authentication."""

from accounts.config import AccountsConfig
from accounts.exceptions import (
    AccountsError,
    BadRequestError,
    CodeConsumedError,
    CodeExpiredError,
    CodeInvalidatedError,
    CodeNotFoundError,
    DuplicateResourceError,
    InvalidPasswordError,
    ResendCodeError,
    StateMismatchError,
    StepNotImplementedError,
    UserBannedError,
    UserDataInvalidError,
    UserNotFoundError,
)
from accounts.factory import Accounts, build_accounts, create_accounts
from accounts.hooks import AuthHooks
from accounts.types import (
    AuthnRequest,
    AuthnResponse,
    CodeType,
    IssuedSession,
    NewUser,
    ResendRequest,
    SecurityEvent,
    Step,
)
