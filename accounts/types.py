"""Pydantic models for the accounts domain."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class LoginMethod(str, Enum):
    """How a user normally signs in."""

    EMAIL = "email"
    PASSWORD = "password"


class CodeType(str, Enum):
    """Purpose of a one-time verification code."""

    LOGIN = "login"
    VERIFICATION = "verification"


class AuthnType(str, Enum):
    """Authentication step types."""

    EMAIL = "email"
    PASSWORD = "password"
    CODE = "code"
    TOTP = "totp"


class User(BaseModel):
    """A registered user of the system."""

    id: UUID
    name: str
    password_hash: str | None = None  # None means email-only login
    banned: bool = False
    login_method: LoginMethod
    second_factor_enabled: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class UserWithEmail(User):
    """A user joined with the login email it was looked up by."""

    email: str
    verified_at: datetime | None = None
    login_email_created_at: datetime


class LoginEmail(BaseModel):
    """An email address a user can log in with."""

    email: str
    user_id: UUID
    verified_at: datetime | None = None
    created_at: datetime


class VerificationCode(BaseModel):
    """
    A persisted one-time code.

    Only the digest of the raw code is stored. Expiry is derived when the
    code is read; it is never written as a state change.
    """

    code_digest: bytes
    type: CodeType
    email: str
    caller_state: str | None = None
    created_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None
    invalidated_at: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        """True if the code is neither consumed, invalidated nor expired."""
        return (
            self.consumed_at is None
            and self.invalidated_at is None
            and self.expires_at >= now
        )


class GeneratedCode(VerificationCode):
    """A freshly minted code. ``code`` is the raw secret, shown only once."""

    code: str = Field(..., description="Hex-encoded raw code")


class Session(BaseModel):
    """A long-lived login session, identified by its refresh secret."""

    id: UUID
    user_id: UUID
    user_agent: str | None = None
    ip: str | None = None
    refresh_digest: bytes
    invalidated_at: datetime | None = None
    created_at: datetime
    expires_at: datetime


class SessionToken(BaseModel):
    """A short-lived access credential belonging to a session."""

    token_digest: bytes
    session_id: UUID
    created_at: datetime
    expires_at: datetime


# Authentication responses


class IssuedSession(BaseModel):
    """Raw session credentials, returned to the client exactly once."""

    t: Literal["session"] = "session"
    session_id: UUID
    token: str = Field(..., description="Access secret (short-lived)")
    refresh: str = Field(..., description="Refresh secret (long-lived)")


class Step(BaseModel):
    """An additional step the client must complete to obtain a session."""

    t: Literal["step"] = "step"
    step: AuthnType
    code: str
    state: str


AuthnResponse = Union[Step, IssuedSession]


# Authentication requests


class EmailAuthnRequest(BaseModel):
    """Request a login code by email."""

    type: Literal["email"] = "email"
    email: EmailStr
    state: str


class PasswordAuthnRequest(BaseModel):
    """Log in with email and password."""

    type: Literal["password"] = "password"
    email: EmailStr
    password: str
    state: str


class CodeAuthnRequest(BaseModel):
    """Redeem an emailed or second-factor code."""

    type: Literal["code"] = "code"
    code: str
    state: str


class TotpAuthnRequest(BaseModel):
    """Complete a second factor with a TOTP value."""

    type: Literal["totp"] = "totp"
    code: str
    state: str
    secret: str


AuthnRequest = Annotated[
    Union[EmailAuthnRequest, PasswordAuthnRequest, CodeAuthnRequest, TotpAuthnRequest],
    Field(discriminator="type"),
]


# Registration and email verification


class NewUser(BaseModel):
    """Registration payload. A missing password means email-only login."""

    name: str
    email: str
    password: str | None = None
    password_confirmation: str | None = None
    id: UUID | None = None


class ResendByCode(BaseModel):
    """Resend a verification email, identified by a prior code."""

    t: Literal["code"] = "code"
    code: str


class ResendByEmail(BaseModel):
    """Resend a verification email to an address of the logged-in user."""

    t: Literal["email"] = "email"
    email: str


ResendRequest = Annotated[Union[ResendByCode, ResendByEmail], Field(discriminator="t")]


# Security audit


class SecurityEvent(Enum):
    """Authentication events worth auditing."""

    LOGIN_CODE_SENT = "login_code_sent"
    VERIFICATION_CODE_SENT = "verification_code_sent"
    PASSWORD_FAILED = "password_failed"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    CODE_CONSUMED = "code_consumed"
    CODE_REJECTED = "code_rejected"
    LOGIN_REJECTED = "login_rejected"
    SESSION_CREATED = "session_created"
    USER_CREATED = "user_created"
    EMAIL_VERIFIED = "email_verified"


class SecurityEventRecord(BaseModel):
    """One audit row as kept by an in-process event log."""

    event: SecurityEvent
    email: str | None = None
    user_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime
