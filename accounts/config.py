"""Accounts engine configuration."""

from pydantic import BaseModel, Field


class AccountsConfig(BaseModel):
    """
    Accounts engine configuration.

    Credential lifetimes have no defaults: the host application decides
    them. Durations are in their natural units (minutes for short-lived
    credentials, hours for sessions).
    """

    # Credential lifetimes
    session_expiry_hours: int = Field(
        ...,
        description="Session (refresh secret) lifetime in hours",
        ge=1,
    )
    session_token_expiry_minutes: int = Field(
        ...,
        description="Access token lifetime in minutes",
        ge=1,
    )
    verification_code_expiry_minutes: int = Field(
        ...,
        description="How long email verification codes remain valid",
        ge=1,
    )
    login_code_expiry_minutes: int = Field(
        ...,
        description="How long emailed login codes remain valid",
        ge=1,
    )

    # Password hashing
    bcrypt_rounds: int = Field(
        default=10,
        description="bcrypt cost factor for new password hashes",
        ge=4,
        le=31,
    )
    compare_cache_ttl_seconds: int = Field(
        default=300,
        description="How long password comparison results are cached",
        ge=1,
    )

    # Links embedded in code emails
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for verification and login links",
    )
    login_path: str = Field(
        default="/login",
        description="Path that redeems emailed login codes",
    )
    verify_email_path: str = Field(
        default="/verify-email",
        description="Path that redeems email verification codes",
    )
