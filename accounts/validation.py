"""Email and password rules applied at registration.

Validators return a list of obstructions (``{"code", "text", "params"}``)
rather than raising, so a caller can report every problem at once.
"""

import re
from typing import Any

from email_validator import EmailNotValidError, validate_email as check_email

from accounts.types import NewUser

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72  # bcrypt ignores bytes beyond 72

# (pattern, description) pairs; each must match at least twice
_PASSWORD_CLASSES = [
    (re.compile(r"[a-z]"), "lower-case letters"),
    (re.compile(r"[A-Z]"), "upper-case letters"),
    (re.compile(r"[0-9]"), "numbers"),
    (re.compile(r"[^a-zA-Z0-9]"), "non alpha-numeric characters"),
]
_PASSWORD_CLASS_MINIMUM = 2

Obstruction = dict[str, Any]


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


def obfuscate_email(email: str) -> str:
    """Shorten an address for log lines: ``alice@x.com`` -> ``ali...@x.com``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return email[:3] + "..."
    return f"{local[:3]}...@{domain}"


def validate_email(email: str) -> list[Obstruction]:
    """Check the address is syntactically valid. No DNS lookups."""
    try:
        check_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        return [
            {
                "code": "Invalid Email",
                "text": "The email address you've provided doesn't appear valid "
                "according to our standards.",
                "params": {"input": email, "reason": str(e)},
            }
        ]
    return []


def validate_password_length(password: str) -> list[Obstruction]:
    obstructions = []
    if len(password) < PASSWORD_MIN_LENGTH:
        obstructions.append(
            {"code": "Password", "text": f"Must be at least {PASSWORD_MIN_LENGTH} characters long"}
        )
    if len(password.encode("utf-8")) > PASSWORD_MAX_LENGTH:
        obstructions.append(
            {"code": "Password", "text": f"Cannot exceed {PASSWORD_MAX_LENGTH} characters"}
        )
    return obstructions


def validate_password_entropy(password: str) -> list[Obstruction]:
    obstructions = []
    for pattern, description in _PASSWORD_CLASSES:
        if len(pattern.findall(password)) < _PASSWORD_CLASS_MINIMUM:
            obstructions.append(
                {
                    "code": "Password",
                    "text": f"Must have at least {_PASSWORD_CLASS_MINIMUM} {description}",
                }
            )
    return obstructions


def validate_new_user(new_user: NewUser) -> list[Obstruction]:
    """All obstructions for a registration payload."""
    obstructions = validate_email(normalize_email(new_user.email))

    if new_user.password:
        obstructions += validate_password_length(new_user.password)
        obstructions += validate_password_entropy(new_user.password)

        if not new_user.password_confirmation:
            obstructions.append(
                {
                    "code": "Missing Password Confirmation",
                    "text": "You must fill out the 'Password confirmation' "
                    "(password_confirmation) field",
                }
            )
        elif new_user.password != new_user.password_confirmation:
            obstructions.append(
                {
                    "code": "Invalid Password Confirmation",
                    "text": "The password confirmation you passed doesn't match the "
                    "password you've specified",
                }
            )

    return obstructions
