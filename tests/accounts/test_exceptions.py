"""Tests for error statuses and codes."""

import pytest

from accounts.exceptions import (
    AccountsError,
    CodeConsumedError,
    CodeExpiredError,
    CodeNotFoundError,
    DuplicateResourceError,
    InvalidPasswordError,
    StepNotImplementedError,
    UserBannedError,
    UserDataInvalidError,
    UserNotFoundError,
)


@pytest.mark.parametrize(
    "error_class, status, code",
    [
        (UserNotFoundError, 404, None),
        (InvalidPasswordError, 401, None),
        (UserBannedError, 403, "BANNED"),
        (CodeNotFoundError, 400, "CODE-NOT-FOUND"),
        (CodeConsumedError, 400, "CODE_CONSUMED"),
        (CodeExpiredError, 400, "RESEND"),
        (UserDataInvalidError, 400, "USER_DATA_INVALID"),
        (DuplicateResourceError, 409, "DUPLICATE"),
        (StepNotImplementedError, 501, None),
    ],
)
def test_status_and_code(error_class, status, code):
    err = error_class("message")
    assert isinstance(err, AccountsError)
    assert err.status == status
    assert err.code == code
    assert err.message == "message"
    assert str(err) == "message"


def test_explicit_code_overrides_default():
    assert DuplicateResourceError("m", code="OTHER").code == "OTHER"


def test_obstructions_default_empty():
    assert UserDataInvalidError("m").obstructions == []
    obstruction = {"code": "Password", "text": "t"}
    assert UserDataInvalidError("m", obstructions=[obstruction]).obstructions == [obstruction]
