"""Tests for VerificationCodeService - code lifecycle and delivery."""

import hashlib
import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from accounts.codes import VerificationCodeService
from accounts.crypto import RandomSource
from accounts.exceptions import (
    CodeConsumedError,
    CodeExpiredError,
    CodeInvalidatedError,
    CodeNotFoundError,
    ResendCodeError,
    StateMismatchError,
    UserNotFoundError,
)
from accounts.hooks import AuthHooks
from accounts.types import CodeType, GeneratedCode
from clients.email_client import EmailGatewayError


EMAIL = "alice@example.com"


@pytest.fixture
def expires_at(clock):
    return clock() + timedelta(minutes=10)


class TestGenerate:
    """Minting and persisting codes."""

    def test_returns_raw_hex_code_of_32_bytes(self, codes, expires_at):
        """Raw code is 64 hex characters."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        assert isinstance(generated, GeneratedCode)
        assert len(generated.code) == 64
        assert bytes.fromhex(generated.code)

    def test_stores_only_sha256_digest(self, codes, storage, expires_at):
        """Stored record is keyed by sha256 of the raw bytes and has no raw code."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        digest = hashlib.sha256(bytes.fromhex(generated.code)).digest()
        assert generated.code_digest == digest
        stored = storage.verification_codes[digest]
        assert not hasattr(stored, "code")
        assert stored.caller_state == "s1"
        assert stored.consumed_at is None
        assert stored.invalidated_at is None

    def test_uses_injected_random_source(self, storage, config, sender, clock, expires_at):
        """Random bytes come from the injected source."""
        random = Mock(spec=RandomSource)
        random.token_bytes.return_value = b"\x01" * 32
        service = VerificationCodeService(storage, config, sender, random=random, clock=clock)

        generated = service.generate(CodeType.VERIFICATION, EMAIL, None, expires_at)

        assert generated.code == "01" * 32


class TestInvalidate:
    """At most one valid code per (type, email)."""

    def test_replace_leaves_single_valid_code(self, codes, storage, expires_at):
        """Each replace invalidates the previous code."""
        for _ in range(3):
            codes.replace(CodeType.LOGIN, EMAIL, "s1", expires_at)

        assert len(storage.valid_codes_for(CodeType.LOGIN, EMAIL)) == 1

    def test_invalidate_is_scoped_to_type_and_email(self, codes, storage, expires_at):
        """Other types and other addresses are untouched."""
        codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        codes.generate(CodeType.VERIFICATION, EMAIL, None, expires_at)
        codes.generate(CodeType.LOGIN, "bob@example.com", "s2", expires_at)

        assert codes.invalidate_outstanding(CodeType.LOGIN, EMAIL) == 1

        assert storage.valid_codes_for(CodeType.LOGIN, EMAIL) == []
        assert len(storage.valid_codes_for(CodeType.VERIFICATION, EMAIL)) == 1
        assert len(storage.valid_codes_for(CodeType.LOGIN, "bob@example.com")) == 1

    def test_consumed_codes_are_not_invalidated(self, codes, storage, expires_at):
        """Consumed codes keep invalidated_at unset."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        codes.consume(generated.code, "s1")

        assert codes.invalidate_outstanding(CodeType.LOGIN, EMAIL) == 0
        assert storage.verification_codes[generated.code_digest].invalidated_at is None


class TestConsume:
    """Ordered checks and exactly-once redemption."""

    def test_consume_returns_pre_consumption_record(self, codes, storage, expires_at, clock):
        """Returned record is unconsumed; stored record is consumed now."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        result = codes.consume(generated.code, "s1")

        assert result.consumed_at is None
        assert result.email == EMAIL
        assert storage.verification_codes[generated.code_digest].consumed_at == clock()

    def test_second_consume_raises_consumed(self, codes, expires_at):
        """Codes are single use."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        codes.consume(generated.code, "s1")

        with pytest.raises(CodeConsumedError) as exc_info:
            codes.consume(generated.code, "s1")
        assert exc_info.value.code == "CODE_CONSUMED"

    def test_unknown_code_raises_not_found(self, codes):
        """Well-formed code with no record."""
        with pytest.raises(CodeNotFoundError) as exc_info:
            codes.consume("ab" * 32, "s1")
        assert exc_info.value.code == "CODE-NOT-FOUND"

    def test_non_hex_code_raises_not_found(self, codes):
        """Malformed input matches nothing."""
        with pytest.raises(CodeNotFoundError):
            codes.consume("not-hex!", "s1")

    @pytest.mark.parametrize(
        "reformat",
        [
            lambda c: " ".join(c[i : i + 2] for i in range(0, len(c), 2)),
            lambda c: c.upper(),
            lambda c: f" {c}\n",
            lambda c: c[:-2],
        ],
        ids=["spaced", "uppercase", "padded", "truncated"],
    )
    def test_reformatted_code_does_not_redeem(self, codes, storage, expires_at, reformat):
        """Only the exact hex form handed out is accepted."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        with pytest.raises(CodeNotFoundError):
            codes.consume(reformat(generated.code), "s1")

        assert codes.consume(generated.code, "s1").email == EMAIL

    def test_invalidated_code_raises_resend(self, codes, expires_at):
        """Superseded code asks for a new one."""
        old = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        codes.replace(CodeType.LOGIN, EMAIL, "s1", expires_at)

        with pytest.raises(CodeInvalidatedError) as exc_info:
            codes.consume(old.code, "s1")
        assert exc_info.value.code == "RESEND"

    def test_expired_code_raises_resend(self, codes, expires_at, clock):
        """Expiry is checked on read."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        clock.advance(minutes=11)

        with pytest.raises(CodeExpiredError) as exc_info:
            codes.consume(generated.code, "s1")
        assert exc_info.value.code == "RESEND"

    def test_code_valid_at_exact_expiry(self, codes, expires_at, clock):
        """expires_at itself is still inside the window."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        clock.advance(minutes=10)

        assert codes.consume(generated.code, "s1").email == EMAIL

    def test_state_mismatch_raises_resend(self, codes, expires_at):
        """Caller state must match the issuing state."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        with pytest.raises(StateMismatchError):
            codes.consume(generated.code, "other")

    def test_failed_state_check_does_not_consume(self, codes, storage, expires_at):
        """A rejected attempt leaves the code redeemable."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        with pytest.raises(StateMismatchError):
            codes.consume(generated.code, "other")

        assert storage.verification_codes[generated.code_digest].consumed_at is None
        codes.consume(generated.code, "s1")

    def test_consumed_checked_before_expiry(self, codes, expires_at, clock):
        """A consumed code reports consumed even once expired."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        codes.consume(generated.code, "s1")
        clock.advance(hours=1)

        with pytest.raises(CodeConsumedError):
            codes.consume(generated.code, "s1")

    def test_verification_code_has_no_state(self, codes, expires_at):
        """Verification codes are redeemed with state None."""
        generated = codes.generate(CodeType.VERIFICATION, EMAIL, None, expires_at)

        assert codes.consume(generated.code, None).type == CodeType.VERIFICATION

    def test_lost_race_raises_consumed(self, codes, storage, expires_at):
        """Compare-and-set failure is reported as already consumed."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        storage.consume_verification_code = Mock(return_value=False)

        with pytest.raises(CodeConsumedError):
            codes.consume(generated.code, "s1")

    def test_concurrent_consume_succeeds_exactly_once(self, codes, expires_at):
        """Many threads racing on one code: one winner."""
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)
        barrier = threading.Barrier(8)
        successes = []
        failures = []

        def attempt():
            barrier.wait()
            try:
                successes.append(codes.consume(generated.code, "s1"))
            except CodeConsumedError as e:
                failures.append(e)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert len(failures) == 7

    def test_resend_errors_share_base(self):
        """Clients can catch every resend case at once."""
        assert issubclass(CodeInvalidatedError, ResendCodeError)
        assert issubclass(CodeExpiredError, ResendCodeError)
        assert issubclass(StateMismatchError, ResendCodeError)


class TestLookup:
    """Read-only lookups."""

    def test_lookup_does_not_consume(self, codes, storage, expires_at):
        generated = codes.generate(CodeType.LOGIN, EMAIL, "s1", expires_at)

        found = codes.lookup(generated.code)

        assert found.email == EMAIL
        assert storage.verification_codes[generated.code_digest].consumed_at is None

    def test_missing_returns_none(self, codes):
        assert codes.lookup("ab" * 32) is None
        assert codes.lookup("zz") is None

    def test_missing_raises_when_asked(self, codes):
        with pytest.raises(CodeNotFoundError):
            codes.lookup("ab" * 32, throw_if_missing=True)
        with pytest.raises(CodeNotFoundError):
            codes.lookup("zz", throw_if_missing=True)


class TestBuildLink:
    """Links embedded in code emails."""

    def test_login_link_carries_code_and_state(self, codes):
        link = codes.build_link(CodeType.LOGIN, "abcd", "s1")
        assert link == "https://app.example.com/login?code=abcd&state=s1"

    def test_login_link_without_state(self, codes):
        link = codes.build_link(CodeType.LOGIN, "abcd", None)
        assert link == "https://app.example.com/login?code=abcd"

    def test_verification_link(self, codes):
        link = codes.build_link(CodeType.VERIFICATION, "abcd", None)
        assert link == "https://app.example.com/verify-email?code=abcd"


class TestSendCodeEmail:
    """Invalidate, mint, deliver."""

    def test_sends_login_code_for_registered_user(
        self, codes, make_user, sender, last_sent_code, clock
    ):
        """Delivered link redeems the returned code."""
        make_user()

        generated = codes.send_login_code_email(EMAIL, "s1")

        sender.send_code.assert_called_once()
        assert sender.send_code.call_args.args[:2] == ("login", EMAIL)
        assert last_sent_code() == (generated.code, "s1")
        assert generated.expires_at == clock() + timedelta(minutes=10)

    def test_verification_code_uses_its_own_lifetime(self, codes, make_user, clock):
        make_user()

        generated = codes.send_verification_code_email(EMAIL)

        assert generated.type == CodeType.VERIFICATION
        assert generated.caller_state is None
        assert generated.expires_at == clock() + timedelta(minutes=60)

    def test_previous_codes_invalidated(self, codes, make_user, storage):
        make_user()
        first = codes.send_login_code_email(EMAIL, "s1")
        second = codes.send_login_code_email(EMAIL, "s2")

        valid = storage.valid_codes_for(CodeType.LOGIN, EMAIL)
        assert [v.code_digest for v in valid] == [second.code_digest]
        assert storage.verification_codes[first.code_digest].invalidated_at is not None

    def test_unknown_email_raises_and_sends_nothing(self, codes, sender, storage):
        with pytest.raises(UserNotFoundError):
            codes.send_login_code_email("nobody@example.com", "s1")

        sender.send_code.assert_not_called()
        assert storage.verification_codes == {}

    def test_delivery_failure_propagates_and_keeps_code(self, codes, make_user, sender, storage):
        """Gateway failure surfaces; the minted code remains stored."""
        make_user()
        sender.send_code.side_effect = EmailGatewayError("Gateway error: down")

        with pytest.raises(EmailGatewayError):
            codes.send_login_code_email(EMAIL, "s1")

        assert len(storage.valid_codes_for(CodeType.LOGIN, EMAIL)) == 1

    def test_hooks_run_around_delivery(self, codes, make_user, sender):
        """post_generate_code runs before sending, post_send_code after."""
        make_user()
        calls = []
        sender.send_code.side_effect = lambda *args: calls.append("send")
        hooks = AuthHooks()
        hooks.subscribe("post_generate_code", lambda v: calls.append("generated"))
        hooks.subscribe("post_send_code", lambda v: calls.append("sent"))

        codes.send_login_code_email(EMAIL, "s1", hooks)

        assert calls == ["generated", "send", "sent"]
