"""Randomness and digest capabilities injected into the services.

Services never call ``secrets`` or ``hashlib`` directly, so tests can
substitute deterministic fakes.
"""

import hashlib
import re
import secrets

SECRET_BYTES = 32

# Exactly the form RandomSource secrets are handed out in: lowercase hex
_RAW_HEX = re.compile(rf"[0-9a-f]{{{SECRET_BYTES * 2}}}")


class RandomSource:
    """Cryptographically secure random bytes."""

    def token_bytes(self, length: int = SECRET_BYTES) -> bytes:
        return secrets.token_bytes(length)


class TokenDigester:
    """SHA-256 digests for codes and session secrets."""

    def digest(self, raw: bytes) -> bytes:
        return hashlib.sha256(raw).digest()

    def digest_hex(self, raw_hex: str) -> bytes:
        """
        Digest a hex-encoded secret as handed back by a client.

        Raises:
            ValueError: If the value is not exactly the 64-character
                lowercase hex form.
        """
        if not _RAW_HEX.fullmatch(raw_hex):
            raise ValueError("Secret is not 64 lowercase hex characters")
        return self.digest(bytes.fromhex(raw_hex))
