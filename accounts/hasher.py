"""
Password hashing with a cached comparison.

bcrypt is deliberately slow. Comparison results are cached per
(secret, digest) pair so that retries and polling against the same
credential do not pay the hashing cost again within the TTL.
"""

import hashlib
import logging

import bcrypt

from accounts.ports import SecretCache
from accounts.validation import PASSWORD_MAX_LENGTH

logger = logging.getLogger(__name__)


class SecretHasher:
    """bcrypt hashing and cached equality checks."""

    def __init__(self, cache: SecretCache, rounds: int = 10, cache_ttl_seconds: int = 300):
        self._cache = cache
        self.rounds = rounds
        self.cache_ttl_seconds = cache_ttl_seconds

    def hash(self, secret: str) -> str:
        """Hash a secret using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(secret.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def compare(self, secret: str | None, digest: str | None) -> bool:
        """
        Check a secret against a bcrypt digest.

        Never raises for bad input: a missing secret or digest, or a
        malformed digest, compares False.
        """
        return bool(
            self._cache.get(
                self._cache_key(secret, digest),
                lambda: self._compare_uncached(secret, digest),
                self.cache_ttl_seconds,
            )
        )

    @staticmethod
    def _cache_key(secret: str | None, digest: str | None) -> str:
        # Keyed on the exact pair; hashed so plaintext never lands in the cache
        pair = f"{secret}:{digest}"
        return hashlib.sha256(pair.encode("utf-8")).hexdigest()

    def _compare_uncached(self, secret: str | None, digest: str | None) -> bool:
        if not secret or not digest:
            return False
        encoded = secret.encode("utf-8")
        if len(encoded) > PASSWORD_MAX_LENGTH:
            # Longer secrets are refused at registration, so none can match
            logger.info(f"Rejected a secret over {PASSWORD_MAX_LENGTH} bytes")
            return False
        try:
            return bcrypt.checkpw(encoded, digest.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Found a malformed secret hash in storage: {digest[:7]!r}...; {e}")
            return False
