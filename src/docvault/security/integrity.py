"""HMAC integrity checks over client-encrypted sensitive fields."""

import hashlib
import hmac
from typing import Optional

from ..core.exceptions import ConfigurationError


class IntegrityGuard:
    """Signs and verifies values with the shared application key.

    The client encrypts card number and CVV before sending them and attaches
    ``HMAC-SHA256(key, ciphertext)`` as hex. The server never decrypts; it only
    checks that the ciphertext it is about to persist is the one that was signed.
    """

    def __init__(self, key: Optional[str]):
        if not key:
            raise ConfigurationError("ENCRYPTION_KEY is not configured")
        self._key = key.encode("utf-8")

    def sign(self, value: str) -> str:
        return hmac.new(self._key, value.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, value: str, hmac_hex: Optional[str]) -> bool:
        if not isinstance(value, str) or not isinstance(hmac_hex, str) or not hmac_hex:
            return False
        expected = self.sign(value)
        # hex digests compare case-insensitively
        return hmac.compare_digest(expected.encode("ascii"), hmac_hex.lower().encode("utf-8"))
