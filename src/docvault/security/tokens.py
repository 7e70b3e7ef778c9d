"""Stateless HMAC-signed ephemeral tokens.

Wire format::

    base64( json_payload + "." + hex(HMAC-SHA256(secret, json_payload)) )

``json_payload`` carries the caller's fields plus ``ts`` (issue time, epoch
milliseconds) and ``exp`` (ttl in minutes). Verification recomputes the HMAC
over the exact payload bytes found in the token, so the signer and verifier
never need to agree on a JSON canonical form.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Optional

from ..core.exceptions import ConfigurationError

DEFAULT_EXPIRY_MINUTES = 10
PUBLIC_QR_ROLE = "public_qr"
PUBLIC_QR_CONTENT_ROLE = "public_qr_content"

_RESERVED = ("ts", "exp")


class TokenSigner:
    """Issues and verifies signed ephemeral tokens with a server-held secret."""

    def __init__(self, secret: Optional[str], clock: Callable[[], float] = time.time):
        if not secret:
            raise ConfigurationError("JWT_SECRET is not configured")
        self._secret = secret.encode("utf-8")
        self._clock = clock

    def _sign(self, payload: bytes) -> str:
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def issue(self, data: Dict[str, Any], ttl_minutes: float = DEFAULT_EXPIRY_MINUTES) -> str:
        """Return a signed token carrying ``data`` that expires after ``ttl_minutes``."""
        payload = {k: v for k, v in data.items() if k not in _RESERVED}
        payload["ts"] = self._now_ms()
        payload["exp"] = ttl_minutes

        payload_str = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        signature = self._sign(payload_str.encode("utf-8"))
        return base64.b64encode(f"{payload_str}.{signature}".encode("utf-8")).decode("ascii")

    def verify(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Return the token's payload (without ``ts``/``exp``) or ``None``.

        Malformed, forged and expired tokens all yield ``None``; callers must
        not try to tell them apart.
        """
        if not token or not isinstance(token, str):
            return None

        try:
            raw = base64.b64decode(token.encode("ascii"), validate=True)
            decoded = raw.decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            return None
        # reject non-canonical encodings (altered padding bits decode to the same bytes)
        if base64.b64encode(raw).decode("ascii") != token:
            return None

        payload_str, sep, signature = decoded.rpartition(".")
        if not sep or not payload_str or not signature:
            return None

        expected = self._sign(payload_str.encode("utf-8"))
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            return None

        try:
            data = json.loads(payload_str)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        created = data.get("ts")
        ttl = data.get("exp")
        if not isinstance(created, (int, float)) or not isinstance(ttl, (int, float)):
            return None
        if self._now_ms() - created > ttl * 60 * 1000:
            return None

        return {k: v for k, v in data.items() if k not in _RESERVED}


def issue_signup_key(signer: TokenSigner, mobile: str, ttl_minutes: float = DEFAULT_EXPIRY_MINUTES) -> str:
    """Token bridging the identity check and the signup call."""
    return signer.issue({"mobile": mobile}, ttl_minutes)


def verify_signup_key(signer: TokenSigner, key: Optional[str]) -> Optional[str]:
    """Return the mobile number the signup key was issued for, or None."""
    data = signer.verify(key)
    if not data or not isinstance(data.get("mobile"), str):
        return None
    return data["mobile"]
