"""Time-boxed read URLs for objects in primary storage."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Callable, Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import ConfigurationError, UpstreamStorageError
from .blobstore import make_s3_client
from .objects import normalize_object_path

DEFAULT_TTL_MINUTES = 15

logger = logging.getLogger(__name__)


class SignedURLIssuer:
    def issue(self, blob_path: str, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> str:
        raise NotImplementedError


class S3SignedURLIssuer(SignedURLIssuer):
    """Presigned ``get_object`` URLs from boto3."""

    def __init__(self, bucket: str, client=None, region: str = "us-east-1", endpoint_url: Optional[str] = None):
        self.bucket = bucket
        self.client = client if client is not None else make_s3_client(region, endpoint_url)

    def issue(self, blob_path: str, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> str:
        key = f"objects/{normalize_object_path(blob_path)}"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl_minutes * 60),
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamStorageError(f"Failed to sign URL: {e}")


class LocalSignedURLIssuer(SignedURLIssuer):
    """
    HMAC-signed URLs served by the app's ``/files/signed/{path}`` route.

    The signature covers ``"{path}\\n{expires}"`` where ``expires`` is an epoch
    second; nothing is stored server-side.
    """

    def __init__(self, secret: Optional[str], base_url: str = "", clock: Callable[[], float] = time.time):
        if not secret:
            raise ConfigurationError("JWT_SECRET is not configured")
        self._secret = secret.encode("utf-8")
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, blob_path: str, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> str:
        path = normalize_object_path(blob_path)
        expires = int(self._clock()) + int(ttl_minutes * 60)
        sig = self._sign(path, expires)
        return f"{self.base_url}/files/signed/{quote(path)}?expires={expires}&sig={sig}"

    def verify(self, blob_path: str, expires: int, sig: str) -> bool:
        """True if ``sig`` was issued for this path and ``expires`` is in the future."""
        if not sig or expires < int(self._clock()):
            return False
        path = normalize_object_path(blob_path)
        return hmac.compare_digest(self._sign(path, int(expires)).encode("ascii"), sig.encode("utf-8"))
