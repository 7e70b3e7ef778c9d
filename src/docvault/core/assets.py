"""Image assets (avatars and the like) kept unencrypted in primary object storage."""

import logging
import mimetypes
import os
from typing import Iterator, Optional, Tuple

from .config import UploadPolicy
from .exceptions import AuthorizationError, NotFoundError, ValidationError
from ..security.crypto import ByteSource, iter_chunks
from ..storage.objects import ObjectStore, normalize_object_path, object_path_for
from ..storage.signed_urls import LocalSignedURLIssuer, SignedURLIssuer

logger = logging.getLogger(__name__)


class AssetService:
    def __init__(
        self,
        object_store: ObjectStore,
        url_issuer: SignedURLIssuer,
        policy: Optional[UploadPolicy] = None,
        ttl_minutes: int = 15,
    ):
        self.object_store = object_store
        self.url_issuer = url_issuer
        self.policy = policy or UploadPolicy()
        self.ttl_minutes = ttl_minutes

    def upload(
        self, owner_id: str, stream: ByteSource, filename: str, mime_type: Optional[str], size: Optional[int] = None
    ) -> Tuple[str, str]:
        """Store an image under ``assets/<owner>/`` and return ``(path, signed_url)``."""
        extension = os.path.splitext(filename or "")[1].lower()
        if not self.policy.is_image(extension):
            raise ValidationError(f"Unsupported image type. Allowed: {', '.join(self.policy.img_formats)}")
        limit = self.policy.max_img_size
        if size is not None and size > limit:
            raise ValidationError(f"File exceeds the {limit // (1024 * 1024)}MB limit")

        def bounded() -> Iterator[bytes]:
            total = 0
            for chunk in iter_chunks(stream):
                total += len(chunk)
                if total > limit:
                    raise ValidationError(f"File exceeds the {limit // (1024 * 1024)}MB limit")
                yield chunk

        path = self.object_store.put(
            bounded(), object_path_for("assets", owner_id, filename), mime_type or "application/octet-stream"
        )
        return path, self.url_issuer.issue(path, self.ttl_minutes)

    def url_for(self, owner_id: str, path: str) -> str:
        path = normalize_object_path(path)
        if not path.startswith(f"assets/{owner_id}/"):
            raise AuthorizationError("Permission denied")
        return self.url_issuer.issue(path, self.ttl_minutes)

    def open_signed(self, path: str, expires: int, sig: str) -> Tuple[str, Iterator[bytes]]:
        """Serve a locally signed URL: returns ``(mime_type, stream)``."""
        if not isinstance(self.url_issuer, LocalSignedURLIssuer):
            raise NotFoundError("Not found")
        if not self.url_issuer.verify(path, expires, sig):
            raise AuthorizationError("Invalid or expired link")
        mime_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return mime_type, self.object_store.open(path)
