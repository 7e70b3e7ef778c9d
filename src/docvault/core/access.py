"""
PIN-gated public access to a curated set of documents (QR access objects)

State machine for an anonymous visitor:
    Created -> Verified (scoped bearer token) -> ListingDocuments / FetchingDocument -> Expired

A bearer token names exactly one access object. Every call re-reads that
access object, so relinking documents takes effect for live tokens and a
deleted access object locks them out.
"""

from __future__ import annotations

import hmac
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

from .documents import DocumentService
from .exceptions import (
    AuthorizationError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .models import AccessObject, DocumentRecord
from ..database.models import AccessObjectModel
from ..security.tokens import PUBLIC_QR_CONTENT_ROLE, PUBLIC_QR_ROLE, TokenSigner
from ..storage.signed_urls import SignedURLIssuer

logger = logging.getLogger(__name__)

INVALID_SESSION = "Invalid or expired session"


def _log_scan_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        logger.warning("Failed to update scan count: %s", error)


class PinAttemptLimiter:
    """Hook consulted around PIN checks. The default allows everything."""

    def check(self, access_object_id: str, client_key: Optional[str] = None) -> None:
        """Raise RateLimitedError to refuse an attempt before the PIN is compared."""

    def record_failure(self, access_object_id: str, client_key: Optional[str] = None) -> None:
        pass

    def record_success(self, access_object_id: str, client_key: Optional[str] = None) -> None:
        pass


@dataclass
class PinVerification:
    token: str
    scan_update: Future


@dataclass
class DownloadGrant:
    url: str
    expires_in: int


class AccessGateway:
    """Owner management of access objects plus the anonymous PIN/bearer flow."""

    def __init__(
        self,
        db,
        documents: DocumentService,
        signer: TokenSigner,
        url_issuer: Optional[SignedURLIssuer] = None,
        limiter: Optional[PinAttemptLimiter] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_per_owner: Optional[int] = 20,
        public_base_url: str = "",
        token_ttl_minutes: int = 60,
        content_ttl_minutes: int = 15,
        signed_url_ttl_minutes: int = 15,
    ):
        self.access_objects = AccessObjectModel(db)
        self.documents = documents
        self.signer = signer
        self.url_issuer = url_issuer
        self.limiter = limiter or PinAttemptLimiter()
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="scan-count")
        self.max_per_owner = max_per_owner
        self.public_base_url = public_base_url.rstrip("/")
        self.token_ttl_minutes = token_ttl_minutes
        self.content_ttl_minutes = content_ttl_minutes
        self.signed_url_ttl_minutes = signed_url_ttl_minutes

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def create_access_object(self, owner_id: str, name: str, pin: str, document_ids: List[str]) -> AccessObject:
        """Persist a new access object; the PIN is stored as given."""
        access_object = AccessObject(owner_id=owner_id, name=name, pin=pin, document_ids=document_ids)
        created = self.access_objects.create(access_object, max_per_owner=self.max_per_owner)
        if created is None:
            raise ValidationError(f"QR code limit reached ({self.max_per_owner})")
        logger.info("Created access object %s with %d documents", created.access_object_id, len(created.document_ids))
        return created

    def list_for_owner(self, owner_id: str) -> List[AccessObject]:
        return self.access_objects.list_by_owner(owner_id)

    def _owned(self, owner_id: str, access_object_id: str) -> AccessObject:
        access_object = self.access_objects.get(access_object_id)
        if access_object is None:
            raise NotFoundError("QR not found")
        if access_object.owner_id != owner_id:
            raise AuthorizationError("Permission denied")
        return access_object

    def update_access_object(self, owner_id: str, access_object_id: str, update) -> AccessObject:
        """
        Apply a tagged update: ``access-object-rename`` (name) or
        ``access-object-relink`` (document_ids). The PIN is never touched.
        """
        self._owned(owner_id, access_object_id)
        op = getattr(update, "op", None)
        if op == "access-object-rename":
            if not update.name.strip():
                raise ValidationError("Name cannot be empty")
            self.access_objects.rename(access_object_id, update.name.strip())
        elif op == "access-object-relink":
            self.access_objects.relink(access_object_id, update.document_ids)
        else:
            raise ValidationError(f"Unsupported update '{op}'")
        return self.access_objects.get(access_object_id)

    def delete_access_object(self, owner_id: str, access_object_id: str) -> None:
        self._owned(owner_id, access_object_id)
        self.access_objects.delete(access_object_id)
        logger.info("Deleted access object %s", access_object_id)

    # ------------------------------------------------------------------
    # Anonymous flow
    # ------------------------------------------------------------------

    def verify_pin(self, access_object_id: str, supplied_pin: str, client_key: Optional[str] = None) -> PinVerification:
        access_object = self.access_objects.get(access_object_id)
        if access_object is None:
            raise NotFoundError("QR Code not found or expired")

        self.limiter.check(access_object_id, client_key)
        if not hmac.compare_digest(str(supplied_pin).encode("utf-8"), access_object.pin.encode("utf-8")):
            self.limiter.record_failure(access_object_id, client_key)
            logger.info("Incorrect PIN for access object %s", access_object_id)
            raise AuthorizationError("Incorrect MPIN")
        self.limiter.record_success(access_object_id, client_key)

        scan_update = self.executor.submit(self.access_objects.increment_scan_count, access_object_id)
        scan_update.add_done_callback(_log_scan_failure)
        token = self.signer.issue(
            {
                "accessObjectId": access_object.access_object_id,
                "ownerId": access_object.owner_id,
                "role": PUBLIC_QR_ROLE,
            },
            self.token_ttl_minutes,
        )
        return PinVerification(token=token, scan_update=scan_update)

    def _resolve(self, token: Optional[str], role: str = PUBLIC_QR_ROLE) -> Tuple[Dict, AccessObject]:
        claims = self.signer.verify(token)
        if not claims or claims.get("role") != role:
            raise UnauthorizedError(INVALID_SESSION)
        access_object = self.access_objects.get(claims.get("accessObjectId"))
        if access_object is None:
            raise NotFoundError("QR invalid")
        if access_object.owner_id != claims.get("ownerId"):
            raise UnauthorizedError(INVALID_SESSION)
        return claims, access_object

    def _linked(self, access_object: AccessObject, document_id: str) -> DocumentRecord:
        if not access_object.links(document_id):
            raise AuthorizationError("Document not accessible via this QR")
        record = self.documents.documents.get(access_object.owner_id, document_id)
        if record is None:
            raise NotFoundError("Document not found")
        return record

    def list_documents(self, token: Optional[str]) -> List[DocumentRecord]:
        """Linked documents in persisted order; ids that no longer resolve are skipped."""
        _, access_object = self._resolve(token)
        records = []
        for document_id in access_object.document_ids:
            record = self.documents.documents.get(access_object.owner_id, document_id)
            if record is not None:
                records.append(record)
        return records

    def fetch_document(self, token: Optional[str], document_id: str) -> DocumentRecord:
        _, access_object = self._resolve(token)
        return self._linked(access_object, document_id)

    def issue_download(self, token: Optional[str], document_id: str) -> DownloadGrant:
        """
        Short-lived read URL for a linked document.

        Unencrypted documents get a signed object-storage URL. Encrypted ones
        get a URL back into this service carrying a content token, which is
        served through the decrypting stream by :meth:`open_content`.
        """
        _, access_object = self._resolve(token)
        record = self._linked(access_object, document_id)

        if record.storage_path and not record.is_encrypted:
            if self.url_issuer is None:
                raise NotFoundError("Document file not found.")
            url = self.url_issuer.issue(record.storage_path, self.signed_url_ttl_minutes)
            return DownloadGrant(url=url, expires_in=self.signed_url_ttl_minutes * 60)

        if not record.is_encrypted:
            raise NotFoundError("Document file not found.")

        content_token = self.signer.issue(
            {
                "accessObjectId": access_object.access_object_id,
                "ownerId": access_object.owner_id,
                "documentId": record.document_id,
                "role": PUBLIC_QR_CONTENT_ROLE,
            },
            self.content_ttl_minutes,
        )
        url = f"{self.public_base_url}/access-objects/public/content/{quote(content_token, safe='')}"
        return DownloadGrant(url=url, expires_in=self.content_ttl_minutes * 60)

    def open_content(self, content_token: Optional[str]) -> Tuple[DocumentRecord, Iterator[bytes]]:
        claims, access_object = self._resolve(content_token, role=PUBLIC_QR_CONTENT_ROLE)
        record = self._linked(access_object, claims.get("documentId"))
        return record, self.documents.stream_record(record)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)
