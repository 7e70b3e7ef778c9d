"""
Document pipeline: upload, listing, metadata updates, content streaming and deletion,
plus the folders documents are grouped into

Encrypted documents go through the StreamCipherEnvelope into the blob store;
the IV lands in the record. With encryption turned off, bytes go to primary
object storage and the record carries a storage_path instead.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, Optional, Tuple
from urllib.parse import quote

from .config import UploadPolicy
from .exceptions import DocVaultError, NotFoundError, ValidationError
from .models import DocumentRecord, FolderRecord
from ..database.models import DocumentModel, FolderModel
from ..security.crypto import ByteSource, StreamCipherEnvelope, iter_chunks
from ..storage.blobstore import BlobStore
from ..storage.objects import ObjectStore, object_path_for

logger = logging.getLogger(__name__)


class _SizeCounter:
    """Pass-through chunk stream that counts bytes and enforces a ceiling."""

    def __init__(self, source: ByteSource, limit: Optional[int]):
        self.source = source
        self.limit = limit
        self.total = 0

    def __iter__(self) -> Iterator[bytes]:
        for chunk in iter_chunks(self.source):
            self.total += len(chunk)
            if self.limit is not None and self.total > self.limit:
                raise ValidationError(f"File exceeds the {self.limit // (1024 * 1024)}MB limit")
            yield chunk


def content_disposition(record: DocumentRecord) -> str:
    """``inline`` for previewable types, ``attachment`` otherwise, with an RFC 5987 filename."""
    kind = "inline" if record.is_previewable else "attachment"
    fallback = record.name.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"{kind}; filename=\"{fallback}\"; filename*=UTF-8''{quote(record.name)}"


class DocumentService:
    """Owner-scoped document operations."""

    def __init__(
        self,
        db,
        blob_store: BlobStore,
        envelope: StreamCipherEnvelope,
        object_store: Optional[ObjectStore] = None,
        policy: Optional[UploadPolicy] = None,
        encrypt_documents: bool = True,
    ):
        self.documents = DocumentModel(db)
        self.folders = FolderModel(db)
        self.blob_store = blob_store
        self.envelope = envelope
        self.object_store = object_store
        self.policy = policy or UploadPolicy()
        self.encrypt_documents = encrypt_documents

    def check_policy(self, filename: str, size: Optional[int] = None) -> int:
        """Validate extension and declared size; return the size ceiling for the file."""
        extension = os.path.splitext(filename or "")[1].lower()
        if not self.policy.is_allowed(extension):
            allowed = ", ".join(self.policy.img_formats + self.policy.other_formats)
            raise ValidationError(f"Unsupported file type. Allowed: {allowed}")
        limit = self.policy.max_size_for(extension)
        if size is not None and size > limit:
            raise ValidationError(f"File exceeds the {limit // (1024 * 1024)}MB limit")
        return limit

    def upload(
        self,
        owner_id: str,
        stream: ByteSource,
        filename: str,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
        name: Optional[str] = None,
        category: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> DocumentRecord:
        """
        Store a document and create its record.

        Nothing is recorded unless the bytes were fully stored; if the record
        insert fails afterwards the stored bytes are removed again.
        """
        limit = self.check_policy(filename, size)
        if folder_id is not None:
            self.get_folder(owner_id, folder_id)
        mime_type = mime_type or "application/octet-stream"
        display_name = (name or "").strip() or filename
        counter = _SizeCounter(stream, limit)

        blob_ref = iv_hex = storage_path = None
        if self.encrypt_documents:
            cipher_stream, iv_hex = self.envelope.encrypt_for_upload(counter)
            blob_ref = self.blob_store.upload(cipher_stream, display_name, mime_type)
        else:
            if self.object_store is None:
                raise ValidationError("Unencrypted document storage is not configured")
            path = object_path_for("documents", owner_id, filename)
            storage_path = self.object_store.put(counter, path, mime_type)

        record = DocumentRecord(
            owner_id=owner_id,
            name=display_name,
            mime_type=mime_type,
            size=counter.total,
            blob_ref=blob_ref,
            iv_hex=iv_hex,
            storage_path=storage_path,
            category=category,
            folder_id=folder_id,
        )
        try:
            self.documents.create(record)
        except Exception:
            logger.error("Record insert failed for uploaded document, removing stored bytes")
            try:
                self._remove_bytes(record)
            except DocVaultError:
                logger.warning("Could not remove bytes for unrecorded document %s", record.document_id)
            raise

        logger.info("Uploaded document %s (%d bytes)", record.document_id, record.size)
        return record

    def list(self, owner_id: str, category: Optional[str] = None, folder_id: Optional[str] = None):
        return self.documents.list_by_owner(owner_id, category=category, folder_id=folder_id)

    def get(self, owner_id: str, document_id: str) -> DocumentRecord:
        record = self.documents.get(owner_id, document_id)
        if record is None:
            raise NotFoundError("Document not found")
        return record

    def update_metadata(
        self, owner_id: str, document_id: str, name: Optional[str] = None, category: Optional[str] = None
    ) -> DocumentRecord:
        fields = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Document name cannot be empty")
            fields["name"] = name.strip()
        if category is not None:
            fields["category"] = category.strip() or "Uncategorized"
        if not fields:
            raise ValidationError("No updatable fields supplied")

        if not self.documents.update_fields(owner_id, document_id, fields):
            raise NotFoundError("Document not found")
        return self.get(owner_id, document_id)

    def open_content(self, owner_id: str, document_id: str) -> Tuple[DocumentRecord, Iterator[bytes]]:
        record = self.get(owner_id, document_id)
        return record, self.stream_record(record)

    def stream_record(self, record: DocumentRecord) -> Iterator[bytes]:
        """Plaintext stream for a record, from whichever store holds its bytes."""
        if record.is_encrypted:
            return self.envelope.decrypt_for_download(self.blob_store.download_stream(record.blob_ref), record.iv_hex)
        if record.storage_path and self.object_store is not None:
            return self.object_store.open(record.storage_path)
        raise NotFoundError("Document file not found")

    def delete(self, owner_id: str, document_id: str) -> None:
        """Delete the stored bytes, then the record. A failed first step keeps the record."""
        record = self.get(owner_id, document_id)
        self._remove_bytes(record)
        self.documents.delete(owner_id, document_id)
        logger.info("Deleted document %s", document_id)

    def _remove_bytes(self, record: DocumentRecord) -> None:
        if record.blob_ref:
            self.blob_store.delete(record.blob_ref)
        elif record.storage_path and self.object_store is not None:
            self.object_store.delete(record.storage_path)


    # ==========================================================================
    # Folders
    # ==========================================================================

    def create_folder(
        self,
        owner_id: str,
        name: str,
        parent_id: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> FolderRecord:
        """Create a folder, optionally under one of the owner's folders."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name is required")
        if parent_id is not None:
            self.get_folder(owner_id, parent_id)
            if self._depth(owner_id, parent_id) >= self.policy.max_folder_nesting:
                raise ValidationError(f"Folders can be nested at most {self.policy.max_folder_nesting} levels deep")

        folder = self.folders.create(FolderRecord(owner_id, name, parent_id=parent_id, icon=icon, color=color))
        logger.info("Created folder %s", folder.folder_id)
        return folder

    def list_folders(self, owner_id: str):
        return self.folders.list_by_owner(owner_id)

    def get_folder(self, owner_id: str, folder_id: str) -> FolderRecord:
        folder = self.folders.get(owner_id, folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        return folder

    def rename_folder(self, owner_id: str, folder_id: str, name: str) -> FolderRecord:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name is required")
        if not self.folders.rename(owner_id, folder_id, name):
            raise NotFoundError("Folder not found")
        return self.get_folder(owner_id, folder_id)

    def delete_folder(self, owner_id: str, folder_id: str) -> None:
        """Delete a folder without subfolders; its documents move to the top level."""
        self.get_folder(owner_id, folder_id)
        if self.folders.has_children(owner_id, folder_id):
            raise ValidationError("Folder has subfolders; delete them first")
        if not self.folders.delete(owner_id, folder_id):
            raise NotFoundError("Folder not found")
        logger.info("Deleted folder %s", folder_id)

    def _depth(self, owner_id: str, folder_id: str) -> int:
        """Nesting level of a folder; top-level folders are at 1."""
        depth = 0
        current = folder_id
        while current is not None and depth <= self.policy.max_folder_nesting:
            folder = self.folders.get(owner_id, current)
            if folder is None:
                break
            depth += 1
            current = folder.parent_id
        return depth
