"""Tests for the document upload/download pipeline."""

import io
import os
from unittest.mock import patch

import pytest

from docvault.core.config import UploadPolicy
from docvault.core.documents import DocumentService, content_disposition
from docvault.core.exceptions import (
    BlobNotFoundError,
    ConfigurationError,
    NotFoundError,
    UpstreamStorageError,
    ValidationError,
)
from docvault.core.models import DocumentRecord
from docvault.security.crypto import KeyProvider, StreamCipherEnvelope, read_all


def _blob_files(blob_store):
    if not blob_store.blob_root.exists():
        return []
    return [p for p in blob_store.blob_root.iterdir()]


class TestUpload:
    def test_roundtrip_stores_ciphertext_only(self, documents, blob_store):
        data = b"%PDF-1.4 " + os.urandom(150_000)
        record = documents.upload("u1", io.BytesIO(data), "passport.pdf", "application/pdf", size=len(data))

        assert record.is_encrypted
        assert record.size == len(data)
        assert len(bytes.fromhex(record.iv_hex)) == 16
        assert record.storage_path is None

        stored = blob_store.blob_path(record.blob_ref).read_bytes()
        assert stored != data
        assert data[:64] not in stored

        fetched, stream = documents.open_content("u1", record.document_id)
        assert fetched == record
        assert read_all(stream) == data

    def test_display_name_and_metadata(self, documents):
        folder = documents.create_folder("u1", "Identity")
        record = documents.upload(
            "u1", [b"abc"], "scan.png", "image/png", name="  Driving licence ", category="ID",
            folder_id=folder.folder_id,
        )
        assert record.name == "Driving licence"
        assert record.category == "ID"
        assert record.folder_id == folder.folder_id
        assert documents.list("u1", category="ID") == [record]

    def test_unsupported_extension_rejected(self, documents, blob_store):
        with pytest.raises(ValidationError, match="Unsupported file type"):
            documents.upload("u1", [b"MZ"], "tool.exe", "application/octet-stream")
        assert _blob_files(blob_store) == []

    def test_declared_size_over_limit_rejected(self, documents):
        with pytest.raises(ValidationError, match="5MB"):
            documents.upload("u1", [b"x"], "big.pdf", "application/pdf", size=6 * 1024 * 1024)

    def test_streamed_size_over_limit_leaves_nothing(self, temp_db, blob_store, envelope, object_store):
        service = DocumentService(
            temp_db, blob_store, envelope, object_store=object_store, policy=UploadPolicy(max_img_size=1024)
        )
        with pytest.raises(ValidationError):
            service.upload("u1", [b"a" * 600, b"b" * 600], "photo.jpg", "image/jpeg")

        assert _blob_files(blob_store) == []
        assert service.list("u1") == []

    def test_missing_secret_fails_closed(self, temp_db, blob_store):
        service = DocumentService(temp_db, blob_store, StreamCipherEnvelope(KeyProvider(lambda: None)))
        with pytest.raises(ConfigurationError):
            service.upload("u1", [b"secret"], "a.pdf", "application/pdf")
        assert service.list("u1") == []
        assert _blob_files(blob_store) == []

    def test_record_failure_removes_blob(self, documents, blob_store):
        with patch.object(documents.documents, "create", side_effect=UpstreamStorageError("db down")):
            with pytest.raises(UpstreamStorageError):
                documents.upload("u1", [b"data"], "a.pdf", "application/pdf")
        assert [p for p in _blob_files(blob_store) if not p.name.endswith(".json")] == []

    def test_unencrypted_upload_goes_to_object_store(self, temp_db, blob_store, envelope, object_store):
        service = DocumentService(temp_db, blob_store, envelope, object_store=object_store, encrypt_documents=False)
        record = service.upload("u1", [b"plain ", b"bytes"], "notes.pdf", "application/pdf")

        assert not record.is_encrypted
        assert record.iv_hex is None
        assert record.storage_path.startswith("documents/u1/")
        assert object_store.file_path(record.storage_path).read_bytes() == b"plain bytes"
        assert read_all(service.open_content("u1", record.document_id)[1]) == b"plain bytes"

    def test_unencrypted_upload_without_object_store(self, temp_db, blob_store, envelope):
        service = DocumentService(temp_db, blob_store, envelope, encrypt_documents=False)
        with pytest.raises(ValidationError):
            service.upload("u1", [b"x"], "a.pdf", "application/pdf")


class TestOwnership:
    def test_other_owner_sees_nothing(self, documents):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        assert documents.list("u2") == []
        with pytest.raises(NotFoundError):
            documents.get("u2", record.document_id)
        with pytest.raises(NotFoundError):
            documents.open_content("u2", record.document_id)
        with pytest.raises(NotFoundError):
            documents.delete("u2", record.document_id)
        assert documents.get("u1", record.document_id) == record


class TestMetadata:
    def test_rename_and_recategorize(self, documents):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        updated = documents.update_metadata("u1", record.document_id, name=" Lease ", category="Home")
        assert updated.name == "Lease"
        assert updated.category == "Home"
        assert updated.blob_ref == record.blob_ref

    def test_empty_name_rejected(self, documents):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        with pytest.raises(ValidationError):
            documents.update_metadata("u1", record.document_id, name="   ")

    def test_nothing_to_update(self, documents):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        with pytest.raises(ValidationError):
            documents.update_metadata("u1", record.document_id)

    def test_unknown_document(self, documents):
        with pytest.raises(NotFoundError):
            documents.update_metadata("u1", "missing", name="x")


class TestDelete:
    def test_delete_removes_blob_then_record(self, documents, blob_store):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        documents.delete("u1", record.document_id)

        assert not blob_store.blob_path(record.blob_ref).exists()
        with pytest.raises(NotFoundError):
            documents.get("u1", record.document_id)

    def test_failed_blob_delete_keeps_record(self, documents, blob_store):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        with patch.object(blob_store, "delete", side_effect=UpstreamStorageError("store down")):
            with pytest.raises(UpstreamStorageError):
                documents.delete("u1", record.document_id)
        assert documents.get("u1", record.document_id) == record

    def test_orphan_record_reports_missing_blob(self, documents, blob_store):
        record = documents.upload("u1", [b"abc"], "a.pdf", "application/pdf")
        blob_store.blob_path(record.blob_ref).unlink()
        with pytest.raises(BlobNotFoundError):
            documents.open_content("u1", record.document_id)


class TestFolders:
    def test_create_with_defaults(self, documents):
        folder = documents.create_folder("u1", "  Travel ")
        data = folder.to_dict()
        assert data["name"] == "Travel"
        assert data["icon"] == "folder"
        assert data["color"] == "bg-slate-500"
        assert data["itemCount"] == 0
        assert data["parentId"] is None

    def test_name_required(self, documents):
        with pytest.raises(ValidationError, match="Folder name is required"):
            documents.create_folder("u1", "   ")

    def test_parent_must_belong_to_owner(self, documents):
        theirs = documents.create_folder("u2", "Private")
        with pytest.raises(NotFoundError):
            documents.create_folder("u1", "Child", parent_id=theirs.folder_id)
        assert documents.list_folders("u1") == []

    def test_nesting_limit(self, temp_db, blob_store, envelope):
        service = DocumentService(temp_db, blob_store, envelope, policy=UploadPolicy(max_folder_nesting=2))
        top = service.create_folder("u1", "Top")
        middle = service.create_folder("u1", "Middle", parent_id=top.folder_id)
        with pytest.raises(ValidationError, match="at most 2"):
            service.create_folder("u1", "Bottom", parent_id=middle.folder_id)

    def test_upload_into_unknown_folder_stores_nothing(self, documents, blob_store):
        with pytest.raises(NotFoundError, match="Folder not found"):
            documents.upload("u1", [b"%PDF"], "a.pdf", "application/pdf", folder_id="missing")
        assert _blob_files(blob_store) == []
        assert documents.list("u1") == []

    def test_upload_into_other_owners_folder_rejected(self, documents):
        theirs = documents.create_folder("u2", "Private")
        with pytest.raises(NotFoundError):
            documents.upload("u1", [b"%PDF"], "a.pdf", "application/pdf", folder_id=theirs.folder_id)

    def test_item_count_and_filter(self, documents):
        folder = documents.create_folder("u1", "Health")
        inside = documents.upload("u1", [b"%PDF"], "a.pdf", "application/pdf", folder_id=folder.folder_id)
        documents.upload("u1", [b"%PDF"], "b.pdf", "application/pdf")

        assert documents.get_folder("u1", folder.folder_id).item_count == 1
        assert documents.list("u1", folder_id=folder.folder_id) == [inside]

    def test_rename(self, documents):
        folder = documents.create_folder("u1", "Old")
        assert documents.rename_folder("u1", folder.folder_id, "New").name == "New"
        with pytest.raises(ValidationError):
            documents.rename_folder("u1", folder.folder_id, "")
        with pytest.raises(NotFoundError):
            documents.rename_folder("u2", folder.folder_id, "Stolen")

    def test_delete_keeps_documents(self, documents):
        folder = documents.create_folder("u1", "Temp")
        record = documents.upload("u1", [b"%PDF"], "a.pdf", "application/pdf", folder_id=folder.folder_id)

        documents.delete_folder("u1", folder.folder_id)

        assert documents.list_folders("u1") == []
        assert documents.get("u1", record.document_id).folder_id is None
        with pytest.raises(NotFoundError):
            documents.delete_folder("u1", folder.folder_id)

    def test_delete_with_subfolders_refused(self, documents):
        parent = documents.create_folder("u1", "Parent")
        documents.create_folder("u1", "Child", parent_id=parent.folder_id)
        with pytest.raises(ValidationError, match="subfolders"):
            documents.delete_folder("u1", parent.folder_id)
        assert len(documents.list_folders("u1")) == 2


class TestContentDisposition:
    def test_previewable_types_inline(self):
        assert content_disposition(DocumentRecord("u1", "a.pdf", "application/pdf")).startswith("inline;")
        assert content_disposition(DocumentRecord("u1", "a.png", "image/png")).startswith("inline;")

    def test_other_types_attachment(self):
        header = content_disposition(
            DocumentRecord("u1", "Résumé.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")
        )
        assert header.startswith("attachment;")
        assert "filename*=UTF-8''R%C3%A9sum%C3%A9.docx" in header
        assert header.split('filename="')[1].split('"')[0].isascii()
