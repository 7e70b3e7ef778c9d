"""Unit tests covering ``DatabaseConnection`` and database models."""

import sqlite3
import threading

import pytest

from docvault.core.exceptions import UpstreamStorageError
from docvault.core.models import AccessObject, CardRecord, DocumentRecord, FolderRecord, UserRecord
from docvault.database.connection import DatabaseConnection
from docvault.database.models import AccessObjectModel, CardModel, DocumentModel, FolderModel, UserModel
from docvault.database.schema import SCHEMA_VERSION, get_drop_schema


def test_initialize_is_idempotent(temp_db: DatabaseConnection) -> None:
    temp_db.initialize()
    assert temp_db.get_version() == SCHEMA_VERSION

    for statement in get_drop_schema():
        temp_db.execute(statement)

    assert temp_db.get_version() == 0


def test_reset_recreates_tables(temp_db: DatabaseConnection) -> None:
    UserModel(temp_db).create(UserRecord("u1", "Alice", "+1555"))
    temp_db.reset()
    assert UserModel(temp_db).get("u1") is None
    assert temp_db.get_version() == SCHEMA_VERSION


def test_transaction_context_commit_and_rollback(temp_db: DatabaseConnection) -> None:
    with temp_db.get_transaction_context() as cursor:
        cursor.execute(
            "INSERT INTO users (user_id, name, mobile, created_at) VALUES (?, ?, ?, ?)",
            ("u1", "Alice", "+1555", "2024-01-01T00:00:00+00:00"),
        )
    assert UserModel(temp_db).get("u1").name == "Alice"

    with pytest.raises(RuntimeError):
        with temp_db.get_transaction_context() as cursor:
            cursor.execute(
                "INSERT INTO users (user_id, name, mobile, created_at) VALUES (?, ?, ?, ?)",
                ("u2", "Bob", "+1666", "2024-01-01T00:00:00+00:00"),
            )
            raise RuntimeError("abort")
    assert UserModel(temp_db).get("u2") is None


def test_close_closes_connections_from_every_thread(temp_db: DatabaseConnection) -> None:
    opened = []
    worker = threading.Thread(target=lambda: opened.append(temp_db._get_connection()))
    worker.start()
    worker.join()
    main_conn = temp_db._get_connection()
    assert opened[0] is not main_conn

    temp_db.close()

    for conn in (opened[0], main_conn):
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")
    # a fresh connection is opened on next use
    assert temp_db.get_version() == SCHEMA_VERSION


def test_sql_errors_become_upstream_errors(temp_db: DatabaseConnection) -> None:
    with pytest.raises(UpstreamStorageError):
        temp_db.execute("INSERT INTO no_such_table VALUES (1)")
    with pytest.raises(UpstreamStorageError):
        temp_db.fetch_all("SELECT * FROM no_such_table")


def test_blob_ref_without_iv_rejected_by_schema(temp_db: DatabaseConnection) -> None:
    with pytest.raises(UpstreamStorageError):
        temp_db.execute(
            "INSERT INTO documents (document_id, owner_id, name, mime_type, blob_ref, created_at, updated_at) "
            "VALUES ('d1', 'u1', 'x', 'application/pdf', 'ref', 'now', 'now')"
        )


# ==============================================================================
# Documents
# ==============================================================================

def test_document_crud_scoped_by_owner(temp_db: DatabaseConnection) -> None:
    docs = DocumentModel(temp_db)
    record = DocumentRecord("u1", "passport.pdf", "application/pdf", 10, blob_ref="ref1", iv_hex="00" * 16)
    docs.create(record)

    fetched = docs.get("u1", record.document_id)
    assert fetched == record
    assert fetched.iv_hex == "00" * 16
    assert fetched.category == "Uncategorized"
    assert docs.get("u2", record.document_id) is None

    assert docs.update_fields("u1", record.document_id, {"name": "Passport", "blob_ref": "evil"}) is True
    fetched = docs.get("u1", record.document_id)
    assert fetched.name == "Passport"
    assert fetched.blob_ref == "ref1"

    assert docs.update_fields("u2", record.document_id, {"name": "x"}) is False
    assert docs.delete("u2", record.document_id) is False
    assert docs.delete("u1", record.document_id) is True
    assert docs.get("u1", record.document_id) is None


def test_document_list_filters(temp_db: DatabaseConnection) -> None:
    docs = DocumentModel(temp_db)
    docs.create(DocumentRecord("u1", "a.pdf", category="Travel", blob_ref="r1", iv_hex="aa" * 16))
    docs.create(DocumentRecord("u1", "b.pdf", category="Health", folder_id="f1", storage_path="documents/u1/b"))
    docs.create(DocumentRecord("u2", "c.pdf", category="Travel", storage_path="documents/u2/c"))

    assert {d.name for d in docs.list_by_owner("u1")} == {"a.pdf", "b.pdf"}
    assert [d.name for d in docs.list_by_owner("u1", category="Travel")] == ["a.pdf"]
    assert [d.name for d in docs.list_by_owner("u1", folder_id="f1")] == ["b.pdf"]


def test_document_record_requires_iv_with_blob() -> None:
    with pytest.raises(ValueError):
        DocumentRecord("u1", "x.pdf", blob_ref="ref")


def test_document_to_dict_hides_storage_internals() -> None:
    record = DocumentRecord("u1", "x.pdf", "application/pdf", blob_ref="ref", iv_hex="ab" * 16)
    data = record.to_dict()
    assert data["encrypted"] is True
    for hidden in ("blobRef", "ivHex", "storagePath", "blob_ref", "iv_hex", "storage_path"):
        assert hidden not in data


# ==============================================================================
# Folders
# ==============================================================================

def test_folder_item_count_and_detach_on_delete(temp_db: DatabaseConnection) -> None:
    folders = FolderModel(temp_db)
    docs = DocumentModel(temp_db)
    folder = folders.create(FolderRecord("u1", "Travel"))
    docs.create(DocumentRecord("u1", "a.pdf", folder_id=folder.folder_id, storage_path="documents/u1/a"))
    docs.create(DocumentRecord("u1", "b.pdf", folder_id=folder.folder_id, storage_path="documents/u1/b"))

    assert folders.get("u1", folder.folder_id).item_count == 2
    assert folders.get("u2", folder.folder_id) is None
    assert folders.rename("u2", folder.folder_id, "x") is False

    assert folders.delete("u2", folder.folder_id) is False
    assert folders.delete("u1", folder.folder_id) is True
    assert folders.list_by_owner("u1") == []
    assert {d.folder_id for d in docs.list_by_owner("u1")} == {None}


def test_folder_children(temp_db: DatabaseConnection) -> None:
    folders = FolderModel(temp_db)
    parent = folders.create(FolderRecord("u1", "Parent"))
    assert folders.has_children("u1", parent.folder_id) is False
    folders.create(FolderRecord("u1", "Child", parent_id=parent.folder_id))
    assert folders.has_children("u1", parent.folder_id) is True
    assert folders.has_children("u2", parent.folder_id) is False


# ==============================================================================
# Access objects
# ==============================================================================

def test_access_object_roundtrip_preserves_order(temp_db: DatabaseConnection) -> None:
    model = AccessObjectModel(temp_db)
    created = model.create(AccessObject("u1", "Travel", "4821", ["d2", "d1", "d3"]))
    fetched = model.get(created.access_object_id)
    assert fetched.document_ids == ["d2", "d1", "d3"]
    assert fetched.pin == "4821"
    assert fetched.scan_count == 0

    assert model.relink(created.access_object_id, ["d3", "d1"]) is True
    assert model.get(created.access_object_id).document_ids == ["d3", "d1"]
    assert model.rename(created.access_object_id, "Trip") is True
    assert model.get(created.access_object_id).name == "Trip"


def test_access_object_limit_per_owner(temp_db: DatabaseConnection) -> None:
    model = AccessObjectModel(temp_db)
    assert model.create(AccessObject("u1", "a", "1111"), max_per_owner=2) is not None
    assert model.create(AccessObject("u1", "b", "1111"), max_per_owner=2) is not None
    assert model.create(AccessObject("u1", "c", "1111"), max_per_owner=2) is None
    assert model.create(AccessObject("u2", "d", "1111"), max_per_owner=2) is not None
    assert len(model.list_by_owner("u1")) == 2


def test_scan_count_increment(temp_db: DatabaseConnection) -> None:
    model = AccessObjectModel(temp_db)
    created = model.create(AccessObject("u1", "a", "1111"))
    model.increment_scan_count(created.access_object_id)
    model.increment_scan_count(created.access_object_id)
    assert model.get(created.access_object_id).scan_count == 2
    assert model.increment_scan_count("missing") is False


# ==============================================================================
# Cards and users
# ==============================================================================

def test_card_update_whitelist(temp_db: DatabaseConnection) -> None:
    model = CardModel(temp_db)
    card = model.create(CardRecord("u1", "Main", "enc-num", "12/29", "enc-cvv", "ALICE"))
    assert card.card_type == "credit"
    assert card.bank_name == "VISA"

    assert model.update_fields("u1", card.card_id, {"owner_id": "u2"}) is False
    assert model.update_fields("u1", card.card_id, {"color": "red", "owner_id": "u2"}) is True
    fetched = model.get("u1", card.card_id)
    assert fetched.color == "red"
    assert fetched.owner_id == "u1"


def test_user_exists_by_mobile(temp_db: DatabaseConnection) -> None:
    users = UserModel(temp_db)
    users.create(UserRecord("u1", "Alice", "+1555"))
    assert users.exists_by_mobile("+1555") is True
    assert users.exists_by_mobile("+1666") is False
    assert users.get("u1").to_dict()["uid"] == "u1"
