"""ORM-style helpers for the metadata store."""

import json
import sqlite3

from ..core.exceptions import UpstreamStorageError
from ..core.models import (
    utcnow,
    document_from_row,
    folder_from_row,
    access_object_from_row,
    card_from_row,
    user_from_row,
)


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db):
        """Initialize with a DatabaseConnection."""
        self.db = db

    def _serialize_json(self, data):
        """Serialize Python data to JSON string."""
        return json.dumps(data if data is not None else [])

    def _update_fields(self, table, key_column, key, fields):
        """UPDATE only the given columns plus updated_at; return affected rows."""
        if not fields:
            return 0
        fields = dict(fields)
        fields["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in fields)
        query = f"UPDATE {table} SET {assignments} WHERE {key_column} = ?"
        return self.db.execute(query, (*fields.values(), key))


class UserModel(BaseModel):
    """DB model for users."""

    def create(self, user):
        """Create a user and return it."""
        query = """
            INSERT INTO users (user_id, name, mobile, role, created_at)
            VALUES (?, ?, ?, ?, ?)
        """
        self.db.execute(
            query, (user.user_id, user.name, user.mobile, user.role, user.created_at.isoformat())
        )
        return self.get(user.user_id)

    def get(self, user_id):
        """Get user by ID."""
        row = self.db.fetch_one("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return user_from_row(row) if row else None

    def exists_by_mobile(self, mobile):
        """Return True if a user registered with this mobile number."""
        row = self.db.fetch_one("SELECT 1 AS found FROM users WHERE mobile = ?", (mobile,))
        return row is not None


class DocumentModel(BaseModel):
    """DB model for document records, scoped by owner."""

    def create(self, document):
        """Insert a document record and return it."""
        query = """
            INSERT INTO documents (
                document_id, owner_id, name, mime_type, size, blob_ref, iv_hex,
                storage_path, category, folder_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            document.document_id,
            document.owner_id,
            document.name,
            document.mime_type,
            document.size,
            document.blob_ref,
            document.iv_hex,
            document.storage_path,
            document.category,
            document.folder_id,
            document.created_at.isoformat(),
            document.updated_at.isoformat(),
        )
        self.db.execute(query, params)
        return document

    def get(self, owner_id, document_id):
        """Get a document by owner and ID, or None."""
        query = "SELECT * FROM documents WHERE owner_id = ? AND document_id = ?"
        row = self.db.fetch_one(query, (owner_id, document_id))
        return document_from_row(row) if row else None

    def list_by_owner(self, owner_id, category=None, folder_id=None):
        """List an owner's documents, newest first, optionally filtered."""
        query = "SELECT * FROM documents WHERE owner_id = ?"
        params = [owner_id]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        if folder_id is not None:
            query += " AND folder_id = ?"
            params.append(folder_id)
        query += " ORDER BY created_at DESC"
        return [document_from_row(r) for r in self.db.fetch_all(query, tuple(params))]

    def update_fields(self, owner_id, document_id, fields):
        """Update mutable metadata columns (name, category)."""
        allowed = {k: v for k, v in fields.items() if k in ("name", "category")}
        if not allowed:
            return False
        allowed["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in allowed)
        query = f"UPDATE documents SET {assignments} WHERE owner_id = ? AND document_id = ?"
        return self.db.execute(query, (*allowed.values(), owner_id, document_id)) > 0

    def delete(self, owner_id, document_id):
        """Delete a document record; True if a row was removed."""
        query = "DELETE FROM documents WHERE owner_id = ? AND document_id = ?"
        return self.db.execute(query, (owner_id, document_id)) > 0


class FolderModel(BaseModel):
    """DB model for document folders, scoped by owner."""

    _SELECT = """
        SELECT f.*, (
            SELECT COUNT(*) FROM documents d
            WHERE d.owner_id = f.owner_id AND d.folder_id = f.folder_id
        ) AS item_count
        FROM folders f
    """

    def create(self, folder):
        query = """
            INSERT INTO folders (
                folder_id, owner_id, name, parent_id, icon, color, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            folder.folder_id,
            folder.owner_id,
            folder.name,
            folder.parent_id,
            folder.icon,
            folder.color,
            folder.created_at.isoformat(),
            folder.updated_at.isoformat(),
        )
        self.db.execute(query, params)
        return folder

    def get(self, owner_id, folder_id):
        """Get a folder with its document count, or None."""
        query = self._SELECT + " WHERE f.owner_id = ? AND f.folder_id = ?"
        row = self.db.fetch_one(query, (owner_id, folder_id))
        return folder_from_row(row) if row else None

    def list_by_owner(self, owner_id):
        query = self._SELECT + " WHERE f.owner_id = ? ORDER BY f.created_at"
        return [folder_from_row(r) for r in self.db.fetch_all(query, (owner_id,))]

    def has_children(self, owner_id, folder_id):
        query = "SELECT 1 AS found FROM folders WHERE owner_id = ? AND parent_id = ? LIMIT 1"
        return self.db.fetch_one(query, (owner_id, folder_id)) is not None

    def rename(self, owner_id, folder_id, name):
        query = "UPDATE folders SET name = ?, updated_at = ? WHERE owner_id = ? AND folder_id = ?"
        return self.db.execute(query, (name, utcnow().isoformat(), owner_id, folder_id)) > 0

    def delete(self, owner_id, folder_id):
        """
        Delete a folder and detach its documents in one transaction.

        Documents are kept; their folder_id is cleared.
        """
        try:
            with self.db.get_transaction_context() as cursor:
                cursor.execute(
                    "UPDATE documents SET folder_id = NULL WHERE owner_id = ? AND folder_id = ?",
                    (owner_id, folder_id),
                )
                cursor.execute(
                    "DELETE FROM folders WHERE owner_id = ? AND folder_id = ?",
                    (owner_id, folder_id),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise UpstreamStorageError(f"Metadata store write failed: {e}")


class AccessObjectModel(BaseModel):
    """DB model for QR access objects (a global collection keyed by opaque id)."""

    def create(self, access_object, max_per_owner=None):
        """
        Insert an access object and return it.

        When ``max_per_owner`` is given the count check and the insert run in
        one transaction; returns None if the owner is already at the limit.
        """
        params = (
            access_object.access_object_id,
            access_object.owner_id,
            access_object.name,
            access_object.pin,
            self._serialize_json(access_object.document_ids),
            access_object.scan_count,
            access_object.created_at.isoformat(),
            access_object.updated_at.isoformat(),
        )
        query = """
            INSERT INTO access_objects (
                access_object_id, owner_id, name, pin, document_ids, scan_count,
                created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        try:
            with self.db.get_transaction_context() as cursor:
                if max_per_owner is not None:
                    cursor.execute(
                        "SELECT COUNT(*) FROM access_objects WHERE owner_id = ?",
                        (access_object.owner_id,),
                    )
                    if cursor.fetchone()[0] >= max_per_owner:
                        return None
                cursor.execute(query, params)
        except sqlite3.Error as e:
            raise UpstreamStorageError(f"Metadata store write failed: {e}")
        return access_object

    def get(self, access_object_id):
        """Get an access object by ID, or None."""
        query = "SELECT * FROM access_objects WHERE access_object_id = ?"
        row = self.db.fetch_one(query, (access_object_id,))
        return access_object_from_row(row) if row else None

    def list_by_owner(self, owner_id):
        """List an owner's access objects, newest first."""
        query = "SELECT * FROM access_objects WHERE owner_id = ? ORDER BY created_at DESC"
        return [access_object_from_row(r) for r in self.db.fetch_all(query, (owner_id,))]

    def rename(self, access_object_id, name):
        return self._update_fields("access_objects", "access_object_id", access_object_id, {"name": name}) > 0

    def relink(self, access_object_id, document_ids):
        fields = {"document_ids": self._serialize_json(list(document_ids))}
        return self._update_fields("access_objects", "access_object_id", access_object_id, fields) > 0

    def increment_scan_count(self, access_object_id):
        """Atomically bump the scan counter."""
        query = "UPDATE access_objects SET scan_count = scan_count + 1 WHERE access_object_id = ?"
        return self.db.execute(query, (access_object_id,)) > 0

    def delete(self, access_object_id):
        query = "DELETE FROM access_objects WHERE access_object_id = ?"
        return self.db.execute(query, (access_object_id,)) > 0


class CardModel(BaseModel):
    """DB model for payment cards."""

    def create(self, card):
        query = """
            INSERT INTO cards (
                card_id, owner_id, name, number, expiry_date, cvv, holder_name,
                card_type, color, bank_name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            card.card_id,
            card.owner_id,
            card.name,
            card.number,
            card.expiry_date,
            card.cvv,
            card.holder_name,
            card.card_type,
            card.color,
            card.bank_name,
            card.created_at.isoformat(),
            card.updated_at.isoformat(),
        )
        self.db.execute(query, params)
        return card

    def get(self, owner_id, card_id):
        query = "SELECT * FROM cards WHERE owner_id = ? AND card_id = ?"
        row = self.db.fetch_one(query, (owner_id, card_id))
        return card_from_row(row) if row else None

    def list_by_owner(self, owner_id):
        query = "SELECT * FROM cards WHERE owner_id = ? ORDER BY created_at DESC"
        return [card_from_row(r) for r in self.db.fetch_all(query, (owner_id,))]

    def update_fields(self, owner_id, card_id, fields):
        allowed_columns = (
            "name", "number", "expiry_date", "cvv", "holder_name", "card_type", "color", "bank_name",
        )
        allowed = {k: v for k, v in fields.items() if k in allowed_columns}
        if not allowed:
            return False
        allowed["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in allowed)
        query = f"UPDATE cards SET {assignments} WHERE owner_id = ? AND card_id = ?"
        return self.db.execute(query, (*allowed.values(), owner_id, card_id)) > 0

    def delete(self, owner_id, card_id):
        query = "DELETE FROM cards WHERE owner_id = ? AND card_id = ?"
        return self.db.execute(query, (owner_id, card_id)) > 0
