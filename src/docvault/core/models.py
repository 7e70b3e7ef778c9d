"""
Data models for documents, access objects (QR), cards and users
"""

from datetime import datetime, timezone
from typing import Optional, List
import json
import uuid


PREVIEWABLE_PREFIXES = ("image/", "text/")
PREVIEWABLE_TYPES = ("application/pdf",)


def utcnow():
    return datetime.now(timezone.utc)


def _parse_dt(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value):
    return value.isoformat() if value is not None else None


class DocumentRecord:
    """
        Metadata for a stored document. The bytes live in the blob store
        (encrypted, addressed by blob_ref + iv_hex) or in primary object
        storage (storage_path)
    """

    __slots__ = (
        'document_id',
        'owner_id',
        'name',
        'mime_type',
        'size',
        'blob_ref',
        'iv_hex',
        'storage_path',
        'category',
        'folder_id',
        'created_at',
        'updated_at',
    )

    def __init__(
        self,
        owner_id,
        name,
        mime_type="application/octet-stream",
        size=0,
        blob_ref=None,
        iv_hex=None,
        storage_path=None,
        category="Uncategorized",
        folder_id=None,
        document_id=None,
        created_at=None,
        updated_at=None,
    ):
        if blob_ref and not iv_hex:
            raise ValueError("A document with a blob reference needs its IV")
        self.document_id = document_id if document_id is not None else str(uuid.uuid4())
        self.owner_id = owner_id
        self.name = name
        self.mime_type = mime_type or "application/octet-stream"
        self.size = size
        self.blob_ref = blob_ref
        self.iv_hex = iv_hex
        self.storage_path = storage_path
        self.category = category or "Uncategorized"
        self.folder_id = folder_id
        self.created_at = created_at if created_at is not None else utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    @property
    def is_encrypted(self):
        return bool(self.blob_ref)

    @property
    def is_previewable(self):
        return self.mime_type.startswith(PREVIEWABLE_PREFIXES) or self.mime_type in PREVIEWABLE_TYPES

    def to_dict(self):
        """
            Public representation; storage internals (blob_ref, iv_hex, storage_path) are omitted
        """
        return {
            'id': self.document_id,
            'ownerId': self.owner_id,
            'name': self.name,
            'mimeType': self.mime_type,
            'size': self.size,
            'category': self.category,
            'folderId': self.folder_id,
            'encrypted': self.is_encrypted,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"DocumentRecord(document_id={self.document_id!r}, name={self.name!r})"

    def __eq__(self, other):
        if not isinstance(other, DocumentRecord):
            return NotImplemented
        return self.document_id == other.document_id

    def __hash__(self):
        return hash(self.document_id)


def document_from_row(row):
    """
        Create DocumentRecord from a database row
    """
    return DocumentRecord(
        document_id=row['document_id'],
        owner_id=row['owner_id'],
        name=row['name'],
        mime_type=row.get('mime_type'),
        size=row.get('size', 0),
        blob_ref=row.get('blob_ref'),
        iv_hex=row.get('iv_hex'),
        storage_path=row.get('storage_path'),
        category=row.get('category'),
        folder_id=row.get('folder_id'),
        created_at=_parse_dt(row.get('created_at')),
        updated_at=_parse_dt(row.get('updated_at')),
    )


class FolderRecord:
    """
        A named grouping of an owner's documents; folders may nest under a parent
    """

    __slots__ = (
        'folder_id', 'owner_id', 'name', 'parent_id', 'icon', 'color',
        'item_count', 'created_at', 'updated_at',
    )

    def __init__(
        self,
        owner_id,
        name,
        parent_id=None,
        icon="folder",
        color="bg-slate-500",
        item_count=0,
        folder_id=None,
        created_at=None,
        updated_at=None,
    ):
        self.folder_id = folder_id if folder_id is not None else str(uuid.uuid4())
        self.owner_id = owner_id
        self.name = name
        self.parent_id = parent_id
        self.icon = icon or "folder"
        self.color = color or "bg-slate-500"
        # computed from the documents table on read
        self.item_count = item_count
        self.created_at = created_at if created_at is not None else utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    def to_dict(self):
        return {
            'id': self.folder_id,
            'ownerId': self.owner_id,
            'name': self.name,
            'parentId': self.parent_id,
            'icon': self.icon,
            'color': self.color,
            'itemCount': self.item_count,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"FolderRecord(folder_id={self.folder_id!r}, name={self.name!r})"


def folder_from_row(row):
    return FolderRecord(
        folder_id=row['folder_id'],
        owner_id=row['owner_id'],
        name=row['name'],
        parent_id=row.get('parent_id'),
        icon=row.get('icon'),
        color=row.get('color'),
        item_count=row.get('item_count', 0) or 0,
        created_at=_parse_dt(row.get('created_at')),
        updated_at=_parse_dt(row.get('updated_at')),
    )


class AccessObject:
    """
        A PIN-protected set of documents behind a QR code
    """

    __slots__ = (
        'access_object_id',
        'owner_id',
        'name',
        'pin',
        'document_ids',
        'scan_count',
        'created_at',
        'updated_at',
    )

    def __init__(
        self,
        owner_id,
        name,
        pin,
        document_ids: Optional[List[str]] = None,
        scan_count=0,
        access_object_id=None,
        created_at=None,
        updated_at=None,
    ):
        self.access_object_id = access_object_id if access_object_id is not None else str(uuid.uuid4())
        self.owner_id = owner_id
        self.name = name
        self.pin = pin
        self.document_ids = list(document_ids) if document_ids else []
        self.scan_count = scan_count
        self.created_at = created_at if created_at is not None else utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    def links(self, document_id):
        return document_id in self.document_ids

    def to_dict(self):
        """
            Owner-facing representation. The PIN is included because the owner
            needs it to hand it out; anonymous callers never receive this view
        """
        return {
            'id': self.access_object_id,
            'ownerId': self.owner_id,
            'name': self.name,
            'pin': self.pin,
            'documentIds': list(self.document_ids),
            'scanCount': self.scan_count,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"AccessObject(access_object_id={self.access_object_id!r}, name={self.name!r})"


def access_object_from_row(row):
    """
        Create AccessObject from a database row
    """
    return AccessObject(
        access_object_id=row['access_object_id'],
        owner_id=row['owner_id'],
        name=row['name'],
        pin=row['pin'],
        document_ids=json.loads(row['document_ids']) if row.get('document_ids') else [],
        scan_count=row.get('scan_count', 0),
        created_at=_parse_dt(row.get('created_at')),
        updated_at=_parse_dt(row.get('updated_at')),
    )


class CardRecord:
    """
        A payment card; number and cvv hold client-side ciphertext only
    """

    __slots__ = (
        'card_id', 'owner_id', 'name', 'number', 'expiry_date', 'cvv',
        'holder_name', 'card_type', 'color', 'bank_name', 'created_at', 'updated_at',
    )

    def __init__(
        self,
        owner_id,
        name,
        number,
        expiry_date,
        cvv,
        holder_name,
        card_type="credit",
        color="from-blue-600 to-purple-700",
        bank_name="VISA",
        card_id=None,
        created_at=None,
        updated_at=None,
    ):
        self.card_id = card_id if card_id is not None else str(uuid.uuid4())
        self.owner_id = owner_id
        self.name = name
        self.number = number
        self.expiry_date = expiry_date
        self.cvv = cvv
        self.holder_name = holder_name
        self.card_type = card_type or "credit"
        self.color = color or "from-blue-600 to-purple-700"
        self.bank_name = bank_name or "VISA"
        self.created_at = created_at if created_at is not None else utcnow()
        self.updated_at = updated_at if updated_at is not None else self.created_at

    def to_dict(self):
        return {
            'id': self.card_id,
            'name': self.name,
            'number': self.number,
            'expiryDate': self.expiry_date,
            'cvv': self.cvv,
            'holderName': self.holder_name,
            'type': self.card_type,
            'color': self.color,
            'bankName': self.bank_name,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


def card_from_row(row):
    return CardRecord(
        card_id=row['card_id'],
        owner_id=row['owner_id'],
        name=row['name'],
        number=row['number'],
        expiry_date=row['expiry_date'],
        cvv=row['cvv'],
        holder_name=row['holder_name'],
        card_type=row.get('card_type'),
        color=row.get('color'),
        bank_name=row.get('bank_name'),
        created_at=_parse_dt(row.get('created_at')),
        updated_at=_parse_dt(row.get('updated_at')),
    )


class UserRecord:
    """
        A registered user, keyed by the identity provider's subject id
    """

    __slots__ = ('user_id', 'name', 'mobile', 'role', 'created_at')

    def __init__(self, user_id, name, mobile, role="user", created_at=None):
        self.user_id = user_id
        self.name = name
        self.mobile = mobile
        self.role = role
        self.created_at = created_at if created_at is not None else utcnow()

    def to_dict(self):
        return {
            'uid': self.user_id,
            'name': self.name,
            'mobile': self.mobile,
            'role': self.role,
            'createdAt': _iso(self.created_at),
        }


def user_from_row(row):
    return UserRecord(
        user_id=row['user_id'],
        name=row['name'],
        mobile=row['mobile'],
        role=row.get('role', 'user'),
        created_at=_parse_dt(row.get('created_at')),
    )
