"""SQLite schema definitions for DocVault."""

# SQL schema definitions
SCHEMA_VERSION = 2

CREATE_TABLES = [
    # Users table - only written by the signup bridge, user_id is the identity provider's subject
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        mobile TEXT UNIQUE NOT NULL,
        role TEXT DEFAULT 'user',
        created_at TEXT NOT NULL
    )
    """,
    # Documents table - blob_ref/iv_hex for encrypted blobs, storage_path for object storage
    """
    CREATE TABLE IF NOT EXISTS documents (
        document_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size INTEGER NOT NULL DEFAULT 0,
        blob_ref TEXT,
        iv_hex TEXT,
        storage_path TEXT,
        category TEXT DEFAULT 'Uncategorized',
        folder_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK (blob_ref IS NULL OR (iv_hex IS NOT NULL AND iv_hex != ''))
    )
    """,
    # Folders table - parent_id nests folders under another folder of the same owner
    """
    CREATE TABLE IF NOT EXISTS folders (
        folder_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        parent_id TEXT,
        icon TEXT DEFAULT 'folder',
        color TEXT DEFAULT 'bg-slate-500',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # Access objects (QR) - document_ids is an ordered JSON list of foreign keys, no back-pointer
    """
    CREATE TABLE IF NOT EXISTS access_objects (
        access_object_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        pin TEXT NOT NULL,
        document_ids TEXT NOT NULL DEFAULT '[]',
        scan_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # Cards table - number and cvv are client-side ciphertext
    """
    CREATE TABLE IF NOT EXISTS cards (
        card_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        number TEXT NOT NULL,
        expiry_date TEXT NOT NULL,
        cvv TEXT NOT NULL,
        holder_name TEXT NOT NULL,
        card_type TEXT DEFAULT 'credit',
        color TEXT,
        bank_name TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # Schema version table
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

# Index definitions for optimization
CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_folders_owner ON folders(owner_id, parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_access_objects_owner ON access_objects(owner_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_cards_owner ON cards(owner_id)",
]


def get_init_schema():
    """Return every statement needed to initialize an empty database."""
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_INDEXES)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements


def get_drop_schema():
    """Return statements that drop every table (tests and resets)."""
    return [
        "DROP TABLE IF EXISTS cards",
        "DROP TABLE IF EXISTS access_objects",
        "DROP TABLE IF EXISTS folders",
        "DROP TABLE IF EXISTS documents",
        "DROP TABLE IF EXISTS users",
        "DROP TABLE IF EXISTS schema_version",
    ]
