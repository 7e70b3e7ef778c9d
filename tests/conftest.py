"""Shared fixtures: temporary metadata store, stores and a cached document envelope."""

from pathlib import Path
from typing import Generator

import pytest

from docvault.core.documents import DocumentService
from docvault.database.connection import DatabaseConnection
from docvault.security.crypto import KeyProvider, StreamCipherEnvelope
from docvault.storage.blobstore import LocalBlobStore
from docvault.storage.objects import LocalObjectStore

_KEY_PROVIDER = KeyProvider(lambda: "test-document-secret")


@pytest.fixture()
def temp_db(tmp_path: Path) -> Generator[DatabaseConnection, None, None]:
    """Provide a temporary, initialized ``DatabaseConnection`` instance."""
    db = DatabaseConnection(tmp_path / "docvault.db")
    db.initialize()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def envelope() -> StreamCipherEnvelope:
    # key derivation is slow on purpose; derive once per test session
    return StreamCipherEnvelope(_KEY_PROVIDER)


@pytest.fixture()
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "store", container_name="docLock")


@pytest.fixture()
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "store")


@pytest.fixture()
def documents(temp_db, blob_store, envelope, object_store) -> DocumentService:
    return DocumentService(temp_db, blob_store, envelope, object_store=object_store)
