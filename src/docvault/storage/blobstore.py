"""
Blob store adapters for encrypted document bytes.

A blob store holds opaque blobs inside one named container (the "vault
folder"). Callers hand in an already-encrypted chunk stream and get back an
opaque blob reference; the IV never reaches the store.

Layout of the local backend, for reference:
==============================
 - <storage_root>/
      - vault/
          - {container_name}/
              - .container          (container id, written once)
              - blobs/
                  - {blob_ref}       (ciphertext)
                  - {blob_ref}.json  (name, mime type, public flag)
==============================

Contract shared by every backend:
> ensure_container() is idempotent and cached for the process lifetime
> upload() either stores the whole blob or raises; nothing partial is left behind
> download_stream() raises BlobNotFoundError up front for a dangling reference
> delete() of an absent blob is a success
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import uuid
from pathlib import Path
from typing import Iterable, Iterator, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import BlobNotFoundError, CryptoFailure, UpstreamStorageError
from ..security.crypto import CHUNK_SIZE, IterStream

_BLOB_REF_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound", "NoSuchBucket")
MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024

logger = logging.getLogger(__name__)


class BlobStore:
    """Base class: container discovery cache shared by all backends."""

    def __init__(self, container_name: str):
        self.container_name = container_name
        self._container_ref: Optional[str] = None
        self._container_lock = threading.Lock()

    def ensure_container(self) -> str:
        """Find or create the named container; cached after the first success."""
        if self._container_ref is not None:
            return self._container_ref

        with self._container_lock:
            if self._container_ref is None:
                self._container_ref = self._find_or_create_container()
                logger.info("Blob container %r ready (%s)", self.container_name, self._container_ref)
            return self._container_ref

    def _find_or_create_container(self) -> str:
        raise NotImplementedError

    def upload(self, stream: Iterable[bytes], name: str, mime_type: str, make_public: bool = False) -> str:
        raise NotImplementedError

    def download_stream(self, blob_ref: str) -> Iterator[bytes]:
        raise NotImplementedError

    def delete(self, blob_ref: str) -> None:
        raise NotImplementedError

    @staticmethod
    def _check_ref(blob_ref: str) -> str:
        if not isinstance(blob_ref, str) or not _BLOB_REF_RE.match(blob_ref):
            raise BlobNotFoundError("Blob reference is not valid")
        return blob_ref


class LocalBlobStore(BlobStore):
    """Blob store on the local filesystem under ``<root>/vault/<container>``."""

    def __init__(self, root: Path | str, container_name: str = "docLock", chunk_size: int = CHUNK_SIZE):
        super().__init__(container_name)
        self.root = Path(root).expanduser()
        self.chunk_size = chunk_size

    @property
    def container_root(self) -> Path:
        return self.root / "vault" / self.container_name

    @property
    def blob_root(self) -> Path:
        return self.container_root / "blobs"

    def blob_path(self, blob_ref: str) -> Path:
        return self.blob_root / self._check_ref(blob_ref)

    def _find_or_create_container(self) -> str:
        marker = self.container_root / ".container"
        try:
            if marker.exists():
                return marker.read_text(encoding="utf-8").strip()
            self.blob_root.mkdir(parents=True, exist_ok=True)
            container_id = uuid.uuid4().hex
            marker.write_text(container_id, encoding="utf-8")
            return container_id
        except OSError as e:
            raise UpstreamStorageError(f"Failed to initialize blob container: {e}")

    def upload(self, stream: Iterable[bytes], name: str, mime_type: str, make_public: bool = False) -> str:
        self.ensure_container()
        blob_ref = uuid.uuid4().hex
        destination = self.blob_path(blob_ref)
        tmp_path = destination.with_name(destination.name + ".tmp")

        try:
            with open(tmp_path, "wb") as out_f:
                for chunk in stream:
                    out_f.write(chunk)
            os.replace(tmp_path, destination)
            meta = {"name": name, "mime_type": mime_type, "public": bool(make_public)}
            destination.with_name(blob_ref + ".json").write_text(json.dumps(meta), encoding="utf-8")
        except CryptoFailure:
            self._discard(tmp_path)
            raise
        except OSError as e:
            self._discard(tmp_path)
            self._discard(destination)
            raise UpstreamStorageError(f"Blob upload failed: {e}")
        except BaseException:
            self._discard(tmp_path)
            raise

        logger.info("Stored blob %s (%s)", blob_ref, mime_type)
        return blob_ref

    def download_stream(self, blob_ref: str) -> Iterator[bytes]:
        path = self.blob_path(blob_ref)
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            raise BlobNotFoundError(f"Blob {blob_ref} not found")
        except OSError as e:
            raise UpstreamStorageError(f"Blob download failed: {e}")
        return self._read(handle)

    def _read(self, handle) -> Iterator[bytes]:
        with handle:
            while True:
                chunk = handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    def delete(self, blob_ref: str) -> None:
        path = self.blob_path(blob_ref)
        try:
            path.unlink(missing_ok=True)
            path.with_name(blob_ref + ".json").unlink(missing_ok=True)
        except OSError as e:
            raise UpstreamStorageError(f"Blob delete failed: {e}")
        logger.info("Deleted blob %s", blob_ref)

    def is_public(self, blob_ref: str) -> bool:
        meta_path = self.blob_path(blob_ref).with_name(blob_ref + ".json")
        if not meta_path.exists():
            return False
        return bool(json.loads(meta_path.read_text(encoding="utf-8")).get("public"))

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove partial blob %s", path)


class S3BlobStore(BlobStore):
    """Blob store on S3 (or a compatible endpoint); the container is a key prefix in one bucket."""

    def __init__(
        self,
        bucket: str,
        container_name: str = "docLock",
        client=None,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        chunk_size: int = CHUNK_SIZE,
        transfer_config: Optional[TransferConfig] = None,
    ):
        super().__init__(container_name)
        self.bucket = bucket
        self.chunk_size = chunk_size
        self.transfer_config = transfer_config or make_transfer_config()
        self.client = client if client is not None else make_s3_client(region, endpoint_url)

    def key_for(self, blob_ref: str) -> str:
        return f"{self.container_name}/{self._check_ref(blob_ref)}"

    def _find_or_create_container(self) -> str:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND_CODES:
                raise UpstreamStorageError(f"Failed to initialize blob container: {_error_code(e)}")
            try:
                self.client.create_bucket(Bucket=self.bucket)
            except (ClientError, BotoCoreError) as create_error:
                raise UpstreamStorageError(f"Failed to create blob container: {create_error}")
        except BotoCoreError as e:
            raise UpstreamStorageError(f"Failed to initialize blob container: {e}")
        return f"{self.bucket}/{self.container_name}"

    def upload(self, stream: Iterable[bytes], name: str, mime_type: str, make_public: bool = False) -> str:
        self.ensure_container()
        blob_ref = uuid.uuid4().hex
        key = self.key_for(blob_ref)
        try:
            self.client.upload_fileobj(
                IterStream(stream),
                self.bucket,
                key,
                ExtraArgs={"ContentType": mime_type, "Metadata": {"name": _ascii_name(name)}},
                Config=self.transfer_config,
            )
            if make_public:
                self.client.put_object_acl(Bucket=self.bucket, Key=key, ACL="public-read")
        except (ClientError, BotoCoreError) as e:
            # multipart uploads are aborted by boto3; remove a completed object whose ACL call failed
            self._delete_quietly(key)
            raise UpstreamStorageError(f"Blob upload failed: {e}")
        logger.info("Stored blob %s (%s)", blob_ref, mime_type)
        return blob_ref

    def download_stream(self, blob_ref: str) -> Iterator[bytes]:
        key = self.key_for(blob_ref)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise BlobNotFoundError(f"Blob {blob_ref} not found")
            raise UpstreamStorageError(f"Blob download failed: {_error_code(e)}")
        except BotoCoreError as e:
            raise UpstreamStorageError(f"Blob download failed: {e}")
        return response["Body"].iter_chunks(chunk_size=self.chunk_size)

    def delete(self, blob_ref: str) -> None:
        key = self.key_for(blob_ref)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return
            raise UpstreamStorageError(f"Blob delete failed: {_error_code(e)}")
        except BotoCoreError as e:
            raise UpstreamStorageError(f"Blob delete failed: {e}")
        logger.info("Deleted blob %s", blob_ref)

    def _delete_quietly(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError):
            logger.warning("Could not remove partial blob %s", key)


def make_s3_client(region: str = "us-east-1", endpoint_url: Optional[str] = None):
    """Build a boto3 S3 client with SigV4 (required for presigned URLs on most regions)."""
    kwargs: dict = {"region_name": region, "config": Config(signature_version="s3v4")}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return boto3.client("s3", **kwargs)


def make_transfer_config() -> TransferConfig:
    """Multipart settings for streamed uploads; parts are held in memory one at a time."""
    return TransferConfig(multipart_threshold=MULTIPART_CHUNK_SIZE, multipart_chunksize=MULTIPART_CHUNK_SIZE)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _ascii_name(name: str) -> str:
    # S3 user metadata must be ASCII
    return name.encode("ascii", "replace").decode("ascii")
