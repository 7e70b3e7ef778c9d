"""Primary object storage for assets and unencrypted-at-rest documents.

Objects are addressed by a relative path such as ``assets/<uid>/<file>``. These
bytes are never encrypted by the service; reads go through signed URLs.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional

from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import BlobNotFoundError, UpstreamStorageError, ValidationError
from ..security.crypto import CHUNK_SIZE, IterStream
from .blobstore import make_s3_client, make_transfer_config, _error_code, _NOT_FOUND_CODES

logger = logging.getLogger(__name__)


def normalize_object_path(path: str) -> str:
    """Reject absolute paths and parent references; return a clean posix path."""
    if not path or not isinstance(path, str):
        raise ValidationError("Object path is required")
    pure = PurePosixPath(path.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        raise ValidationError("Object path is not valid")
    return str(pure)


def object_path_for(prefix: str, owner_id: str, filename: str) -> str:
    """Build a unique object path under ``prefix/owner_id``."""
    safe_name = PurePosixPath(filename.replace("\\", "/")).name or "file"
    return normalize_object_path(f"{prefix}/{owner_id}/{uuid.uuid4().hex}_{safe_name}")


class ObjectStore:
    def put(self, stream: Iterable[bytes], path: str, mime_type: str) -> str:
        raise NotImplementedError

    def open(self, path: str) -> Iterator[bytes]:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Objects stored as plain files under ``<root>/objects``."""

    def __init__(self, root: Path | str, chunk_size: int = CHUNK_SIZE):
        self.root = Path(root).expanduser() / "objects"
        self.chunk_size = chunk_size

    def file_path(self, path: str) -> Path:
        return self.root / normalize_object_path(path)

    def put(self, stream: Iterable[bytes], path: str, mime_type: str) -> str:
        path = normalize_object_path(path)
        destination = self.file_path(path)
        tmp_path = destination.with_name(destination.name + ".tmp")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as out_f:
                for chunk in stream:
                    out_f.write(chunk)
            os.replace(tmp_path, destination)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise UpstreamStorageError(f"Object upload failed: {e}")
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.info("Stored object %s (%s)", path, mime_type)
        return path

    def open(self, path: str) -> Iterator[bytes]:
        try:
            handle = open(self.file_path(path), "rb")
        except FileNotFoundError:
            raise BlobNotFoundError(f"Object {path} not found")
        except OSError as e:
            raise UpstreamStorageError(f"Object read failed: {e}")
        return self._read(handle)

    def _read(self, handle) -> Iterator[bytes]:
        with handle:
            while True:
                chunk = handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    def delete(self, path: str) -> None:
        try:
            self.file_path(path).unlink(missing_ok=True)
        except OSError as e:
            raise UpstreamStorageError(f"Object delete failed: {e}")


class S3ObjectStore(ObjectStore):
    """Objects stored under ``objects/`` in an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        client=None,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        transfer_config: Optional[TransferConfig] = None,
    ):
        self.bucket = bucket
        self.client = client if client is not None else make_s3_client(region, endpoint_url)
        self.transfer_config = transfer_config or make_transfer_config()

    def key_for(self, path: str) -> str:
        return f"objects/{normalize_object_path(path)}"

    def put(self, stream: Iterable[bytes], path: str, mime_type: str) -> str:
        path = normalize_object_path(path)
        try:
            self.client.upload_fileobj(
                IterStream(stream),
                self.bucket,
                self.key_for(path),
                ExtraArgs={"ContentType": mime_type},
                Config=self.transfer_config,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamStorageError(f"Object upload failed: {e}")
        logger.info("Stored object %s (%s)", path, mime_type)
        return path

    def open(self, path: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key_for(path))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise BlobNotFoundError(f"Object {path} not found")
            raise UpstreamStorageError(f"Object read failed: {_error_code(e)}")
        except BotoCoreError as e:
            raise UpstreamStorageError(f"Object read failed: {e}")
        return response["Body"].iter_chunks(chunk_size=CHUNK_SIZE)

    def delete(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self.key_for(path))
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND_CODES:
                raise UpstreamStorageError(f"Object delete failed: {_error_code(e)}")
        except BotoCoreError as e:
            raise UpstreamStorageError(f"Object delete failed: {e}")
