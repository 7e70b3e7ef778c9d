"""Streaming document encryption and the legacy card-field cipher.

Document envelope
-----------------
- AES-256-CBC with PKCS7 padding
- 16-byte random IV per upload, returned as hex and stored in the document
  record (never inside the blob)
- key supplied by a :class:`KeyProvider`, derived once per process

Both directions are generators: each chunk is transformed as it is pulled, so a
slow consumer throttles the producer and no full payload is held in memory.

Legacy field cipher
-------------------
OpenSSL ``Salted__`` format as produced by CryptoJS ``AES.encrypt(text, pass)``:
``base64(b"Salted__" || salt(8) || AES-256-CBC(ciphertext))`` with key and IV
from :func:`evp_bytes_to_key`.
"""
from __future__ import annotations

import base64
import io
import logging
import os
import threading
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Tuple, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import ConfigurationError, CryptoFailure
from .kdf import derive_master_key, derive_scrypt_key, evp_bytes_to_key

CHUNK_SIZE = 64 * 1024
IV_LENGTH = 16
BLOCK_BITS = 128
OPENSSL_MAGIC = b"Salted__"

ByteSource = Union[BinaryIO, Iterable[bytes]]

logger = logging.getLogger(__name__)


def iter_chunks(source: ByteSource, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield byte chunks from a binary file object or an iterable of bytes."""
    read = getattr(source, "read", None)
    if read is not None:
        while True:
            chunk = read(chunk_size)
            if not chunk:
                break
            yield chunk
        return
    for chunk in source:
        if chunk:
            yield bytes(chunk)


class IterStream(io.RawIOBase):
    """Readable binary file object over an iterator of byte chunks.

    Lets pull-based generators feed clients that expect ``read(n)``
    (``boto3.upload_fileobj``, ``shutil.copyfileobj``). ``read(n)`` returns
    exactly ``n`` bytes until the source runs dry: s3transfer takes a short
    first read as the whole object and falls back to a single buffered PUT.
    """

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def _fill(self) -> bool:
        while not self._buffer:
            try:
                self._buffer = bytes(next(self._chunks))
            except StopIteration:
                return False
        return True

    def readinto(self, b) -> int:
        if not self._fill():
            return 0
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self.readall()
        parts = []
        remaining = size
        while remaining > 0 and self._fill():
            piece = self._buffer[:remaining]
            self._buffer = self._buffer[remaining:]
            parts.append(piece)
            remaining -= len(piece)
        return b"".join(parts)


class KeyProvider:
    """
    Lazily derives the document key from a secret and caches it for the
    process lifetime.

    Derivation happens on the first :meth:`get_key` call behind a
    double-checked lock. A missing secret raises :class:`ConfigurationError`
    on every call; there is no plaintext fallback.
    """

    def __init__(self, secret_loader: Callable[[], Optional[str]], kdf: str = "scrypt"):
        if kdf not in ("scrypt", "argon2id"):
            raise ConfigurationError(f"Unsupported key derivation '{kdf}'")
        self._secret_loader = secret_loader
        self.kdf = kdf
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        if self._key is not None:
            return self._key

        with self._lock:
            if self._key is not None:
                return self._key

            secret = self._secret_loader()
            if not secret:
                raise ConfigurationError("ENCRYPTION_SECRET is not configured")

            if self.kdf == "argon2id":
                key = derive_master_key(secret)
            else:
                key = derive_scrypt_key(secret)
            logger.info("Document key derived (%s)", self.kdf)
            self._key = key
            return key


class StreamCipherEnvelope:
    """Encrypt-on-write / decrypt-on-read transform for document streams."""

    def __init__(self, key_provider: KeyProvider, chunk_size: int = CHUNK_SIZE):
        self.key_provider = key_provider
        self.chunk_size = chunk_size

    def encrypt_for_upload(self, plaintext: ByteSource) -> Tuple[Iterator[bytes], str]:
        """
        Return ``(cipher_stream, iv_hex)`` for a plaintext source.

        The key is resolved here, before the stream is handed out, so a
        missing secret fails before any byte is read from ``plaintext``.
        """
        key = self.key_provider.get_key()
        iv = os.urandom(IV_LENGTH)
        return self._encrypt(plaintext, key, iv), iv.hex()

    def decrypt_for_download(self, ciphertext: ByteSource, iv_hex: str) -> Iterator[bytes]:
        """Return a plaintext stream for a ciphertext source and its stored IV."""
        key = self.key_provider.get_key()
        try:
            iv = bytes.fromhex(iv_hex or "")
        except ValueError:
            raise CryptoFailure("Stored IV is not valid hex")
        if len(iv) != IV_LENGTH:
            raise CryptoFailure("Stored IV has the wrong length")
        return self._decrypt(ciphertext, key, iv)

    def _encrypt(self, source: ByteSource, key: bytes, iv: bytes) -> Iterator[bytes]:
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        padder = padding.PKCS7(BLOCK_BITS).padder()
        for chunk in iter_chunks(source, self.chunk_size):
            out = encryptor.update(padder.update(chunk))
            if out:
                yield out
        yield encryptor.update(padder.finalize()) + encryptor.finalize()

    def _decrypt(self, source: ByteSource, key: bytes, iv: bytes) -> Iterator[bytes]:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            for chunk in iter_chunks(source, self.chunk_size):
                out = unpadder.update(decryptor.update(chunk))
                if out:
                    yield out
            tail = unpadder.update(decryptor.finalize()) + unpadder.finalize()
        except ValueError as e:
            # bad padding or a ciphertext that is not a whole number of blocks
            raise CryptoFailure(f"Decryption failed: {e}")
        if tail:
            yield tail


def read_all(stream: Iterable[bytes]) -> bytes:
    """Drain a chunk stream into bytes (tests and small payloads only)."""
    return b"".join(stream)


class LegacyFieldCipher:
    """OpenSSL/CryptoJS-compatible passphrase cipher for short text fields."""

    def __init__(self, passphrase: Optional[str]):
        self.passphrase = passphrase

    def _require_passphrase(self) -> str:
        if not self.passphrase:
            raise ConfigurationError("ENCRYPTION_KEY is not configured")
        return self.passphrase

    def encrypt(self, value: str, salt: Optional[bytes] = None) -> str:
        passphrase = self._require_passphrase()
        salt = salt if salt is not None else os.urandom(8)
        key, iv = evp_bytes_to_key(passphrase, salt)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(value.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ct = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(OPENSSL_MAGIC + salt + ct).decode("ascii")

    def decrypt(self, encrypted_value: str) -> str:
        passphrase = self._require_passphrase()
        try:
            data = base64.b64decode(encrypted_value, validate=True)
        except (ValueError, TypeError):
            raise CryptoFailure("Field ciphertext is not valid base64")
        if len(data) < 32 or data[:8] != OPENSSL_MAGIC:
            raise CryptoFailure("Field ciphertext is not in OpenSSL salted format")

        salt, ct = data[8:16], data[16:]
        key, iv = evp_bytes_to_key(passphrase, salt)
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ct) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise CryptoFailure(f"Field decryption failed: {e}")

    def mask(self, encrypted_value: str, visible: int = 4) -> str:
        """Return a display mask such as ``•••• 4242`` for an encrypted number."""
        plain = self.decrypt(encrypted_value).replace(" ", "")
        return "•••• " + plain[-visible:]
