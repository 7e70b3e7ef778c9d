"""Key derivation for DocVault.

Three derivations live here:
- scrypt over the configured document secret (the document envelope key)
- Argon2id, selectable instead of scrypt for new deployments
- OpenSSL ``EVP_BytesToKey`` (MD5), used by the legacy card-field cipher
"""
import hashlib
import os
from typing import Tuple

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

# Fixed salt of the deployed document key; changing it orphans every stored blob.
DOCUMENT_KEY_SALT = b"salt"
KEY_LEN = 32


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_scrypt_key(
    secret: bytes | str,
    salt: bytes = DOCUMENT_KEY_SALT,
    n: int = 16384,
    r: int = 8,
    p: int = 1,
    key_len: int = KEY_LEN,
) -> bytes:
    """
    Derive a symmetric key from a secret using scrypt.
    The defaults match the parameters blobs were originally written with.
    """
    if isinstance(secret, str):
        secret = secret.encode("utf-8")

    kdf = Scrypt(salt=salt, length=key_len, n=n, r=r, p=p)
    return kdf.derive(secret)


def derive_master_key(
    password: bytes | str,
    salt: bytes = DOCUMENT_KEY_SALT,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = KEY_LEN,
) -> bytes:
    """
    Derive a master key from a password using Argon2id.
    Returns raw derived key bytes.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    # argon2 refuses salts shorter than 8 bytes
    if len(salt) < 8:
        salt = hashlib.sha256(salt).digest()[:16]

    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )


def evp_bytes_to_key(
    password: bytes | str, salt: bytes, key_len: int = 32, iv_len: int = 16
) -> Tuple[bytes, bytes]:
    """
    OpenSSL-compatible EVP_BytesToKey with MD5 and a single iteration.

    D_i = MD5(D_{i-1} || password || salt), concatenated until key_len + iv_len
    bytes are available. Returns (key, iv).
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        block = hashlib.md5(block + password + salt).digest()
        derived += block
    return derived[:key_len], derived[key_len : key_len + iv_len]

