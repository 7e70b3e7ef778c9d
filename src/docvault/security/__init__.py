"""Security helpers: key derivation, streaming encryption, tokens and integrity checks.

This package provides:
- scrypt / Argon2id document key derivation and OpenSSL EVP_BytesToKey
- the AES-256-CBC streaming envelope for document blobs
- HMAC-signed ephemeral tokens for signup and public QR access
- HMAC verification of client-encrypted card fields
"""

from .kdf import generate_salt, derive_master_key, derive_scrypt_key, evp_bytes_to_key
from .crypto import (
    IterStream,
    KeyProvider,
    LegacyFieldCipher,
    StreamCipherEnvelope,
    iter_chunks,
    read_all,
)
from .tokens import TokenSigner, issue_signup_key, verify_signup_key
from .integrity import IntegrityGuard
from .keystore import load_secret, save_secret, delete_secret

__all__ = [
    "generate_salt",
    "derive_master_key",
    "derive_scrypt_key",
    "evp_bytes_to_key",
    "IterStream",
    "KeyProvider",
    "LegacyFieldCipher",
    "StreamCipherEnvelope",
    "iter_chunks",
    "read_all",
    "TokenSigner",
    "issue_signup_key",
    "verify_signup_key",
    "IntegrityGuard",
    "load_secret",
    "save_secret",
    "delete_secret",
]
