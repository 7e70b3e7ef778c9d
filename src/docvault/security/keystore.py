"""OS keystore lookup for DocVault secrets using keyring.

Secrets such as ``ENCRYPTION_SECRET`` normally come from the environment. When
an operator prefers not to export them, they can be stored once in the OS
keystore under the ``docvault`` service and are picked up from there. Backends
that keep secrets in plaintext files are refused.
"""
import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

SERVICE_NAME = "docvault"

logger = logging.getLogger(__name__)


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms.
    """
    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def save_secret(account: str, secret: str, service: str = SERVICE_NAME) -> None:
    """Persist a secret in the OS keystore under (service, account)."""
    secure, msg = assess_keyring_backend()
    if not secure:
        raise RuntimeError(f"refusing to store secret in OS keystore: {msg}")
    keyring.set_password(service, account, secret)


def load_secret(account: str, service: str = SERVICE_NAME) -> Optional[str]:
    """Load a secret from the OS keystore; returns None when absent or unusable."""
    secure, msg = assess_keyring_backend()
    if not secure:
        logger.debug("skipping keystore lookup for %s: %s", account, msg)
        return None
    try:
        return keyring.get_password(service, account)
    except KeyringError as e:
        logger.warning("keystore lookup for %s failed: %s", account, e)
        return None


def delete_secret(account: str, service: str = SERVICE_NAME) -> None:
    """Remove a secret from the OS keystore; absent secrets are ignored."""
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        pass
