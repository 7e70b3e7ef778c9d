"""
Unit tests for the keystore module.
"""

import pytest
from unittest.mock import patch
from keyring.errors import KeyringError, PasswordDeleteError

from docvault.security import keystore


# ==============================================================================
# Fake backends
# ==============================================================================

class PlaintextKeyring:
    priority = 1


class Keychain:
    priority = 5


class NullKeyring:
    priority = 0


@pytest.fixture
def secure_backend():
    with patch.object(keystore, "assess_keyring_backend", return_value=(True, "ok")):
        yield


@pytest.fixture
def insecure_backend():
    with patch.object(keystore, "assess_keyring_backend", return_value=(False, "insecure backend detected")):
        yield


# ==============================================================================
# Tests: assess_keyring_backend
# ==============================================================================

@pytest.mark.parametrize(
    "backend, secure",
    [(PlaintextKeyring(), False), (NullKeyring(), False), (Keychain(), True)],
)
def test_assess_backend(backend, secure):
    with patch.object(keystore.keyring, "get_keyring", return_value=backend):
        is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is secure
    assert type(backend).__name__ in msg


def test_assess_backend_lookup_failure():
    with patch.object(keystore.keyring, "get_keyring", side_effect=RuntimeError("boom")):
        is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is False
    assert "boom" in msg


# ==============================================================================
# Tests: save / load / delete
# ==============================================================================

def test_save_secret_stores_under_service(secure_backend):
    with patch.object(keystore.keyring, "set_password") as set_password:
        keystore.save_secret("JWT_SECRET", "s3cret")
    set_password.assert_called_once_with("docvault", "JWT_SECRET", "s3cret")


def test_save_secret_refuses_insecure_backend(insecure_backend):
    with patch.object(keystore.keyring, "set_password") as set_password:
        with pytest.raises(RuntimeError, match="refusing"):
            keystore.save_secret("JWT_SECRET", "s3cret")
    set_password.assert_not_called()


def test_load_secret_returns_value(secure_backend):
    with patch.object(keystore.keyring, "get_password", return_value="s3cret") as get_password:
        assert keystore.load_secret("ENCRYPTION_KEY") == "s3cret"
    get_password.assert_called_once_with("docvault", "ENCRYPTION_KEY")


def test_load_secret_skips_insecure_backend(insecure_backend):
    with patch.object(keystore.keyring, "get_password") as get_password:
        assert keystore.load_secret("ENCRYPTION_KEY") is None
    get_password.assert_not_called()


def test_load_secret_backend_error_returns_none(secure_backend):
    with patch.object(keystore.keyring, "get_password", side_effect=KeyringError("locked")):
        assert keystore.load_secret("ENCRYPTION_KEY") is None


def test_delete_secret_ignores_missing():
    with patch.object(keystore.keyring, "delete_password", side_effect=PasswordDeleteError("absent")):
        keystore.delete_secret("JWT_SECRET")


def test_delete_secret_calls_backend():
    with patch.object(keystore.keyring, "delete_password") as delete_password:
        keystore.delete_secret("JWT_SECRET")
    delete_password.assert_called_once_with("docvault", "JWT_SECRET")
