from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit, unquote

import pytest

from docvault.core.exceptions import ConfigurationError, ValidationError
from docvault.security.crypto import read_all
from docvault.storage.objects import LocalObjectStore, normalize_object_path, object_path_for
from docvault.storage.signed_urls import LocalSignedURLIssuer, S3SignedURLIssuer

T0 = 1_700_000_000


@pytest.fixture
def now():
    return {"t": T0}


@pytest.fixture
def issuer(now):
    return LocalSignedURLIssuer("jwt-secret", "http://vault.test", clock=lambda: now["t"])


def _parts(url):
    split = urlsplit(url)
    query = parse_qs(split.query)
    path = unquote(split.path[len("/files/signed/"):])
    return path, int(query["expires"][0]), query["sig"][0]


# --- LocalSignedURLIssuer ---

def test_local_url_shape(issuer):
    url = issuer.issue("assets/u1/avatar.png", ttl_minutes=15)
    assert url.startswith("http://vault.test/files/signed/assets/u1/avatar.png?expires=")
    path, expires, _ = _parts(url)
    assert path == "assets/u1/avatar.png"
    assert expires == T0 + 15 * 60


def test_local_url_verifies_until_expiry(issuer, now):
    path, expires, sig = _parts(issuer.issue("assets/u1/my photo.png", ttl_minutes=1))
    assert path == "assets/u1/my photo.png"
    assert issuer.verify(path, expires, sig) is True

    now["t"] += 61
    assert issuer.verify(path, expires, sig) is False


def test_local_url_rejects_tampering(issuer):
    path, expires, sig = _parts(issuer.issue("assets/u1/a.png"))
    assert issuer.verify("assets/u2/a.png", expires, sig) is False
    assert issuer.verify(path, expires + 3600, sig) is False
    assert issuer.verify(path, expires, "0" * 64) is False
    assert issuer.verify(path, expires, "") is False


def test_local_issuer_requires_secret():
    with pytest.raises(ConfigurationError):
        LocalSignedURLIssuer(None)


@pytest.mark.parametrize("bad", ["../secret", "/etc/passwd", "a/../../b", ""])
def test_paths_outside_store_rejected(issuer, bad):
    with pytest.raises(ValidationError):
        issuer.issue(bad)


# --- S3SignedURLIssuer ---

def test_s3_presigned_url():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://s3.example/signed"
    issuer = S3SignedURLIssuer("vault-bucket", client=client)

    assert issuer.issue("documents/u1/x.pdf", ttl_minutes=15) == "https://s3.example/signed"
    client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "vault-bucket", "Key": "objects/documents/u1/x.pdf"},
        ExpiresIn=900,
    )


# --- object paths and LocalObjectStore ---

def test_object_path_for_is_unique_and_scoped():
    p1 = object_path_for("assets", "u1", "avatar.png")
    p2 = object_path_for("assets", "u1", "avatar.png")
    assert p1 != p2
    assert p1.startswith("assets/u1/") and p1.endswith("_avatar.png")
    # directory parts of the client filename are dropped
    assert object_path_for("assets", "u1", "../../x.png").startswith("assets/u1/")
    assert normalize_object_path("a\\b.png") == "a/b.png"


def test_local_object_store_roundtrip(tmp_path):
    store = LocalObjectStore(tmp_path)
    path = store.put(iter([b"ab", b"cd"]), "assets/u1/a.png", "image/png")
    assert read_all(store.open(path)) == b"abcd"
    store.delete(path)
    store.delete(path)
