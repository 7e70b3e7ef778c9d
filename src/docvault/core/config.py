"""Runtime configuration for DocVault, read from environment variables."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple
import os

from ..security.keystore import load_secret


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    # empty string counts as unset
    val = os.getenv(key) or None
    return val.strip() if val is not None else default


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key) or None
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' is not a valid integer: '{raw}'.")


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key) or None
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


def _env_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(key) or None
    if raw is None:
        return default
    return tuple(v.strip().lower() for v in raw.split(",") if v.strip())


def _secret(key: str) -> Optional[str]:
    # environment first, then the OS keystore
    return _env_str(key) or load_secret(key)


@dataclass(frozen=True)
class UploadPolicy:
    """File-type and size limits checked at upload time."""

    max_pdf_size: int = 5 * 1024 * 1024
    max_img_size: int = 2 * 1024 * 1024
    img_formats: Tuple[str, ...] = (".jpg", ".jpeg", ".png", ".heic", ".avif")
    other_formats: Tuple[str, ...] = (".pdf", ".docx", ".doc")
    max_qr_limit: int = 20
    max_folder_nesting: int = 5

    def is_image(self, extension: str) -> bool:
        return extension.lower() in self.img_formats

    def is_allowed(self, extension: str) -> bool:
        ext = extension.lower()
        return ext in self.img_formats or ext in self.other_formats

    def max_size_for(self, extension: str) -> int:
        return self.max_img_size if self.is_image(extension) else self.max_pdf_size


@dataclass
class Settings:
    """Container for every tunable the service reads at startup."""

    db_path: Path = Path("./docvault.db")
    storage_root: Path = field(default_factory=lambda: Path.home() / ".docvault")
    blob_backend: str = "local"
    object_backend: str = "local"
    container_name: str = "docLock"
    s3_bucket: str = "docvault"
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    encryption_secret: Optional[str] = None
    kdf: str = "scrypt"
    token_secret: Optional[str] = None
    field_key: Optional[str] = None
    subject_header: str = "X-Subject-Id"
    public_base_url: str = ""
    encrypt_documents: bool = True
    signup_ttl_minutes: int = 10
    public_token_ttl_minutes: int = 60
    content_token_ttl_minutes: int = 15
    signed_url_ttl_minutes: int = 15
    log_level: str = "info"
    upload_policy: UploadPolicy = field(default_factory=UploadPolicy)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        Secrets (``ENCRYPTION_SECRET``, ``JWT_SECRET``, ``ENCRYPTION_KEY``) are
        looked up in the OS keystore when the environment does not carry them.
        They are left as ``None`` when absent everywhere; the components that
        need them fail closed on first use.
        """
        default_policy = UploadPolicy()
        policy = UploadPolicy(
            max_pdf_size=_env_int("DOCVAULT_MAX_PDF_SIZE", default_policy.max_pdf_size),
            max_img_size=_env_int("DOCVAULT_MAX_IMG_SIZE", default_policy.max_img_size),
            img_formats=_env_list("DOCVAULT_IMG_FORMATS", default_policy.img_formats),
            other_formats=_env_list("DOCVAULT_OTHER_FORMATS", default_policy.other_formats),
            max_qr_limit=_env_int("DOCVAULT_MAX_QR_LIMIT", default_policy.max_qr_limit),
            max_folder_nesting=_env_int("DOCVAULT_MAX_FOLDER_NESTING", default_policy.max_folder_nesting),
        )
        storage_root = _env_str("DOCVAULT_STORAGE_ROOT")
        return cls(
            db_path=Path(_env_str("DOCVAULT_DB_PATH", "./docvault.db")).expanduser(),
            storage_root=Path(storage_root).expanduser() if storage_root else Path.home() / ".docvault",
            blob_backend=_env_str("DOCVAULT_BLOB_BACKEND", "local").lower(),
            object_backend=_env_str("DOCVAULT_OBJECT_BACKEND", "local").lower(),
            container_name=_env_str("DOCVAULT_CONTAINER_NAME", "docLock"),
            s3_bucket=_env_str("DOCVAULT_S3_BUCKET", "docvault"),
            s3_region=_env_str("DOCVAULT_S3_REGION", "us-east-1"),
            s3_endpoint_url=_env_str("DOCVAULT_S3_ENDPOINT_URL"),
            encryption_secret=_secret("ENCRYPTION_SECRET"),
            kdf=_env_str("DOCVAULT_KDF", "scrypt").lower(),
            token_secret=_secret("JWT_SECRET"),
            field_key=_secret("ENCRYPTION_KEY"),
            subject_header=_env_str("DOCVAULT_SUBJECT_HEADER", "X-Subject-Id"),
            public_base_url=_env_str("DOCVAULT_PUBLIC_BASE_URL", "").rstrip("/"),
            encrypt_documents=_env_bool("DOCVAULT_ENCRYPT_DOCUMENTS", True),
            signup_ttl_minutes=_env_int("DOCVAULT_SIGNUP_TTL_MINUTES", 10),
            public_token_ttl_minutes=_env_int("DOCVAULT_PUBLIC_TOKEN_TTL_MINUTES", 60),
            content_token_ttl_minutes=_env_int("DOCVAULT_CONTENT_TOKEN_TTL_MINUTES", 15),
            signed_url_ttl_minutes=_env_int("DOCVAULT_SIGNED_URL_TTL_MINUTES", 15),
            log_level=_env_str("LOG_LEVEL", "info").lower(),
            upload_policy=policy,
        )
