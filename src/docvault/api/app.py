"""FastAPI application factory for the DocVault API."""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .routers.access import access_router
from .routers.assets import assets_router
from .routers.auth import auth_router
from .routers.cards import cards_router
from .routers.documents import documents_router
from .. import __version__
from ..core.access import AccessGateway, PinAttemptLimiter
from ..core.assets import AssetService
from ..core.auth import SignupBridge
from ..core.cards import CardService
from ..core.config import Settings
from ..core.documents import DocumentService
from ..core.exceptions import ConfigurationError, DocVaultError
from ..database.connection import DatabaseConnection
from ..security.crypto import KeyProvider, LegacyFieldCipher, StreamCipherEnvelope
from ..security.integrity import IntegrityGuard
from ..security.tokens import TokenSigner
from ..storage.blobstore import LocalBlobStore, S3BlobStore, make_s3_client
from ..storage.objects import LocalObjectStore, S3ObjectStore
from ..storage.signed_urls import LocalSignedURLIssuer, S3SignedURLIssuer

logger = logging.getLogger(__name__)


def _build_storage(settings: Settings):
    """Return ``(blob_store, object_store, url_issuer)`` for the configured backends."""
    backends = {settings.blob_backend, settings.object_backend}
    unknown = backends - {"local", "s3"}
    if unknown:
        raise ConfigurationError(f"Unknown storage backend: {', '.join(sorted(unknown))}")

    s3_client = make_s3_client(settings.s3_region, settings.s3_endpoint_url) if "s3" in backends else None

    if settings.blob_backend == "s3":
        blob_store = S3BlobStore(settings.s3_bucket, settings.container_name, client=s3_client)
    else:
        blob_store = LocalBlobStore(settings.storage_root, settings.container_name)

    if settings.object_backend == "s3":
        object_store = S3ObjectStore(settings.s3_bucket, client=s3_client)
        url_issuer = S3SignedURLIssuer(settings.s3_bucket, client=s3_client)
    else:
        object_store = LocalObjectStore(settings.storage_root)
        url_issuer = LocalSignedURLIssuer(settings.token_secret, settings.public_base_url)
    return blob_store, object_store, url_issuer


def build_state(app: FastAPI, settings: Settings, limiter: Optional[PinAttemptLimiter] = None) -> None:
    """Wire services onto ``app.state``."""
    db = DatabaseConnection(settings.db_path)
    blob_store, object_store, url_issuer = _build_storage(settings)
    envelope = StreamCipherEnvelope(KeyProvider(lambda: settings.encryption_secret, settings.kdf))
    signer = TokenSigner(settings.token_secret)

    documents = DocumentService(
        db,
        blob_store,
        envelope,
        object_store=object_store,
        policy=settings.upload_policy,
        encrypt_documents=settings.encrypt_documents,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.blob_store = blob_store
    app.state.documents = documents
    app.state.access = AccessGateway(
        db,
        documents,
        signer,
        url_issuer=url_issuer,
        limiter=limiter,
        max_per_owner=settings.upload_policy.max_qr_limit,
        public_base_url=settings.public_base_url,
        token_ttl_minutes=settings.public_token_ttl_minutes,
        content_ttl_minutes=settings.content_token_ttl_minutes,
        signed_url_ttl_minutes=settings.signed_url_ttl_minutes,
    )
    app.state.cards = CardService(db, IntegrityGuard(settings.field_key), LegacyFieldCipher(settings.field_key))
    app.state.signup = SignupBridge(db, signer, key_ttl_minutes=settings.signup_ttl_minutes)
    app.state.assets = AssetService(
        object_store, url_issuer, policy=settings.upload_policy, ttl_minutes=settings.signed_url_ttl_minutes
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.db.initialize()
    app.state.blob_store.ensure_container()
    logger.info("DocVault API ready.")
    yield

    app.state.access.shutdown()
    app.state.db.close()
    logger.info("DocVault API shut down.")


async def handle_docvault_error(request: Request, exc: DocVaultError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
        message = "Internal server error"
    else:
        message = str(exc) or exc.__class__.__name__
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


def create_app(settings: Optional[Settings] = None, limiter: Optional[PinAttemptLimiter] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(
        title="DocVault",
        description="Encrypted personal document vault with PIN-gated QR sharing.",
        version=__version__,
        lifespan=lifespan,
    )
    build_state(app, settings, limiter=limiter)

    app.add_exception_handler(DocVaultError, handle_docvault_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(auth_router)
    app.include_router(documents_router)
    app.include_router(access_router)
    app.include_router(cards_router)
    app.include_router(assets_router)
    return app
