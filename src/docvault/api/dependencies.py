"""Request-scoped dependencies: caller identity and service lookup from app.state."""

from typing import Optional

from fastapi import Header, Request

from ..core.access import AccessGateway
from ..core.auth import SignupBridge
from ..core.cards import CardService
from ..core.documents import DocumentService
from ..core.exceptions import UnauthorizedError


def get_subject_id(request: Request) -> str:
    """Subject id set by the upstream identity proxy.

    Raises:
        UnauthorizedError: if the configured header is missing or blank.
    """
    header = request.app.state.settings.subject_header
    subject_id = (request.headers.get(header) or "").strip()
    if not subject_id:
        raise UnauthorizedError("Unauthorized")
    return subject_id


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing token")
    return authorization[len("Bearer "):].strip()


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.documents


def get_access_gateway(request: Request) -> AccessGateway:
    return request.app.state.access


def get_card_service(request: Request) -> CardService:
    return request.app.state.cards


def get_signup_bridge(request: Request) -> SignupBridge:
    return request.app.state.signup
