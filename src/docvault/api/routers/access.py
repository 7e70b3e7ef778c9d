"""QR access-object routes.

Owner routes require the subject header. Public routes are anonymous: the PIN
is exchanged for a scoped bearer token, which then gates listing, metadata
and download grants for that one access object.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..dependencies import get_access_gateway, get_bearer_token, get_subject_id
from ..schemas import AccessObjectCreate, AccessObjectUpdateBody, PinVerifyRequest
from ...core.access import AccessGateway
from ...core.documents import content_disposition

access_router = APIRouter(prefix="/access-objects", tags=["Access objects"])


# --- public ---


@access_router.post("/public/verify")
def verify_pin(
    request: Request,
    body: PinVerifyRequest,
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    client_key = request.client.host if request.client else None
    verification = gateway.verify_pin(body.access_object_id, body.pin, client_key=client_key)
    return {"status": "success", "bearerToken": verification.token}


@access_router.get("/public/documents")
def public_documents(
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    return {"status": "success", "documents": [r.to_dict() for r in gateway.list_documents(token)]}


@access_router.get("/public/documents/{document_id}")
def public_document(
    document_id: str,
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    return {"status": "success", "document": gateway.fetch_document(token, document_id).to_dict()}


@access_router.get("/public/documents/{document_id}/proxy")
def public_document_url(
    document_id: str,
    token: str = Depends(get_bearer_token),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    grant = gateway.issue_download(token, document_id)
    return {"status": "success", "downloadUrl": grant.url, "expiresIn": grant.expires_in}


@access_router.get("/public/content/{content_token:path}")
def public_content(
    content_token: str,
    gateway: AccessGateway = Depends(get_access_gateway),
) -> StreamingResponse:
    record, stream = gateway.open_content(content_token)
    return StreamingResponse(
        stream,
        media_type=record.mime_type,
        headers={"Content-Disposition": content_disposition(record), "Cache-Control": "no-store"},
    )


# --- owner ---


@access_router.post("", status_code=201)
def create_access_object(
    body: AccessObjectCreate,
    subject_id: str = Depends(get_subject_id),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    access_object = gateway.create_access_object(subject_id, body.name, body.pin, body.document_ids)
    return {"status": "success", "accessObject": access_object.to_dict()}


@access_router.get("")
def list_access_objects(
    subject_id: str = Depends(get_subject_id),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    return {"status": "success", "accessObjects": [a.to_dict() for a in gateway.list_for_owner(subject_id)]}


@access_router.patch("/{access_object_id}")
def update_access_object(
    access_object_id: str,
    body: AccessObjectUpdateBody,
    subject_id: str = Depends(get_subject_id),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    access_object = gateway.update_access_object(subject_id, access_object_id, body.root)
    return {"status": "success", "accessObject": access_object.to_dict()}


@access_router.delete("/{access_object_id}")
def delete_access_object(
    access_object_id: str,
    subject_id: str = Depends(get_subject_id),
    gateway: AccessGateway = Depends(get_access_gateway),
) -> dict:
    gateway.delete_access_object(subject_id, access_object_id)
    return {"status": "success", "message": "Deleted"}
