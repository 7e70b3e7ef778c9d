"""Owner document routes: upload, list, metadata, content, delete and folders."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse

from ..dependencies import get_document_service, get_subject_id
from ..schemas import DocumentMetadataUpdate, FolderCreate, FolderRename
from ...core.documents import DocumentService, content_disposition

documents_router = APIRouter(prefix="/documents", tags=["Documents"])


@documents_router.post("")
def upload_document(
    file: UploadFile = File(...),
    name: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    folder_id: Optional[str] = Form(default=None, alias="folderId"),
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    """Encrypt and store an uploaded file, then record it."""
    record = documents.upload(
        subject_id,
        file.file,
        filename=file.filename or "upload",
        mime_type=file.content_type,
        size=file.size,
        name=name,
        category=category,
        folder_id=folder_id,
    )
    return {"status": "success", "document": record.to_dict()}


@documents_router.get("")
def list_documents(
    category: Optional[str] = None,
    folder_id: Optional[str] = Query(default=None, alias="folderId"),
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    records = documents.list(subject_id, category=category, folder_id=folder_id)
    return {"status": "success", "documents": [r.to_dict() for r in records]}


@documents_router.post("/folders")
def create_folder(
    body: FolderCreate,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    folder = documents.create_folder(
        subject_id, body.name, parent_id=body.parent_id, icon=body.icon, color=body.color
    )
    return {"status": "success", "folder": folder.to_dict()}


@documents_router.get("/folders")
def list_folders(
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    return {"status": "success", "folders": [f.to_dict() for f in documents.list_folders(subject_id)]}


@documents_router.patch("/folders/{folder_id}")
def rename_folder(
    folder_id: str,
    body: FolderRename,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    folder = documents.rename_folder(subject_id, folder_id, body.name)
    return {"status": "success", "message": "Folder updated", "folder": folder.to_dict()}


@documents_router.delete("/folders/{folder_id}")
def delete_folder(
    folder_id: str,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    """Delete a folder; documents inside it are kept and moved to the top level."""
    documents.delete_folder(subject_id, folder_id)
    return {"status": "success", "message": "Folder deleted"}


@documents_router.get("/{document_id}")
def get_document(
    document_id: str,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    return {"status": "success", "document": documents.get(subject_id, document_id).to_dict()}


@documents_router.patch("/{document_id}")
def update_document(
    document_id: str,
    body: DocumentMetadataUpdate,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    record = documents.update_metadata(subject_id, document_id, name=body.name, category=body.category)
    return {"status": "success", "document": record.to_dict()}


@documents_router.get("/{document_id}/content")
def document_content(
    document_id: str,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> StreamingResponse:
    """Stream the decrypted bytes; previewable types are served inline."""
    record, stream = documents.open_content(subject_id, document_id)
    return StreamingResponse(
        stream,
        media_type=record.mime_type,
        headers={"Content-Disposition": content_disposition(record)},
    )


@documents_router.delete("/{document_id}")
def delete_document(
    document_id: str,
    subject_id: str = Depends(get_subject_id),
    documents: DocumentService = Depends(get_document_service),
) -> dict:
    documents.delete(subject_id, document_id)
    return {"status": "success", "message": "Deleted"}
