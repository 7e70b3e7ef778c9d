"""Asset upload and signed-URL routes."""

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import StreamingResponse

from ..dependencies import get_subject_id
from ...core.assets import AssetService

assets_router = APIRouter(tags=["Assets"])


def get_asset_service(request: Request) -> AssetService:
    return request.app.state.assets


@assets_router.post("/assets")
def upload_asset(
    file: UploadFile = File(...),
    subject_id: str = Depends(get_subject_id),
    assets: AssetService = Depends(get_asset_service),
) -> dict:
    path, url = assets.upload(subject_id, file.file, file.filename or "image", file.content_type, file.size)
    return {"status": "success", "assetPath": path, "url": url}


@assets_router.get("/assets/url")
def asset_url(
    path: str,
    subject_id: str = Depends(get_subject_id),
    assets: AssetService = Depends(get_asset_service),
) -> dict:
    return {"status": "success", "url": assets.url_for(subject_id, path)}


@assets_router.get("/files/signed/{path:path}")
def signed_file(
    path: str,
    expires: int,
    sig: str,
    assets: AssetService = Depends(get_asset_service),
) -> StreamingResponse:
    mime_type, stream = assets.open_signed(path, expires, sig)
    return StreamingResponse(stream, media_type=mime_type, headers={"Cache-Control": "private, max-age=60"})
