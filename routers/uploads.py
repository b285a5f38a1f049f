from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from typing import Optional

from constants import ALLOWED_IMAGE_TYPES, MAX_UPLOAD_BYTES
from logging_config import get_logger
from schemas.uploads import UploadResponse

logger = get_logger(__name__)

uploads_router = APIRouter(tags=["uploads"])


@uploads_router.post("/upload", response_model=UploadResponse)
async def upload_image(request: Request, image: Optional[UploadFile] = File(None)):
    """Store one image (PNG, JPEG, GIF or WebP, at most 5 MB).

    The returned ``imageUrl`` is meant to travel inside a chat payload.
    """
    client_host = request.client.host if request.client else "unknown"
    if image is None or not image.filename:
        logger.info(f"Upload rejected from {client_host}: no file")
        raise HTTPException(status_code=400, detail="No file uploaded.")

    if image.content_type not in ALLOWED_IMAGE_TYPES:
        logger.info(f"Upload rejected from {client_host}: content type {image.content_type}")
        raise HTTPException(status_code=400, detail="Only PNG, JPEG, GIF, and WebP files are allowed!")

    data = await image.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        logger.info(f"Upload rejected from {client_host}: larger than {MAX_UPLOAD_BYTES} bytes")
        raise HTTPException(status_code=400, detail="File too large")

    store = request.app.state.upload_store
    try:
        filename = store.save(image.filename, data)
    except OSError as e:
        logger.error(f"Error storing upload from {client_host}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to store upload")

    return UploadResponse(imageUrl=f"/uploads/{filename}")
