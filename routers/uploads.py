import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from google.cloud import storage
from pydantic import BaseModel

import AuthAndUser as auth
from domain.user import UserInDB
from errors import ValidationError
from gcsupload import ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE_BYTES, MAX_IMAGE_SIZE_KB, upload_to_gcs

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


class UploadResult(BaseModel):
    url: str


async def get_gcs_client(request: Request) -> storage.Client:
    if not getattr(request.app.state, 'gcs_client', None):
        logger.error("GCS client not initialized or unavailable.")
        raise HTTPException(status_code=503, detail="Image storage unavailable")
    return request.app.state.gcs_client


@router.post("", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
async def upload_image(
    request: Request,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    file: UploadFile = File(..., description=f"Image file (max {MAX_IMAGE_SIZE_KB} KB)"),
    gcs: storage.Client = Depends(get_gcs_client),
):
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError.for_field("file", f"Unsupported image type: {file.content_type}")
    image_bytes = await file.read()
    if len(image_bytes) > MAX_IMAGE_SIZE_BYTES:
        logger.warning(f"User '{current_user.username}' attempted to upload oversized image: {file.filename} ({len(image_bytes)} bytes)")
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image file size exceeds the limit of {MAX_IMAGE_SIZE_KB} KB.",
        )
    url = await run_in_threadpool(
        upload_to_gcs,
        gcs,
        request.app.state.settings.gcs_bucket_name,
        image_bytes,
        file.filename or "image",
        file.content_type,
        current_user.username,
    )
    if url is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Image upload failed")
    return UploadResult(url=url)
