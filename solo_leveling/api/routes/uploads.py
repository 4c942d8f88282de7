from __future__ import annotations

import logging

from fastapi import APIRouter, File, UploadFile

from solo_leveling.core.config import get_settings
from solo_leveling.schemas.admin import UploadResponse


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=UploadResponse, summary="Accept a file and return its public URL.")
async def upload_file(file: UploadFile = File(...)) -> UploadResponse:
    # Storage is handled by the dedicated media service; every upload maps to the placeholder.
    logger.info("Received upload %s (%s)", file.filename, file.content_type)
    await file.close()
    return UploadResponse(
        message="Upload endpoint - use backend for file upload",
        url=get_settings().upload_placeholder_url,
    )
