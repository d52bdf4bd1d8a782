"""Image upload endpoint: stage the file, then add it to IPFS."""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from starlette.datastructures import UploadFile

from bulb_gateway.api.v0.dependencies import StagingDep, StorageRelayDep
from bulb_gateway.schemas.common import ErrorResponse, UploadResponse
from bulb_gateway.services.backend import RelayError
from bulb_gateway.services.staging import StagingError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])

UPLOAD_FIELD = "file"

UPLOAD_BODY_SCHEMA = {
    "type": "object",
    "properties": {UPLOAD_FIELD: {"type": "string", "format": "binary"}},
    "required": [UPLOAD_FIELD],
}


@router.post(
    "/upload-pic",
    response_model=UploadResponse,
    openapi_extra={
        "requestBody": {
            "content": {"multipart/form-data": {"schema": UPLOAD_BODY_SCHEMA}},
            "required": True,
        },
    },
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def upload_pic(
    request: Request,
    staging: StagingDep,
    storage: StorageRelayDep,
) -> UploadResponse:
    """Relay an uploaded image to IPFS and return its CID.

    The image is staged on local disk only for the duration of the IPFS call
    and removed afterwards, whether the call succeeded or not.

    Args:
        request: Incoming multipart request carrying the ``file`` field
        staging: Staging store owning the temporary directory
        storage: IPFS relay

    Returns:
        The CID assigned by IPFS

    Raises:
        HTTPException: 400 for a missing file, 500 if saving or pinning fails
    """
    async with request.form() as form:
        file = form.get(UPLOAD_FIELD)
        if not isinstance(file, UploadFile):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid file upload",
            )
        if not file.filename:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No file uploaded",
            )

        try:
            async with staging.staged(file.filename, file.file) as upload:
                try:
                    cid = await storage.pin(upload)
                except RelayError as exc:
                    logger.error("Error pinning %s to IPFS: %s", upload.generated_name, exc)
                    raise HTTPException(
                        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        detail="Failed to pin file to IPFS",
                    ) from exc
        except StagingError as exc:
            logger.error("Error saving upload %r: %s", file.filename, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Unable to save the file",
            ) from exc

        return UploadResponse(message="File uploaded and stored on IPFS", cid=cid)
