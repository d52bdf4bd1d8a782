"""Common response schemas."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every failed request."""

    error: str


class UploadResponse(BaseModel):
    """Response returned once an image was added to IPFS."""

    message: str
    cid: str
