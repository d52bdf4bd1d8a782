"""Post creation endpoint relaying post metadata to OrbitDB."""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError

from bulb_gateway.api.v0.dependencies import DatabaseRelayDep
from bulb_gateway.schemas.common import ErrorResponse
from bulb_gateway.schemas.post import CreatePostResponse, Post, PostCreate
from bulb_gateway.services.backend import RelayError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["posts"])


def _parse_post(raw: bytes) -> PostCreate:
    try:
        return PostCreate.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON form",
        ) from err


@router.post(
    "/create-post",
    response_model=CreatePostResponse,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": PostCreate.model_json_schema()}},
            "required": True,
        },
    },
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def create_post(request: Request, database: DatabaseRelayDep) -> CreatePostResponse:
    """Store a post in OrbitDB.

    The creation time is always the time the request was received; any value
    supplied by the client is discarded.

    Args:
        request: Incoming request whose body is a JSON post
        database: OrbitDB relay

    Returns:
        The OrbitDB entry hash and database address

    Raises:
        HTTPException: 400 for a malformed body, 500 if OrbitDB rejects the post
    """
    received_at = datetime.now(timezone.utc)
    post = Post.stamp(_parse_post(await request.body()), now=received_at)

    try:
        receipt = await database.store(post)
    except RelayError as exc:
        logger.error("Error storing in OrbitDB: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store in OrbitDB",
        ) from exc

    return CreatePostResponse(
        message="Post stored in OrbitDB",
        orbit_hash=receipt.hash,
        db_address=receipt.db_address,
    )
