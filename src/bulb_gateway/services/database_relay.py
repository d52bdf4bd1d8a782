"""Relay of posts to the OrbitDB HTTP service."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from bulb_gateway.core.settings import Settings
from bulb_gateway.schemas.backend import DatabaseReceipt
from bulb_gateway.schemas.post import Post
from bulb_gateway.services.backend import (
    HTTP_OK,
    BackendClient,
    BackendConfig,
    BackendProtocolError,
    MissingHashError,
    UnexpectedStatusError,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

ORBITDB_ADD_PATH = "/orbitdb/add"


class DatabaseRelay(BackendClient):
    """Stores posts in the OrbitDB documents database."""

    async def store(self, post: Post) -> DatabaseReceipt:
        """Send a post to OrbitDB.

        Each call appends a new record; identical posts are not deduplicated.

        Args:
            post: Post carrying the server-assigned creation time

        Returns:
            The entry hash and the address of the database holding it

        Raises:
            UnexpectedStatusError: If OrbitDB does not answer 200
            MissingHashError: If OrbitDB answers 200 without a hash
            RelayError: For configuration, network and decoding failures
        """
        response = await self._post(
            ORBITDB_ADD_PATH,
            content=post.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )

        if response.status_code != HTTP_OK:
            raise UnexpectedStatusError(self.name, response.status_code, response.text[:300])

        try:
            receipt = DatabaseReceipt.model_validate_json(response.content)
        except ValidationError as exc:
            raise BackendProtocolError(
                self.name, f"failed to decode response: {response.text[:200]!r}"
            ) from exc

        if not receipt.hash:
            raise MissingHashError(self.name, "response does not contain hash")

        logger.info("Stored in OrbitDB (%s) with hash: %s", receipt.db_address, receipt.hash)
        return receipt


def build_database_relay(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> DatabaseRelay:
    """Build the OrbitDB relay from startup settings."""
    return DatabaseRelay(
        BackendConfig(
            name="orbitdb",
            base_url=settings.orbitdb_api_url,
            timeout_seconds=settings.backend_timeout_seconds,
        ),
        transport=transport,
    )
