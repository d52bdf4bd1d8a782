"""Relay of staged uploads to the IPFS (Kubo) HTTP RPC API."""

from __future__ import annotations

import json
import logging

import httpx
from pydantic import ValidationError

from bulb_gateway.core.settings import Settings
from bulb_gateway.schemas.backend import StorageReceipt
from bulb_gateway.services.backend import (
    HTTP_MULTIPLE_CHOICES,
    BackendClient,
    BackendConfig,
    BackendProtocolError,
    StagedFileError,
    UnexpectedStatusError,
)
from bulb_gateway.services.staging import StagedUpload

# Configure logger for this module
logger = logging.getLogger(__name__)

IPFS_ADD_PATH = "/api/v0/add"
UPLOAD_FIELD = "file"


def parse_add_response(backend: str, raw: bytes) -> StorageReceipt:
    """Decode the body of an ``/api/v0/add`` call.

    Kubo answers with NDJSON, one object per added entry; for a single file
    the last object describes it.

    Raises:
        BackendProtocolError: If no JSON object can be decoded from the body
    """
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        raise BackendProtocolError(backend, "empty add response")

    last_obj: dict | None = None
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            last_obj = obj

    if last_obj is None:
        raise BackendProtocolError(backend, f"undecodable add response: {text[:200]!r}")

    try:
        return StorageReceipt.model_validate(last_obj)
    except ValidationError as exc:
        raise BackendProtocolError(backend, f"malformed add response: {last_obj!r}") from exc


class StorageRelay(BackendClient):
    """Uploads staged files to IPFS and returns their CID."""

    async def add(self, upload: StagedUpload) -> StorageReceipt:
        """Stream a staged file to IPFS as a single multipart part.

        Raises:
            RelayError: Any subclass describing why the call failed
        """
        # configuration errors win over local I/O errors
        self.url_for(IPFS_ADD_PATH)
        try:
            staged_file = upload.path.open("rb")
        except OSError as exc:
            raise StagedFileError(self.name, f"failed to open {upload.path}: {exc}") from exc

        with staged_file:
            files = {UPLOAD_FIELD: (upload.generated_name, staged_file, "application/octet-stream")}
            response = await self._post(IPFS_ADD_PATH, files=files)

        if response.status_code >= HTTP_MULTIPLE_CHOICES:
            raise UnexpectedStatusError(self.name, response.status_code, response.text[:300])

        receipt = parse_add_response(self.name, response.content)
        logger.debug("IPFS add of %s returned %r", upload.generated_name, receipt)
        return receipt

    async def pin(self, upload: StagedUpload) -> str:
        """Add a staged file to IPFS and return its CID.

        An empty ``Hash`` in an otherwise successful answer is returned as is.
        """
        receipt = await self.add(upload)
        if not receipt.hash:
            logger.warning("IPFS returned no hash for %s", upload.generated_name)
        else:
            logger.info("Pinned %s to IPFS as %s", upload.generated_name, receipt.hash)
        return receipt.hash


def build_storage_relay(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> StorageRelay:
    """Build the IPFS relay from startup settings."""
    return StorageRelay(
        BackendConfig(
            name="ipfs",
            base_url=settings.ipfs_api_url,
            timeout_seconds=settings.backend_timeout_seconds,
        ),
        transport=transport,
    )
