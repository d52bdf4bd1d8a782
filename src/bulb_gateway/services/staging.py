"""Staging area for uploads on their way to IPFS.

Each gateway process owns one temporary directory. Every upload is written
there under a freshly generated name, relayed, and removed again. The
directory itself is removed once the listener has stopped.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from starlette.concurrency import run_in_threadpool

# Configure logger for this module
logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 256 * 1024


class StagingError(RuntimeError):
    """Raised when the staging directory or a staged file cannot be managed."""


@dataclass(frozen=True)
class StagedUpload:
    """An upload written to the staging directory."""

    generated_name: str
    path: Path
    original_filename: str


def file_extension(filename: str) -> str:
    """Return the extension of the last path element, dot included.

    ``photo.png`` gives ``.png``, ``archive.tar.gz`` gives ``.gz`` and a name
    without a dot gives an empty string.
    """
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    dot = base.rfind(".")
    return base[dot:] if dot >= 0 else ""


def generate_name(original_filename: str) -> str:
    """Return a collision-resistant name keeping the original extension."""
    return f"{uuid.uuid4()}{file_extension(original_filename)}"


class StagingStore:
    """Process-scoped temporary directory holding in-flight uploads."""

    def __init__(self, prefix: str = "bulb.social-tmp", base_dir: str | Path | None = None) -> None:
        self.prefix = prefix
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self._directory: Path | None = None
        self._torn_down = False

    @property
    def directory(self) -> Path:
        if self._directory is None:
            raise StagingError("Staging store has not been initialized")
        return self._directory

    @property
    def ready(self) -> bool:
        return self._directory is not None and not self._torn_down

    def init(self) -> Path:
        """Create the staging directory.

        Raises:
            StagingError: If the directory cannot be created
        """
        if self._directory is not None:
            raise StagingError(f"Staging store already initialized at {self._directory}")
        try:
            created = tempfile.mkdtemp(prefix=self.prefix, dir=self.base_dir)
        except OSError as exc:
            raise StagingError(f"Unable to create staging directory: {exc}") from exc

        self._directory = Path(created)
        logger.info("Staging uploads in %s", self._directory)
        return self._directory

    def stage(self, original_filename: str, content: bytes | BinaryIO) -> StagedUpload:
        """Write an upload to a new file in the staging directory.

        Args:
            original_filename: Client-supplied filename, used for its extension
            content: Raw bytes or a binary file object positioned at the start

        Returns:
            The staged upload

        Raises:
            StagingError: If the filename is empty or the file cannot be written
        """
        if not original_filename:
            raise StagingError("Cannot stage an upload without a filename")
        if not self.ready:
            raise StagingError("Staging store is not available")

        generated_name = generate_name(original_filename)
        path = self.directory / generated_name
        logger.info("Saving file to: %s", path)

        try:
            with path.open("xb") as destination:
                if isinstance(content, bytes | bytearray | memoryview):
                    destination.write(content)
                else:
                    shutil.copyfileobj(content, destination, COPY_CHUNK_SIZE)
        except (OSError, ValueError) as exc:
            # a NUL byte in the client extension makes the path itself invalid
            with suppress(OSError, ValueError):
                path.unlink(missing_ok=True)
            raise StagingError(f"Unable to save {original_filename!r} to {path}: {exc}") from exc

        return StagedUpload(
            generated_name=generated_name,
            path=path,
            original_filename=original_filename,
        )

    def discard(self, upload: StagedUpload) -> None:
        """Remove a staged file; failures are logged, not raised."""
        try:
            upload.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Unable to remove staged file %s: %s", upload.path, exc)

    @asynccontextmanager
    async def staged(
        self, original_filename: str, content: bytes | BinaryIO
    ) -> AsyncIterator[StagedUpload]:
        """Stage an upload for the duration of the block, then remove it.

        File I/O runs in the threadpool so the event loop keeps serving.
        """
        upload = await run_in_threadpool(self.stage, original_filename, content)
        try:
            yield upload
        finally:
            await run_in_threadpool(self.discard, upload)

    def teardown(self) -> None:
        """Remove the staging directory and everything left in it.

        Must be called once, after the listener stopped accepting requests.

        Raises:
            StagingError: If already torn down or if removal fails
        """
        if self._torn_down:
            raise StagingError("Staging store was already torn down")
        directory = self.directory
        self._torn_down = True

        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise StagingError(f"Unable to remove staging directory {directory}: {exc}") from exc
        logger.info("Removed staging directory %s", directory)
