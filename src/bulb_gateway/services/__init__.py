"""Staging and relay services for the gateway."""

from .backend import (
    BackendClient,
    BackendConfig,
    BackendProtocolError,
    BackendTimeoutError,
    BackendUnreachableError,
    MissingHashError,
    RelayConfigError,
    RelayError,
    StagedFileError,
    UnexpectedStatusError,
)
from .database_relay import DatabaseRelay, build_database_relay
from .staging import StagedUpload, StagingError, StagingStore
from .storage_relay import StorageRelay, build_storage_relay

__all__ = [
    "BackendClient",
    "BackendConfig",
    "BackendProtocolError",
    "BackendTimeoutError",
    "BackendUnreachableError",
    "DatabaseRelay",
    "MissingHashError",
    "RelayConfigError",
    "RelayError",
    "StagedFileError",
    "StagedUpload",
    "StagingError",
    "StagingStore",
    "StorageRelay",
    "UnexpectedStatusError",
    "build_database_relay",
    "build_storage_relay",
]
