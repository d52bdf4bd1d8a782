"""Shared API dependencies resolving the components built at startup."""

from typing import Annotated

from fastapi import Depends, Request

from bulb_gateway.core.settings import Settings
from bulb_gateway.services.database_relay import DatabaseRelay
from bulb_gateway.services.staging import StagingStore
from bulb_gateway.services.storage_relay import StorageRelay


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_staging_store(request: Request) -> StagingStore:
    return request.app.state.staging


def get_storage_relay(request: Request) -> StorageRelay:
    return request.app.state.storage_relay


def get_database_relay(request: Request) -> DatabaseRelay:
    return request.app.state.database_relay


SettingsDep = Annotated[Settings, Depends(get_settings)]
StagingDep = Annotated[StagingStore, Depends(get_staging_store)]
StorageRelayDep = Annotated[StorageRelay, Depends(get_storage_relay)]
DatabaseRelayDep = Annotated[DatabaseRelay, Depends(get_database_relay)]
