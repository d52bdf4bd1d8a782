# tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bulb_gateway.core.settings import Settings
from bulb_gateway.main import create_app
from bulb_gateway.services.database_relay import build_database_relay
from bulb_gateway.services.staging import StagingStore
from bulb_gateway.services.storage_relay import build_storage_relay

IPFS_URL = "http://ipfs.test:5001"
ORBITDB_URL = "http://orbitdb.test:3000"

DEFAULT_IPFS_RESPONSE = {"Name": "upload", "Hash": "QmTestCid", "Size": "12"}
DEFAULT_ORBITDB_RESPONSE = {"hash": "zdpuTestHash", "db_address": "/orbitdb/zdpuTestDb/bulb-social"}


class BackendStub:
    """Scriptable backend served through ``httpx.MockTransport``.

    Records every request so tests can assert on call counts and payloads.
    """

    def __init__(self, json_body: Any = None, status_code: int = 200) -> None:
        self.json_body = json_body
        self.status_code = status_code
        self.raw_body: bytes | None = None
        self.error: Exception | None = None
        self.delay = 0.0
        self.entered: asyncio.Event | None = None
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        self.requests.append(request)
        self.bodies.append(body)
        if self.entered is not None:
            self.entered.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.json_body)


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "ipfs_api_url": IPFS_URL,
        "orbitdb_api_url": ORBITDB_URL,
        "staging_dir": str(tmp_path),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture()
def staging(tmp_path: Path) -> Iterator[StagingStore]:
    store = StagingStore(base_dir=tmp_path)
    store.init()
    try:
        yield store
    finally:
        if store.ready:
            store.teardown()


@pytest.fixture()
def ipfs_backend() -> BackendStub:
    return BackendStub(json_body=dict(DEFAULT_IPFS_RESPONSE))


@pytest.fixture()
def orbitdb_backend() -> BackendStub:
    return BackendStub(json_body=dict(DEFAULT_ORBITDB_RESPONSE))


@pytest.fixture()
def app(
    settings: Settings,
    staging: StagingStore,
    ipfs_backend: BackendStub,
    orbitdb_backend: BackendStub,
) -> FastAPI:
    return create_app(
        settings,
        staging,
        storage=build_storage_relay(settings, transport=ipfs_backend.transport),
        database=build_database_relay(settings, transport=orbitdb_backend.transport),
    )


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
