# tests/test_lifecycle.py
import asyncio
import os
import signal
import socket
from pathlib import Path

import httpx
import pytest

from bulb_gateway.lifecycle import (
    EXIT_FAILURE,
    EXIT_OK,
    Gateway,
    LifecycleState,
    ListenerError,
    ShutdownReason,
    _GatewayServer,
    run,
)
from bulb_gateway.services.database_relay import build_database_relay
from bulb_gateway.services.staging import StagingError
from bulb_gateway.services.storage_relay import build_storage_relay
from tests.conftest import BackendStub, make_settings

HOST = "127.0.0.1"


def _gateway(tmp_path: Path, ipfs_backend: BackendStub, **kwargs) -> Gateway:
    settings = make_settings(tmp_path, host=HOST, port=0, shutdown_grace_seconds=2.0)
    kwargs.setdefault("install_signal_handlers", False)
    return Gateway(
        settings,
        storage=build_storage_relay(settings, transport=ipfs_backend.transport),
        database=build_database_relay(settings),
        **kwargs,
    )


async def _wait_until_started(gateway: Gateway, serving: asyncio.Task) -> None:
    for _ in range(500):
        if gateway.started:
            return
        if serving.done():
            serving.result()
        await asyncio.sleep(0.01)
    raise AssertionError("gateway did not start")


def _refuses_connections(port: int) -> bool:
    try:
        socket.create_connection((HOST, port), timeout=1).close()
    except OSError:
        return True
    return False


@pytest.mark.asyncio
async def test_requested_shutdown_exits_cleanly(tmp_path: Path) -> None:
    gateway = _gateway(tmp_path, BackendStub())
    gateway.start()
    staging_dir = gateway.staging.directory
    port = gateway.port
    assert gateway._server.config.http == "h11"
    assert gateway._server.config.h11_max_incomplete_event_size == 1 << 20

    serving = asyncio.create_task(gateway.serve())
    await _wait_until_started(gateway, serving)
    assert gateway.state is LifecycleState.SERVING

    async with httpx.AsyncClient(base_url=f"http://{HOST}:{port}") as client:
        response = await client.get("/health")
    assert response.json() == {"status": "ok"}

    gateway.request_shutdown()
    assert await serving == EXIT_OK

    assert gateway.state is LifecycleState.STOPPED
    assert gateway.shutdown_reason is ShutdownReason.REQUESTED
    assert not staging_dir.exists()
    assert _refuses_connections(port)


@pytest.mark.asyncio
async def test_in_flight_upload_completes_during_drain(tmp_path: Path, monkeypatch) -> None:
    ipfs_backend = BackendStub(json_body={"Name": "a.png", "Hash": "QmSlow", "Size": "4"})
    ipfs_backend.delay = 0.5
    ipfs_backend.entered = asyncio.Event()

    gateway = _gateway(tmp_path, ipfs_backend)
    gateway.start()
    port = gateway.port

    refused_before_teardown: list[bool] = []
    teardown = gateway.staging.teardown

    def spy_teardown() -> None:
        refused_before_teardown.append(_refuses_connections(port))
        teardown()

    monkeypatch.setattr(gateway.staging, "teardown", spy_teardown)

    serving = asyncio.create_task(gateway.serve())
    await _wait_until_started(gateway, serving)

    async with httpx.AsyncClient(base_url=f"http://{HOST}:{port}") as client:
        upload = asyncio.create_task(
            client.post("/api/v0/upload-pic", files={"file": ("a.png", b"data", "image/png")})
        )
        await asyncio.wait_for(ipfs_backend.entered.wait(), timeout=5)
        gateway.request_shutdown()
        response = await upload

    assert response.status_code == 200
    assert response.json()["cid"] == "QmSlow"
    assert await serving == EXIT_OK
    assert refused_before_teardown == [True]


@pytest.mark.asyncio
async def test_sigterm_triggers_shutdown(tmp_path: Path) -> None:
    gateway = _gateway(tmp_path, BackendStub(), install_signal_handlers=True)
    gateway.start()

    serving = asyncio.create_task(gateway.serve())
    await _wait_until_started(gateway, serving)

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(serving, timeout=10) == EXIT_OK
    assert gateway.shutdown_reason is ShutdownReason.REQUESTED


@pytest.mark.asyncio
async def test_listener_failure_exits_with_error(tmp_path: Path, monkeypatch) -> None:
    async def broken_serve(self, sockets=None) -> None:
        raise OSError("accept failed")

    monkeypatch.setattr(_GatewayServer, "serve", broken_serve)

    gateway = _gateway(tmp_path, BackendStub())
    gateway.start()
    staging_dir = gateway.staging.directory

    assert await gateway.serve() == EXIT_FAILURE
    assert gateway.shutdown_reason is ShutdownReason.LISTENER_ERROR
    assert gateway.state is LifecycleState.STOPPED
    assert not staging_dir.exists()


@pytest.mark.asyncio
async def test_teardown_failure_exits_with_error(tmp_path: Path, monkeypatch) -> None:
    gateway = _gateway(tmp_path, BackendStub())
    gateway.start()

    def failing_teardown() -> None:
        raise StagingError("permission denied")

    monkeypatch.setattr(gateway.staging, "teardown", failing_teardown)

    serving = asyncio.create_task(gateway.serve())
    await _wait_until_started(gateway, serving)
    gateway.request_shutdown()

    assert await serving == EXIT_FAILURE
    assert gateway.state is LifecycleState.STOPPED


def test_bind_conflict_fails_start_and_removes_staging(tmp_path: Path) -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind((HOST, 0))
    blocker.listen()
    try:
        port = blocker.getsockname()[1]
        settings = make_settings(tmp_path, host=HOST, port=port)

        gateway = Gateway(settings, install_signal_handlers=False)
        with pytest.raises(ListenerError):
            gateway.start()
        assert list(tmp_path.iterdir()) == []

        assert run(settings) == EXIT_FAILURE
        assert list(tmp_path.iterdir()) == []
    finally:
        blocker.close()


def test_staging_init_failure_exits_with_error(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, staging_dir=str(tmp_path / "missing"), port=0)
    assert run(settings) == EXIT_FAILURE


@pytest.mark.asyncio
async def test_serve_requires_start(tmp_path: Path) -> None:
    gateway = _gateway(tmp_path, BackendStub())
    with pytest.raises(ListenerError):
        await gateway.serve()
