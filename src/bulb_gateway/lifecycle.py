"""Process lifecycle of the gateway: start, serve, drain and clean up.

The gateway moves through STARTING -> SERVING -> DRAINING -> STOPPED. While
serving, two one-shot completions race each other: a shutdown request (SIGINT,
SIGTERM or `Gateway.request_shutdown`) and the listener task ending on its
own. Whichever finishes first decides why the gateway stops; the other one is
discarded. The staging directory is only removed once the listener stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import socket
from enum import Enum

import uvicorn

from bulb_gateway.core.settings import Settings
from bulb_gateway.main import create_app
from bulb_gateway.services.database_relay import DatabaseRelay
from bulb_gateway.services.staging import StagingError, StagingStore
from bulb_gateway.services.storage_relay import StorageRelay

# Configure logger for this module
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

# Time allowed on top of the graceful-shutdown window for uvicorn to close
# connections and run the app's lifespan shutdown.
DRAIN_MARGIN_SECONDS = 5.0

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(Enum):
    """Lifecycle states of a gateway process."""

    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class ShutdownReason(Enum):
    """Which completion won the race that ends the SERVING state."""

    REQUESTED = "requested"
    LISTENER_ERROR = "listener_error"


class ListenerError(RuntimeError):
    """Raised when the listener cannot be bound or stops serving on its own."""


class _GatewayServer(uvicorn.Server):
    """uvicorn server leaving signal handling to the gateway."""

    def install_signal_handlers(self) -> None:  # uvicorn < 0.29
        return None

    def capture_signals(self) -> contextlib.AbstractContextManager[None]:  # uvicorn >= 0.29
        return contextlib.nullcontext()


def bind_listener(host: str, port: int) -> socket.socket:
    """Bind a TCP listening socket.

    Raises:
        ListenerError: If the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(socket.SOMAXCONN)
    except OSError as exc:
        sock.close()
        raise ListenerError(f"Unable to listen on {host}:{port}: {exc}") from exc
    sock.set_inheritable(True)
    return sock


class Gateway:
    """Owns the staging store, the HTTP listener and the shutdown sequence."""

    def __init__(
        self,
        settings: Settings,
        *,
        staging: StagingStore | None = None,
        storage: StorageRelay | None = None,
        database: DatabaseRelay | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.settings = settings
        self.staging = staging or StagingStore(
            prefix=settings.staging_prefix,
            base_dir=settings.staging_dir,
        )
        self._storage = storage
        self._database = database
        self._install_signal_handlers = install_signal_handlers

        self.state = LifecycleState.STARTING
        self.shutdown_reason: ShutdownReason | None = None
        self._socket: socket.socket | None = None
        self._server: _GatewayServer | None = None
        self._shutdown_requested = asyncio.Event()

    @property
    def port(self) -> int:
        """Port the listener is bound to; useful when configured with port 0."""
        if self._socket is None:
            raise ListenerError("Listener is not bound")
        return self._socket.getsockname()[1]

    @property
    def started(self) -> bool:
        """True once uvicorn is accepting connections."""
        return self._server is not None and self._server.started

    def start(self) -> None:
        """Prepare everything needed to serve.

        Raises:
            StagingError: If the staging directory cannot be created
            ListenerError: If the listener cannot be bound
        """
        self.staging.init()
        app = create_app(
            self.settings,
            self.staging,
            storage=self._storage,
            database=self._database,
        )

        try:
            self._socket = bind_listener(self.settings.host, self.settings.port)
        except ListenerError:
            self.staging.teardown()
            raise

        config = uvicorn.Config(
            app,
            host=self.settings.host,
            port=self.port,
            lifespan="on",
            http="h11",
            log_config=None,
            timeout_graceful_shutdown=self.settings.shutdown_grace_seconds,
            h11_max_incomplete_event_size=self.settings.max_header_bytes,
        )
        self._server = _GatewayServer(config)

    def request_shutdown(self) -> None:
        """Ask the gateway to stop serving; safe to call more than once."""
        self._shutdown_requested.set()

    def _on_signal(self, signum: int) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self.request_shutdown()

    def _add_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:  # pragma: no cover - non-Unix event loops
                signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(self._on_signal, signum)
                )

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:  # pragma: no cover - non-Unix event loops
                signal.signal(sig, signal.SIG_DFL)

    async def _listen(self) -> None:
        assert self._server is not None and self._socket is not None
        try:
            await self._server.serve(sockets=[self._socket])
        except (Exception, SystemExit) as exc:
            raise ListenerError(f"Listener failed: {exc!r}") from exc

        if not self._shutdown_requested.is_set():
            raise ListenerError("Listener stopped without a shutdown request")

    async def serve(self) -> int:
        """Serve until shutdown is requested or the listener fails.

        Returns:
            EXIT_OK after a clean drain and cleanup, EXIT_FAILURE otherwise
        """
        if self._server is None:
            raise ListenerError("Gateway.start() must be called before serve()")

        loop = asyncio.get_running_loop()
        if self._install_signal_handlers:
            self._add_signal_handlers(loop)

        self.state = LifecycleState.SERVING
        logger.info("Server started on %s:%d", self.settings.host, self.port)

        listener = asyncio.create_task(self._listen(), name="gateway-listener")
        requested = asyncio.create_task(self._shutdown_requested.wait(), name="gateway-shutdown")
        try:
            done, _ = await asyncio.wait(
                {listener, requested},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            requested.cancel()
            if self._install_signal_handlers:
                self._remove_signal_handlers(loop)

        if listener in done:
            self.shutdown_reason = ShutdownReason.LISTENER_ERROR
        else:
            self.shutdown_reason = ShutdownReason.REQUESTED

        drained = await self._drain(listener)
        cleaned = self._cleanup()
        return EXIT_OK if drained and cleaned else EXIT_FAILURE

    async def _drain(self, listener: asyncio.Task[None]) -> bool:
        assert self._server is not None
        self.state = LifecycleState.DRAINING
        self._server.should_exit = True

        deadline = self.settings.shutdown_grace_seconds + DRAIN_MARGIN_SECONDS
        try:
            await asyncio.wait_for(listener, timeout=deadline)
        except TimeoutError:
            logger.error("Server shutdown error: did not stop within %.1fs", deadline)
            return False
        except ListenerError as exc:
            logger.error("Server shutdown error: %s", exc)
            return False
        finally:
            # uvicorn skips its own shutdown if asked to exit during startup
            for server in getattr(self._server, "servers", []):
                server.close()
            if self._socket is not None:
                self._socket.close()

        logger.info("Server stopped")
        return True

    def _cleanup(self) -> bool:
        self.state = LifecycleState.STOPPED
        try:
            self.staging.teardown()
        except StagingError as exc:
            logger.error("Error removing temporary directory: %s", exc)
            return False
        return True


def run(settings: Settings | None = None) -> int:
    """Start the gateway and block until it stopped.

    Returns:
        Process exit code
    """
    settings = settings or Settings()
    gateway = Gateway(settings)
    try:
        gateway.start()
    except (StagingError, ListenerError) as exc:
        logger.critical("Gateway failed to start: %s", exc)
        return EXIT_FAILURE
    return asyncio.run(gateway.serve())
