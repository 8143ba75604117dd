"""Application bootstrap for statehistory.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → durable slot → history store (load)
              → coordinator → live state → REST

The history store is built exactly once here and handed by reference to
everything that needs it; nothing else constructs one for the running
server.  Shutdown stops components in reverse order, each step guarded so a
failing teardown does not block the rest.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from statehistory.config import load_config
from statehistory.history.slot import DurableSlot, FileSlot, MemorySlot
from statehistory.history.store import HistoryStore
from statehistory.models.config import StateHistoryConfig, StorageConfig
from statehistory.observability.logging import get_logger, setup_logging
from statehistory.rollback.coordinator import RollbackCoordinator
from statehistory.rollback.identity import ContextIdentityProvider
from statehistory.rollback.live_state import LiveStateRegistry

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 10


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def build_slot(storage: StorageConfig) -> DurableSlot:
    """Return the durable slot described by *storage*."""
    if not storage.persistence_enabled:
        return MemorySlot(name=storage.storage_key)
    return FileSlot(storage.storage_dir, key=storage.storage_key)


class HistoryApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe on an app that was never started or already stopped.
    """

    def __init__(self, config: StateHistoryConfig | None = None) -> None:
        self.config = config
        self.store: HistoryStore | None = None
        self.coordinator: RollbackCoordinator | None = None
        self.live_state: LiveStateRegistry | None = None

        self._rest_server: object | None = None
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, serve: bool = True) -> None:
        """Start all components in dependency order.

        ``serve=False`` builds everything except the HTTP server.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("statehistory starting", version=_statehistory_version())

        self._start_history()
        self._start_coordinator()
        if serve:
            await self._start_rest()

        self._running = True
        self._log.info("statehistory started", serving=serve)

    def _start_history(self) -> None:
        """Open the durable slot and rehydrate the history store from it."""
        assert self._log is not None
        assert self.config is not None
        try:
            slot = build_slot(self.config.storage)
            store = HistoryStore(slot, max_entries=self.config.history.max_entries)
            loaded = store.load_from_durable_storage()
            self.store = store
            self._log.info(
                "history store started",
                slot=slot.name,
                persistence=self.config.storage.persistence_enabled,
                entries=loaded,
                max_entries=store.max_entries,
            )
        except Exception as exc:
            raise _ComponentError("history_store", exc) from exc

    def _start_coordinator(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self.store is not None
        try:
            self.coordinator = RollbackCoordinator(
                self.store,
                ContextIdentityProvider(),
                unauthenticated_policy=self.config.history.unauthenticated_policy,
            )
            self.live_state = LiveStateRegistry(self.coordinator)
            self._log.info(
                "rollback coordinator started",
                unauthenticated_policy=self.config.history.unauthenticated_policy.value,
            )
        except Exception as exc:
            raise _ComponentError("coordinator", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server as a background task."""
        assert self._log is not None
        assert self.config is not None
        assert self.coordinator is not None
        try:
            import uvicorn

            from statehistory.api import create_app

            fastapi_app = create_app(coordinator=self.coordinator, live_state=self.live_state)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", host=self.config.api.host, port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("statehistory shutting down")
        self._running = False

        server = self._rest_server
        if server is not None:
            server.should_exit = True  # type: ignore[attr-defined]

        if self._background_tasks:
            done, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                log.warning("task did not stop in time", task=task.get_name(), timeout=_SHUTDOWN_GRACE_SECONDS)
                task.cancel()
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    log.error("task raised during shutdown", task=task.get_name(), error=str(task.exception()))
        self._background_tasks.clear()
        self._rest_server = None

        self.live_state = None
        self.coordinator = None
        self.store = None
        log.info("statehistory stopped")


def _statehistory_version() -> str:
    from statehistory import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: StateHistoryConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = HistoryApp(config)
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()
