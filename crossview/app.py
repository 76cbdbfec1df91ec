"""Application bootstrap for the crossview API server.

Startup order: config → logging → repository → REST.
Shutdown runs in reverse: the REST server stops accepting requests before
the repository closes its per-context API clients.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from crossview.config import load_config
from crossview.models.config import CrossviewConfig
from crossview.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from crossview.repository.base import KubernetesRepository

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class CrossviewApp:
    """Application root. Owns the repository and the REST server.

    ``stop()`` is safe on an app that was never started or already stopped.
    """

    def __init__(self, config: CrossviewConfig | None = None) -> None:
        self.config: CrossviewConfig | None = config
        self._repository: KubernetesRepository | None = None
        self._rest_server: object | None = None
        self._rest_task: asyncio.Task[None] | None = None
        self._running = False
        self._log: FilteringBoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("crossview starting", version=_crossview_version(), mode=self.config.repository.mode)

        await self._start_repository()
        await self._start_rest()

        self._running = True
        self._log.info("crossview started", host=self.config.api.host, port=self.config.api.port)

    async def _start_repository(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from crossview.repository import build_repository

            self._repository = build_repository(self.config)
            current = None
            if self.config.repository.mode == "cluster":
                # Missing credentials are fatal; an unreachable cluster is not.
                current = await self._repository.get_current_context()
            self._log.info("repository ready", mode=self.config.repository.mode, context=current)
        except Exception as exc:
            raise _ComponentError("repository", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._repository is not None
        try:
            import uvicorn

            from crossview.api import create_app

            fastapi_app = create_app(self._repository, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            self._rest_task = asyncio.create_task(server.serve(), name="rest-server")
            self._rest_server = server
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop the REST server, then close the repository.

        Each step is guarded independently so one failure does not skip the
        other.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("crossview shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._rest_task is not None:
            try:
                await asyncio.wait_for(self._rest_task, timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                log.warning("component stop timed out", component="rest", timeout=_SHUTDOWN_GRACE_SECONDS)
                self._rest_task.cancel()
            except Exception as exc:
                log.error("component stop raised an error", component="rest", error=str(exc))
        self._rest_task = None
        self._rest_server = None

        if self._repository is not None:
            try:
                await self._repository.close()
            except Exception as exc:
                log.error("component stop raised an error", component="repository", error=str(exc))
            self._repository = None

        log.info("crossview stopped")


def _crossview_version() -> str:
    from crossview import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = CrossviewApp()
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
        while app.running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal startup error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
