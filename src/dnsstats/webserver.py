"""Admin HTTP server for dnsstats.

This module provides a small FastAPI application, an adapter that lets the
statistics engine register its handlers on it, and helpers to run it with
uvicorn in a background thread.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI

logger = logging.getLogger("dnsstats.webserver")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5380


def _utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string with a Z suffix."""

    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class FastAPIRouteRegistrar:
    """RouteRegistrar adapter adding ``(method, path, handler)`` routes to a FastAPI app.

    Inputs (constructor):
      - app: FastAPI application to register routes on.

    Outputs:
      - Callable object usable as StatsConfig.http_register.

    Example:
      >>> app = create_app({})
      >>> register = FastAPIRouteRegistrar(app)
      >>> async def ping(): return {"ok": True}
      >>> register("GET", "/ping", ping)
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    def __call__(self, method: str, path: str, handler: Callable[..., Any]) -> None:
        self.app.add_api_route(path, handler, methods=[method.upper()])
        logger.debug("Registered %s %s", method.upper(), path)


def create_app(config: Dict[str, Any]) -> FastAPI:
    """Create the FastAPI app exposing the admin endpoints.

    Inputs:
      - config: Full configuration dict loaded from YAML.

    Outputs:
      - FastAPI application with a /health route. Statistics routes are added
        by the engine through FastAPIRouteRegistrar.
    """

    app = FastAPI(title="dnsstats admin HTTP API")
    app.state.config = config

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Return simple liveness information."""

        return {"status": "ok", "server_time": _utc_now_iso()}

    return app


class WebServerHandle:
    """Handle for a background uvicorn server thread.

    Inputs (constructor):
      - thread: Thread running the uvicorn server loop.
      - server: Optional uvicorn.Server instance.

    Outputs:
      - WebServerHandle instance with stop() and is_running().
    """

    def __init__(self, thread: threading.Thread, server: Any | None = None) -> None:
        self._thread = thread
        self._server = server

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait for the thread.

        Inputs:
          - timeout: Seconds to wait for the thread to exit.
        """

        if self._server is not None:
            self._server.should_exit = True
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Webserver thread did not exit within %.1fs", timeout)


def start_webserver(app: FastAPI, config: Dict[str, Any]) -> Optional[WebServerHandle]:
    """Start uvicorn serving ``app`` in a daemon thread.

    Inputs:
      - app: FastAPI application from create_app().
      - config: Full configuration dict; the ``webserver`` block supplies
        enabled/host/port.

    Outputs:
      - WebServerHandle, or None when ``webserver.enabled`` is false.
    """

    import uvicorn

    web_cfg = (config.get("webserver") or {}) if isinstance(config, dict) else {}
    if not web_cfg.get("enabled", True):
        return None

    host = str(web_cfg.get("host", DEFAULT_HOST))
    port = int(web_cfg.get("port", DEFAULT_PORT))
    if host in ("0.0.0.0", "::"):
        logger.warning(
            "dnsstats webserver is bound to %s without authentication; consider restricting host",
            host,
        )

    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))

    def _runner() -> None:
        try:
            server.run()
        except Exception:  # pragma: no cover - environment specific
            logger.exception("Unhandled exception in webserver thread")

    thread = threading.Thread(target=_runner, name="dnsstats-webserver", daemon=True)
    thread.start()

    logger.info("Started dnsstats webserver on %s:%d", host, port)
    return WebServerHandle(thread, server)
