#!/usr/bin/env python3
"""
mpris-bridge HTTP server.

Exposes the MPRIS players on the D-Bus session bus over HTTP so a browser
UI can list players, control them and follow their state over SSE.

  /api/status        health check
  /api/media/...     player control and streams (media.py)
  /api/volume        default sink volume (volume.py)
  /*                 built web UI, when UI_DIR exists

Port: 4433 (PORT / server.port)
"""

import asyncio
import logging
import os
import ssl

import aiohttp
from aiohttp import web
from dbus_fast import BusType
from dbus_fast.aio import MessageBus

from .lib.config import cfg, setting
from .lib.http_utils import cors_middleware, error_middleware
from .lib.volume_adapters import VolumeAdapter, create_volume_adapter
from .media import BUS_KEY, HTTP_SESSION_KEY, SESSIONS_KEY, create_media_app
from .ui import add_ui_routes
from .volume import VOLUME_KEY, add_volume_routes

logger = logging.getLogger("mpris-bridge")

DEFAULT_PORT = 4433
DEFAULT_UI_DIR = "./assets"
SHUTDOWN_GRACE = 2.0  # seconds for poller tasks to unwind

CERT_CHAIN = "certificates.pem"
PRIVATE_KEY = "server-private-key.pem"


def setup_logging():
    """Configure the root logger once, from LOG_LEVEL / JOURNAL_LOGGING."""
    level = str(setting("LOG_LEVEL", "logging", "level", default="INFO")).upper()
    if os.getenv("JOURNAL_LOGGING"):
        # journald stamps lines itself
        fmt, datefmt = "%(levelname)s %(name)s: %(message)s", None
    else:
        fmt, datefmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    logging.basicConfig(level=getattr(logging, level, logging.INFO),
                        format=fmt, datefmt=datefmt)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_status(request: web.Request) -> web.Response:
    return web.Response(text="OK")


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------

async def on_startup(app: web.Application):
    if app.get(BUS_KEY) is None:
        app[BUS_KEY] = await MessageBus(bus_type=BusType.SESSION).connect()
        logger.info("Connected to the D-Bus session bus")
    if app.get(HTTP_SESSION_KEY) is None:
        app[HTTP_SESSION_KEY] = aiohttp.ClientSession()


async def on_cleanup(app: web.Application):
    sessions = app[SESSIONS_KEY]
    if sessions:
        logger.info("Stopping %d stream session(s)", len(sessions))
        for task in list(sessions):
            task.cancel()
        await asyncio.wait(list(sessions), timeout=SHUTDOWN_GRACE)

    await app[HTTP_SESSION_KEY].close()
    app[BUS_KEY].disconnect()


def create_app(bus: MessageBus | None = None,
               volume: VolumeAdapter | None = None,
               http_session: aiohttp.ClientSession | None = None,
               ui_dir=None) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[BUS_KEY] = bus
    app[HTTP_SESSION_KEY] = http_session
    app[SESSIONS_KEY] = set()
    app[VOLUME_KEY] = volume if volume is not None else create_volume_adapter()

    app.router.add_get("/api/status", handle_status)
    api = web.Application()
    add_volume_routes(api)
    api.add_subapp("/media", create_media_app())
    app.add_subapp("/api", api)

    if ui_dir is None:
        ui_dir = setting("UI_DIR", "server", "ui_dir", default=DEFAULT_UI_DIR)
    add_ui_routes(app, ui_dir)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def tls_enabled() -> bool:
    """TLS in the environment, with any value, turns HTTPS on."""
    if os.getenv("TLS") is not None:
        return True
    return bool(cfg("server", "tls", default=False))


def create_ssl_context() -> ssl.SSLContext | None:
    """HTTPS context when TLS is set; certificates come from CERTS_DIR."""
    if not tls_enabled():
        return None
    certs_dir = setting("CERTS_DIR", "server", "certs_dir")
    if not certs_dir:
        raise SystemExit("TLS is enabled but CERTS_DIR is not set")
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(os.path.join(certs_dir, CERT_CHAIN),
                        os.path.join(certs_dir, PRIVATE_KEY))
    logger.info("TLS enabled with certificates from %s", certs_dir)
    return ctx


def main():
    setup_logging()
    port = int(setting("PORT", "server", "port", default=DEFAULT_PORT))
    app = create_app()
    web.run_app(app, host="0.0.0.0", port=port, ssl_context=create_ssl_context(),
                print=lambda msg: logger.info(msg))


if __name__ == "__main__":
    main()
