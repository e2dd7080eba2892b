"""Serve the built web UI, falling back to index.html for client-side routes."""

import logging
from pathlib import Path

from aiohttp import web

from .lib.errors import NotFound

log = logging.getLogger("mpris-bridge.ui")

INDEX = "index.html"


def make_ui_handler(root: Path):
    root = root.resolve()

    async def handle_ui(request: web.Request) -> web.FileResponse:
        relative = request.match_info.get("path", "")
        candidate = (root / relative).resolve()
        if candidate.is_relative_to(root) and candidate.is_file():
            return web.FileResponse(candidate)

        index = root / INDEX
        if index.is_file():
            return web.FileResponse(index)
        raise NotFound(f"not found: /{relative}")

    return handle_ui


def add_ui_routes(app: web.Application, ui_dir) -> bool:
    """Register the catch-all UI route.  False if ``ui_dir`` doesn't exist."""
    root = Path(ui_dir)
    if not root.is_dir():
        log.warning("UI directory %s not found, serving API only", root)
        return False
    log.info("Serving UI from %s", root)
    app.router.add_get("/{path:.*}", make_ui_handler(root))
    return True
