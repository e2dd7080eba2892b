"""
Default audio sink volume over HTTP.

  GET  /api/volume   current percentage as text
  POST /api/volume   form field ``percent``
"""

import logging

from aiohttp import web

from .lib.errors import InvalidParameter, MissingParameter
from .lib.volume_adapters import VolumeAdapter

log = logging.getLogger("mpris-bridge.volume")

VOLUME_KEY = web.AppKey("volume", VolumeAdapter)


async def handle_volume_get(request: web.Request) -> web.Response:
    log.info("Get system volume for default sink")
    volume = await request.config_dict[VOLUME_KEY].get_volume()
    return web.Response(text=str(volume))


async def handle_volume_set(request: web.Request) -> web.Response:
    form = await request.post()
    raw = form.get("percent")
    if raw is None:
        raise MissingParameter("missing percent")
    try:
        percent = int(raw)
    except (TypeError, ValueError):
        raise InvalidParameter("invalid percent") from None
    if percent < 0:
        raise InvalidParameter("invalid percent")

    log.info("Set system volume for default sink to percent: %d", percent)
    await request.config_dict[VOLUME_KEY].set_volume(percent)
    return web.Response()


def add_volume_routes(app: web.Application):
    app.router.add_get("/volume", handle_volume_get)
    app.router.add_post("/volume", handle_volume_set)
