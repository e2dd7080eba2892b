"""
Media API — MPRIS player control and live status over HTTP.

Mounted under /api/media by server.py:

  GET  /players                  [[identity, bus name], ...]
  GET  /metadata/{player}        now-playing Metadata (JSON)
  POST /play_pause/{player}
  POST /next/{player}
  POST /previous/{player}
  POST /seek/{player}?offset=S   relative seek in seconds (unit-calibrated)
  GET  /position/{player}        Position in microseconds (text)
  POST /position/{player}?track_id=..&position=..
  GET  /position-sse/{player}    position events until EOS
  GET  /status/{player}          PlaybackStatus (text)
  GET  /image/{url}              artwork bytes, file:// or http(s)://
  GET  /player-sse/{player}      metadata / status change events

Players are resolved per request; nothing is cached between requests.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path

import aiohttp
from aiohttp import web
from dbus_fast.aio import MessageBus
from PIL import Image, UnidentifiedImageError

from .lib.errors import InvalidPosition, IOFailure, MissingPosition, MissingTrackId
from .lib.events import write_event_stream
from .lib.http_utils import parse_i64
from .lib.pollers import open_player_stream, open_position_stream
from .lib.seek import calibrated_seek, parse_offset
from .players.mpris import check_track_id, get_identity, list_players, resolve_player

log = logging.getLogger("mpris-bridge.media")

BUS_KEY = web.AppKey("bus", MessageBus)
HTTP_SESSION_KEY = web.AppKey("http_session", aiohttp.ClientSession)
SESSIONS_KEY = web.AppKey("sessions", set)

FILE_MARKER = "file://"


@asynccontextmanager
async def player_proxy(request: web.Request, cached: bool = True):
    """Resolve the route's {player} for the duration of the handler."""
    proxy = await resolve_player(
        request.config_dict[BUS_KEY], request.match_info["player"], cached=cached)
    try:
        yield proxy
    finally:
        proxy.close()


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_players(request: web.Request) -> web.Response:
    bus = request.config_dict[BUS_KEY]
    players = []
    for player in await list_players(bus):
        players.append([await get_identity(bus, player), player])
    return web.json_response(players)


async def handle_metadata(request: web.Request) -> web.Response:
    log.info("Get player metadata: %s", request.match_info["player"])
    async with player_proxy(request) as proxy:
        metadata = await proxy.metadata()
    log.debug("metadata: %s", metadata)
    return web.json_response(metadata.to_dict())


async def handle_play_pause(request: web.Request) -> web.Response:
    log.info("PlayPause: %s", request.match_info["player"])
    async with player_proxy(request) as proxy:
        await proxy.play_pause()
    return web.Response()


async def handle_next(request: web.Request) -> web.Response:
    log.info("Call next on player: %s", request.match_info["player"])
    async with player_proxy(request) as proxy:
        await proxy.next()
    return web.Response()


async def handle_previous(request: web.Request) -> web.Response:
    log.info("Call previous on player: %s", request.match_info["player"])
    async with player_proxy(request) as proxy:
        await proxy.previous()
    return web.Response()


async def handle_seek(request: web.Request) -> web.Response:
    offset = parse_offset(request.query.get("offset"))
    player = request.match_info["player"]
    log.info("Seek: %s with %d", player, offset)
    async with player_proxy(request, cached=False) as proxy:
        unit = await calibrated_seek(proxy, offset)
    log.debug("Seek on %s used %s", player, unit)
    return web.Response()


async def handle_position_get(request: web.Request) -> web.Response:
    log.info("Get current player: %s position", request.match_info["player"])
    async with player_proxy(request) as proxy:
        position = await proxy.position()
    return web.Response(text=str(position))


async def handle_position_set(request: web.Request) -> web.Response:
    track_id = request.query.get("track_id")
    if track_id is None:
        raise MissingTrackId()
    raw = request.query.get("position")
    if raw is None:
        raise MissingPosition()
    position = parse_i64(raw)
    if position is None:
        raise InvalidPosition()
    check_track_id(track_id)

    log.info("SetPosition: %s position: %d, track_id: %s",
             request.match_info["player"], position, track_id)
    async with player_proxy(request) as proxy:
        await proxy.set_position(track_id, position)
    return web.Response()


async def handle_status(request: web.Request) -> web.Response:
    log.info("Get current playback status for player: %s", request.match_info["player"])
    async with player_proxy(request) as proxy:
        status = await proxy.playback_status()
    return web.Response(text=status)


def sniff_content_type(data: bytes) -> str:
    """Image MIME type from the bytes themselves; artwork URLs rarely say."""
    try:
        with Image.open(BytesIO(data)) as image:
            return Image.MIME.get(image.format, "application/octet-stream")
    except (UnidentifiedImageError, OSError):
        return "application/octet-stream"


async def fetch_image(session: aiohttp.ClientSession, url: str) -> bytes:
    if url.startswith(FILE_MARKER):
        path = Path(url[len(FILE_MARKER):])
        log.debug("trying to get path %s", path)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, path.read_bytes)
        except OSError as e:
            raise IOFailure(f"failed to read image: {e}") from e

    try:
        async with session.get(url) as resp:
            resp.raise_for_status()
            return await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise IOFailure(f"failed to load image: {e}") from e


async def handle_image(request: web.Request) -> web.Response:
    url = request.match_info["url"]
    log.info("Get image data for url: %s", url)
    data = await fetch_image(request.config_dict[HTTP_SESSION_KEY], url)
    return web.Response(body=data, content_type=sniff_content_type(data))


async def handle_position_sse(request: web.Request) -> web.StreamResponse:
    events = await open_position_stream(
        request.config_dict[BUS_KEY], request.match_info["player"],
        request.config_dict[SESSIONS_KEY])
    return await write_event_stream(request, events)


async def handle_player_sse(request: web.Request) -> web.StreamResponse:
    events = await open_player_stream(
        request.config_dict[BUS_KEY], request.match_info["player"],
        request.config_dict[SESSIONS_KEY])
    return await write_event_stream(request, events)


def create_media_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/players", handle_players)
    app.router.add_get("/metadata/{player}", handle_metadata)
    app.router.add_post("/play_pause/{player}", handle_play_pause)
    app.router.add_post("/next/{player}", handle_next)
    app.router.add_post("/previous/{player}", handle_previous)
    app.router.add_post("/seek/{player}", handle_seek)
    app.router.add_get("/position/{player}", handle_position_get)
    app.router.add_post("/position/{player}", handle_position_set)
    app.router.add_get("/position-sse/{player}", handle_position_sse)
    app.router.add_get("/status/{player}", handle_status)
    app.router.add_get("/image/{url:.+}", handle_image)
    app.router.add_get("/player-sse/{player}", handle_player_sse)
    return app
