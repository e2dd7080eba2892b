"""
MPRIS players on the D-Bus session bus.

Discovery (``list_players``, ``get_identity``) talks to the bus daemon
directly.  ``resolve_player`` introspects one player and returns a
``PlayerProxy`` wrapping its ``org.mpris.MediaPlayer2.Player`` interface.

Two flavours of proxy:

  cached    Metadata and PlaybackStatus are kept after the first read and
            refreshed from PropertiesChanged signals.  Fine for one-shot
            route handlers.
  uncached  every read is a fresh Get.  Pollers must use this: a stale
            value would break change detection and EOS detection.

Position is never cached: MPRIS does not emit PropertiesChanged for it.
"""

import asyncio
import logging

from dbus_fast import Message, MessageType
from dbus_fast.errors import (
    DBusError,
    InterfaceNotFoundError,
    InvalidBusNameError,
    InvalidObjectPathError,
)
from dbus_fast.validators import assert_object_path_valid

from ..lib.errors import (
    InvalidTrackId,
    ProtocolShapeViolation,
    ProxyUnavailable,
    RemoteCallFailed,
)
from ..lib.metadata import normalize

log = logging.getLogger("mpris-bridge.mpris")

MPRIS_PREFIX = "org.mpris.MediaPlayer2"
MPRIS_PATH = "/org/mpris/MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"

CALL_TIMEOUT = 25.0  # libdbus default method call timeout

_REMOTE_ERRORS = (DBusError, asyncio.TimeoutError, OSError, EOFError)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

async def _bus_call(bus, message: Message, what: str):
    try:
        reply = await asyncio.wait_for(bus.call(message), CALL_TIMEOUT)
    except _REMOTE_ERRORS as e:
        raise RemoteCallFailed(f"Failed to call {what} via DBus: {e}") from e
    if reply.message_type == MessageType.ERROR:
        detail = reply.body[0] if reply.body else ""
        raise RemoteCallFailed(
            f"Failed to call {what} via DBus: {reply.error_name}: {detail}")
    return reply.body


async def list_players(bus) -> list[str]:
    """Bus names of every MPRIS player currently on the bus."""
    body = await _bus_call(bus, Message(
        destination=DBUS_NAME,
        path=DBUS_PATH,
        interface=DBUS_NAME,
        member="ListNames",
    ), "ListNames")
    names = body[0]
    log.debug("Got ListNames: %s", names)
    return [name for name in names if name.startswith(MPRIS_PREFIX)]


async def get_identity(bus, player: str) -> str:
    """Human readable name of a player (the root interface ``Identity``)."""
    log.info("Getting player: %s Identity", player)
    try:
        message = Message(
            destination=player,
            path=MPRIS_PATH,
            interface=PROPERTIES_INTERFACE,
            member="Get",
            signature="ss",
            body=[MPRIS_PREFIX, "Identity"],
        )
    except InvalidBusNameError as e:
        raise ProxyUnavailable(f"failed to get identity: {e}") from e
    try:
        body = await _bus_call(bus, message, "Identity")
    except RemoteCallFailed as e:
        raise RemoteCallFailed(f"failed to get identity: {e}") from e
    variant = body[0]
    if variant.signature != "s":
        raise ProtocolShapeViolation(
            f"player {player} Identity has signature {variant.signature!r}, expected 's'")
    return variant.value


# ---------------------------------------------------------------------------
# Player proxy
# ---------------------------------------------------------------------------

def check_track_id(track_id: str):
    """Track ids are D-Bus object paths; raise InvalidTrackId otherwise."""
    try:
        assert_object_path_valid(track_id)
    except InvalidObjectPathError as e:
        raise InvalidTrackId(
            f"Failed to create ObjectPath from track_id: {track_id}") from e


class PlayerProxy:
    """Typed handle to one player's Player interface."""

    CACHEABLE = ("Metadata", "PlaybackStatus")

    def __init__(self, interface, destination: str, properties=None,
                 cached: bool = True, timeout: float = CALL_TIMEOUT):
        self.destination = destination
        self.cached = cached
        self._iface = interface
        self._properties = properties
        self._timeout = timeout
        self._cache = {}
        self._subscribed = False
        if cached and properties is not None:
            properties.on_properties_changed(self._on_properties_changed)
            self._subscribed = True

    def close(self):
        """Drop the PropertiesChanged subscription (cached proxies only)."""
        if self._subscribed:
            self._properties.off_properties_changed(self._on_properties_changed)
            self._subscribed = False
        self._cache.clear()

    def _on_properties_changed(self, interface_name, changed, invalidated):
        if interface_name != PLAYER_INTERFACE:
            return
        for name, variant in changed.items():
            if name in self.CACHEABLE:
                self._cache[name] = variant.value
        for name in invalidated:
            self._cache.pop(name, None)

    async def _call(self, what: str, coro):
        try:
            return await asyncio.wait_for(coro, self._timeout)
        except _REMOTE_ERRORS as e:
            raise RemoteCallFailed(
                f"Failed to {what} player: {self.destination}: {e}") from e

    async def _get(self, name: str, getter):
        if self.cached and name in self._cache:
            return self._cache[name]
        value = await self._call(f"get {name} of", getter())
        if self.cached and name in self.CACHEABLE:
            self._cache[name] = value
        return value

    # -- methods --

    async def play_pause(self) -> None:
        await self._call("PlayPause", self._iface.call_play_pause())

    async def next(self) -> None:
        await self._call("Next", self._iface.call_next())

    async def previous(self) -> None:
        await self._call("Previous", self._iface.call_previous())

    async def seek(self, offset: int) -> None:
        await self._call(f"Seek {offset} on", self._iface.call_seek(offset))

    async def set_position(self, track_id: str, offset: int) -> None:
        check_track_id(track_id)
        await self._call("SetPosition on",
                         self._iface.call_set_position(track_id, offset))

    # -- properties --

    async def metadata(self):
        raw = await self._get("Metadata", self._iface.get_metadata)
        return normalize(raw)

    async def position(self) -> int:
        return await self._get("Position", self._iface.get_position)

    async def playback_status(self) -> str:
        return await self._get("PlaybackStatus", self._iface.get_playback_status)

    async def length(self) -> int:
        return (await self.metadata()).length


async def resolve_player(bus, destination: str, cached: bool = True) -> PlayerProxy:
    """Introspect ``destination`` and return a proxy for its Player interface.

    Raises ProxyUnavailable when the name is not on the bus, is not a valid
    bus name, or does not implement org.mpris.MediaPlayer2.Player.
    """
    try:
        introspection = await asyncio.wait_for(
            bus.introspect(destination, MPRIS_PATH), CALL_TIMEOUT)
        obj = bus.get_proxy_object(destination, MPRIS_PATH, introspection)
        interface = obj.get_interface(PLAYER_INTERFACE)
    except (DBusError, InterfaceNotFoundError, InvalidBusNameError,
            asyncio.TimeoutError) as e:
        raise ProxyUnavailable(
            "Failed to create DBus Player2 connection MPRIS protocol "
            f"for player: {destination}: {e}") from e

    properties = None
    if cached:
        try:
            properties = obj.get_interface(PROPERTIES_INTERFACE)
        except InterfaceNotFoundError:
            log.debug("%s has no Properties interface, caching disabled", destination)

    return PlayerProxy(interface, destination, properties, cached=cached)
