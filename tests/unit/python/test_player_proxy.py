"""Tests for mpris_bridge/players/mpris.py — discovery, PlayerProxy caching, errors."""

import asyncio
from types import SimpleNamespace

import pytest
from dbus_fast import MessageType, Variant
from dbus_fast.errors import DBusError, InterfaceNotFoundError

from mpris_bridge.lib.errors import (
    InvalidTrackId,
    ProtocolShapeViolation,
    ProxyUnavailable,
    RemoteCallFailed,
)
from mpris_bridge.players.mpris import (
    PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    PlayerProxy,
    check_track_id,
    get_identity,
    list_players,
    resolve_player,
)

PLAYER = "org.mpris.MediaPlayer2.vlc"


class FakeInterface:
    """Looks like a dbus_fast proxy interface for org.mpris.MediaPlayer2.Player."""

    def __init__(self, title="So What", position=0, status="Playing", error=None):
        self.title = title
        self._position = position
        self.status = status
        self.error = error
        self.reads = {"Metadata": 0, "Position": 0, "PlaybackStatus": 0}
        self.calls = []

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    async def get_metadata(self):
        self._maybe_fail()
        self.reads["Metadata"] += 1
        return {"xesam:title": Variant("s", self.title),
                "mpris:length": Variant("x", 1000)}

    async def get_position(self):
        self._maybe_fail()
        self.reads["Position"] += 1
        return self._position

    async def get_playback_status(self):
        self._maybe_fail()
        self.reads["PlaybackStatus"] += 1
        return self.status

    async def call_play_pause(self):
        self._maybe_fail()
        self.calls.append("PlayPause")

    async def call_next(self):
        self.calls.append("Next")

    async def call_previous(self):
        self.calls.append("Previous")

    async def call_seek(self, offset):
        self._maybe_fail()
        self.calls.append(("Seek", offset))

    async def call_set_position(self, track_id, offset):
        self.calls.append(("SetPosition", track_id, offset))


class FakeProperties:
    def __init__(self):
        self.handlers = []

    def on_properties_changed(self, handler):
        self.handlers.append(handler)

    def off_properties_changed(self, handler):
        self.handlers.remove(handler)

    def emit(self, interface, changed, invalidated=()):
        for handler in list(self.handlers):
            handler(interface, changed, list(invalidated))


class SlowInterface(FakeInterface):
    async def get_position(self):
        await asyncio.sleep(1)
        return 0


def run(coro):
    return asyncio.run(coro)


class TestCaching:
    def test_cached_proxy_reads_metadata_once(self):
        iface = FakeInterface()
        proxy = PlayerProxy(iface, PLAYER, FakeProperties(), cached=True)

        async def scenario():
            first = await proxy.metadata()
            second = await proxy.metadata()
            return first, second

        first, second = run(scenario())
        assert first == second
        assert first.title == "So What"
        assert iface.reads["Metadata"] == 1

    def test_uncached_proxy_reads_every_time(self):
        iface = FakeInterface()
        proxy = PlayerProxy(iface, PLAYER, cached=False)

        async def scenario():
            await proxy.metadata()
            iface.title = "Freddie Freeloader"
            return await proxy.metadata()

        assert run(scenario()).title == "Freddie Freeloader"
        assert iface.reads["Metadata"] == 2

    def test_position_never_cached(self):
        iface = FakeInterface(position=5)
        proxy = PlayerProxy(iface, PLAYER, FakeProperties(), cached=True)

        async def scenario():
            await proxy.position()
            iface._position = 7
            return await proxy.position()

        assert run(scenario()) == 7
        assert iface.reads["Position"] == 2

    def test_properties_changed_refreshes_cache(self):
        iface = FakeInterface(status="Playing")
        props = FakeProperties()
        proxy = PlayerProxy(iface, PLAYER, props, cached=True)

        async def scenario():
            before = await proxy.playback_status()
            props.emit(PLAYER_INTERFACE, {"PlaybackStatus": Variant("s", "Paused")})
            after = await proxy.playback_status()
            return before, after

        assert run(scenario()) == ("Playing", "Paused")
        assert iface.reads["PlaybackStatus"] == 1

    def test_other_interface_signals_ignored(self):
        props = FakeProperties()
        proxy = PlayerProxy(FakeInterface(), PLAYER, props, cached=True)
        props.emit(PROPERTIES_INTERFACE, {"PlaybackStatus": Variant("s", "Paused")})
        assert proxy._cache == {}

    def test_invalidated_property_is_reread(self):
        iface = FakeInterface()
        props = FakeProperties()
        proxy = PlayerProxy(iface, PLAYER, props, cached=True)

        async def scenario():
            await proxy.metadata()
            props.emit(PLAYER_INTERFACE, {}, ["Metadata"])
            await proxy.metadata()

        run(scenario())
        assert iface.reads["Metadata"] == 2

    def test_close_unsubscribes(self):
        props = FakeProperties()
        proxy = PlayerProxy(FakeInterface(), PLAYER, props, cached=True)
        assert len(props.handlers) == 1
        proxy.close()
        proxy.close()
        assert props.handlers == []

    def test_uncached_proxy_does_not_subscribe(self):
        props = FakeProperties()
        PlayerProxy(FakeInterface(), PLAYER, props, cached=False)
        assert props.handlers == []


class TestCalls:
    def test_methods_forwarded(self):
        iface = FakeInterface()
        proxy = PlayerProxy(iface, PLAYER, cached=False)

        async def scenario():
            await proxy.play_pause()
            await proxy.next()
            await proxy.previous()
            await proxy.seek(-5_000_000)
            await proxy.set_position("/org/mpris/MediaPlayer2/Track/3", 42)

        run(scenario())
        assert iface.calls == [
            "PlayPause", "Next", "Previous", ("Seek", -5_000_000),
            ("SetPosition", "/org/mpris/MediaPlayer2/Track/3", 42),
        ]

    def test_length_from_metadata(self):
        proxy = PlayerProxy(FakeInterface(), PLAYER, cached=False)
        assert run(proxy.length()) == 1000

    def test_dbus_error_becomes_remote_call_failed(self):
        iface = FakeInterface(error=DBusError("org.freedesktop.DBus.Error.NoReply", "gone"))
        proxy = PlayerProxy(iface, PLAYER, cached=False)
        with pytest.raises(RemoteCallFailed, match=PLAYER):
            run(proxy.play_pause())

    def test_timeout_becomes_remote_call_failed(self):
        proxy = PlayerProxy(SlowInterface(), PLAYER, cached=False, timeout=0.01)
        with pytest.raises(RemoteCallFailed):
            run(proxy.position())

    def test_invalid_track_id_rejected_before_call(self):
        iface = FakeInterface()
        proxy = PlayerProxy(iface, PLAYER, cached=False)
        with pytest.raises(InvalidTrackId):
            run(proxy.set_position("not a path", 0))
        assert iface.calls == []


class TestCheckTrackId:
    def test_object_path_accepted(self):
        check_track_id("/org/mpris/MediaPlayer2/TrackList/NoTrack")

    @pytest.mark.parametrize("track_id", ["", "relative/path", "/trailing/", "/bad-char"])
    def test_non_object_paths_rejected(self, track_id):
        with pytest.raises(InvalidTrackId):
            check_track_id(track_id)


# --- discovery ---


class FakeBus:
    def __init__(self, replies=None, introspect_error=None, interfaces=None):
        self.replies = list(replies or [])
        self.sent = []
        self.introspect_error = introspect_error
        self.interfaces = interfaces or {}

    async def call(self, message):
        self.sent.append(message)
        return self.replies.pop(0)

    async def introspect(self, destination, path):
        if self.introspect_error is not None:
            raise self.introspect_error
        return "<node/>"

    def get_proxy_object(self, destination, path, introspection):
        interfaces = self.interfaces

        def get_interface(name):
            if name not in interfaces:
                raise InterfaceNotFoundError(f"interface not found: {name}")
            return interfaces[name]

        return SimpleNamespace(get_interface=get_interface)


def reply(*body):
    return SimpleNamespace(message_type=MessageType.METHOD_RETURN, body=list(body))


def error_reply(name, text):
    return SimpleNamespace(message_type=MessageType.ERROR, body=[text], error_name=name)


class TestDiscovery:
    def test_list_players_filters_mpris_names(self):
        bus = FakeBus([reply([
            "org.freedesktop.DBus", ":1.42", PLAYER,
            "org.mpris.MediaPlayer2.spotify", "org.gnome.Shell",
        ])])
        assert run(list_players(bus)) == [PLAYER, "org.mpris.MediaPlayer2.spotify"]
        assert bus.sent[0].member == "ListNames"

    def test_list_players_error_reply(self):
        bus = FakeBus([error_reply("org.freedesktop.DBus.Error.AccessDenied", "no")])
        with pytest.raises(RemoteCallFailed, match="AccessDenied"):
            run(list_players(bus))

    def test_identity(self):
        bus = FakeBus([reply(Variant("s", "VLC media player"))])
        assert run(get_identity(bus, PLAYER)) == "VLC media player"
        message = bus.sent[0]
        assert message.destination == PLAYER
        assert message.body == ["org.mpris.MediaPlayer2", "Identity"]

    def test_identity_wrong_shape(self):
        bus = FakeBus([reply(Variant("i", 3))])
        with pytest.raises(ProtocolShapeViolation):
            run(get_identity(bus, PLAYER))

    def test_identity_call_failure_prefixed(self):
        bus = FakeBus([error_reply("org.freedesktop.DBus.Error.ServiceUnknown", "gone")])
        with pytest.raises(RemoteCallFailed, match="^failed to get identity: "):
            run(get_identity(bus, PLAYER))

    def test_identity_invalid_bus_name(self):
        with pytest.raises(ProxyUnavailable, match="failed to get identity"):
            run(get_identity(FakeBus(), "not a bus name"))


class TestResolvePlayer:
    def test_cached_proxy_subscribes(self):
        props = FakeProperties()
        bus = FakeBus(interfaces={PLAYER_INTERFACE: FakeInterface(),
                                  PROPERTIES_INTERFACE: props})
        proxy = run(resolve_player(bus, PLAYER))
        assert proxy.cached
        assert proxy.destination == PLAYER
        assert len(props.handlers) == 1

    def test_uncached_proxy_skips_properties(self):
        props = FakeProperties()
        bus = FakeBus(interfaces={PLAYER_INTERFACE: FakeInterface(),
                                  PROPERTIES_INTERFACE: props})
        proxy = run(resolve_player(bus, PLAYER, cached=False))
        assert not proxy.cached
        assert props.handlers == []

    def test_unknown_name(self):
        bus = FakeBus(introspect_error=DBusError(
            "org.freedesktop.DBus.Error.ServiceUnknown", "not on the bus"))
        with pytest.raises(ProxyUnavailable, match="for player: org.mpris.MediaPlayer2.vlc"):
            run(resolve_player(bus, PLAYER))

    def test_missing_player_interface(self):
        bus = FakeBus(interfaces={PROPERTIES_INTERFACE: FakeProperties()})
        with pytest.raises(ProxyUnavailable):
            run(resolve_player(bus, PLAYER))
