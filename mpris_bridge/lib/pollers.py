"""
Pollers — turn poll-only MPRIS properties into event streams.

MPRIS players don't push Position, and PropertiesChanged is unreliable
across implementations, so each stream request gets its own poller task:

  PositionPoller     reads Position every 100 ms, sends it, stops with an
                     EOS event when Position reaches the track length.
  PlayerStatePoller  reads Metadata + PlaybackStatus every 500 ms and sends
                     only what changed, plus a keepalive every 20 s so idle
                     proxies don't drop the connection.

A poller owns its (uncached) proxy and the send side of an EventChannel.
It stops when the client disconnects (send fails / channel closed), when
the stream ends, or on the first failed read (one ``error`` event, no
retries; the client reconnects).

``open_position_stream`` / ``open_player_stream`` do the synchronous first
reads so a dead player fails fast with a Single error event, then spawn the
poller and return a Multi stream.
"""

import asyncio
import logging

from ..players.mpris import resolve_player
from .errors import BridgeError
from .events import Event, EventChannel, Multi, Single

log = logging.getLogger("mpris-bridge.poller")

POSITION_INTERVAL = 0.1  # seconds
STATE_INTERVAL = 0.5
KEEPALIVE_INTERVAL = 20.0


class Interval:
    """Periodic ticker.  The first tick is immediate; missed ticks are skipped."""

    def __init__(self, period: float):
        self.period = period
        self._deadline = None

    async def tick(self):
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._deadline is None:
            self._deadline = now
        delay = self._deadline - now
        if delay > 0:
            await asyncio.sleep(delay)
        self._deadline += self.period
        if self._deadline < loop.time():
            self._deadline = loop.time() + self.period


class PositionPoller:
    """Send Position every tick until it reaches ``length``."""

    def __init__(self, proxy, length: int, channel: EventChannel,
                 interval: float = POSITION_INTERVAL):
        self.proxy = proxy
        self.length = length
        self.channel = channel
        self.interval = interval
        self.state = "streaming"

    async def run(self):
        player = self.proxy.destination
        ticker = Interval(self.interval)
        try:
            while True:
                await ticker.tick()
                if self.channel.closed:
                    self.state = "disconnected"
                    break

                log.debug("Check the position: %s, length: %d", player, self.length)
                try:
                    pos = await self.proxy.position()
                except BridgeError as e:
                    self.state = "failed"
                    await self.channel.send(Event.error(e))
                    break

                if pos == self.length:
                    log.debug("last frame, %d == %d, send EOS", pos, self.length)
                    await self.channel.send(Event.end_of_stream())
                    self.state = "ended"
                    break

                if not await self.channel.send(Event.position(pos)):
                    log.debug("Broken pipe, position receiver for %s is gone", player)
                    self.state = "disconnected"
                    break
        except Exception as e:
            log.exception("Position stream for %s failed", player)
            self.state = "failed"
            await self.channel.send(Event.error(e))
        finally:
            await self.channel.finish()
            self.proxy.close()
            log.info("Position stream for %s %s", player, self.state)


class PlayerStatePoller:
    """Send metadata/status changes, interleaved with keepalives."""

    def __init__(self, proxy, metadata, status: str, channel: EventChannel,
                 interval: float = STATE_INTERVAL,
                 keepalive_interval: float = KEEPALIVE_INTERVAL):
        self.proxy = proxy
        self.metadata = metadata
        self.status = status
        self.channel = channel
        self.interval = interval
        self.keepalive_interval = keepalive_interval

    async def run(self):
        player = self.proxy.destination
        check = Interval(self.interval)
        keepalive = Interval(self.keepalive_interval)
        check_tick = keepalive_tick = None
        try:
            while not self.channel.closed:
                if check_tick is None:
                    check_tick = asyncio.ensure_future(check.tick())
                if keepalive_tick is None:
                    keepalive_tick = asyncio.ensure_future(keepalive.tick())
                done, _ = await asyncio.wait(
                    {check_tick, keepalive_tick},
                    return_when=asyncio.FIRST_COMPLETED)

                if keepalive_tick in done:
                    keepalive_tick = None
                    log.debug("Checking keepalive: %s", player)
                    if not await self.channel.send(Event.keepalive()):
                        log.debug("Broken pipe, failed to send keepalive to %s", player)
                        break

                if check_tick in done:
                    check_tick = None
                    if not await self._check():
                        break
        except Exception as e:
            log.exception("Player stream for %s failed", player)
            await self.channel.send(Event.error(e))
        finally:
            for pending in (check_tick, keepalive_tick):
                if pending is not None:
                    pending.cancel()
            await self.channel.finish()
            self.proxy.close()
            log.info("Player stream for %s closed", player)

    async def _check(self) -> bool:
        """One diff pass.  False when the session should end."""
        player = self.proxy.destination
        log.debug("Check: %s metadata for changes", player)
        try:
            metadata = await self.proxy.metadata()
        except BridgeError as e:
            await self.channel.send(Event.error(e))
            return False

        if metadata != self.metadata:
            log.debug("Player: %s metadata changed: %s", player, metadata)
            if not await self.channel.send(Event.metadata(metadata)):
                log.debug("Broken pipe, failed to send metadata to %s", player)
                return False
            self.metadata = metadata

        try:
            status = await self.proxy.playback_status()
        except BridgeError as e:
            await self.channel.send(Event.error(e))
            return False

        if status != self.status:
            log.debug("Player: %s status changed: %s", player, status)
            if not await self.channel.send(Event.status(status)):
                log.debug("Broken pipe, failed to send status to %s", player)
                return False
            self.status = status

        return True


def _spawn(coro, sessions: set | None) -> asyncio.Task:
    task = asyncio.create_task(coro)
    if sessions is not None:
        sessions.add(task)
        task.add_done_callback(sessions.discard)
    return task


async def open_position_stream(bus, player: str, sessions: set | None = None, *,
                               interval: float = POSITION_INTERVAL):
    """Position events for ``player`` until EOS, error, or disconnect."""
    log.info("Get position SSE for player: %s", player)
    try:
        proxy = await resolve_player(bus, player, cached=False)
    except BridgeError as e:
        return Single(Event.error(e))
    try:
        length = await proxy.length()
    except BridgeError as e:
        proxy.close()
        return Single(Event.error(
            f"Failed to get player: {player} Metadata for position: {e}"))

    channel = EventChannel()
    poller = PositionPoller(proxy, length, channel, interval=interval)
    return Multi(channel, _spawn(poller.run(), sessions))


async def open_player_stream(bus, player: str, sessions: set | None = None, *,
                             interval: float = STATE_INTERVAL,
                             keepalive_interval: float = KEEPALIVE_INTERVAL):
    """Metadata/status change events for ``player`` until error or disconnect."""
    log.info("Get SSE for player: %s", player)
    try:
        proxy = await resolve_player(bus, player, cached=False)
    except BridgeError as e:
        return Single(Event.error(e))
    # Baseline, so the first tick doesn't report what the client already has
    try:
        metadata = await proxy.metadata()
        status = await proxy.playback_status()
    except BridgeError as e:
        proxy.close()
        return Single(Event.error(e))

    channel = EventChannel()
    poller = PlayerStatePoller(proxy, metadata, status, channel,
                               interval=interval, keepalive_interval=keepalive_interval)
    return Multi(channel, _spawn(poller.run(), sessions))
