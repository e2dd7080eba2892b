"""
Seek with unit calibration.

MPRIS says Seek takes microseconds, but a fair number of players treat the
offset as milliseconds.  The interface description doesn't tell us which,
so we find out by watching what the player does:

  1. read Position
  2. Seek(S * 1_000_000)                    — microsecond guess
  3. wait SEEK_SETTLE_DELAY for the player to apply it
  4. read Position again
  5. moved at least MICROSECOND_MOVE_THRESHOLD seconds → done
  6. otherwise undo with Seek(-S * 1_000_000) and Seek(S * 1000)

Position itself is always reported in microseconds, whatever the player
does with Seek.  The millisecond retry is not re-verified.
"""

import asyncio
import logging

from .errors import InvalidOffset, MissingOffset, RemoteCallFailed, SeekFailed
from .http_utils import I64_MAX, parse_i64

log = logging.getLogger("mpris-bridge.seek")

# Empirical, tune here.
MICROSECOND_MOVE_THRESHOLD = 4  # seconds
SEEK_SETTLE_DELAY = 0.1  # seconds

MICROSECONDS = "microseconds"
MILLISECONDS = "milliseconds"


def parse_offset(raw: str | None) -> int:
    """Validate the ``offset`` query parameter (whole seconds, signed)."""
    if raw is None:
        raise MissingOffset()
    offset = parse_i64(raw)
    # Must still fit an int64 once scaled to microseconds
    if offset is None or abs(offset) > I64_MAX // 1_000_000:
        raise InvalidOffset()
    return offset


async def calibrated_seek(proxy, offset: int, *,
                          settle_delay: float = SEEK_SETTLE_DELAY,
                          threshold: int = MICROSECOND_MOVE_THRESHOLD) -> str:
    """Seek ``proxy`` by ``offset`` seconds.  Returns the unit that was used."""
    player = proxy.destination
    offset_micros = offset * 1_000_000
    try:
        before = await proxy.position()

        log.debug("Try seek as microseconds: %d", offset_micros)
        await proxy.seek(offset_micros)

        # Fixed grace period, nothing to wait on.
        await asyncio.sleep(settle_delay)

        after = await proxy.position()
        moved = abs(after - before) // 1_000_000
        log.debug("After seeking %s, original: %d after: %d diff in seconds: %d",
                  player, before, after, moved)

        if moved >= threshold:
            return MICROSECONDS

        log.debug("Incorrect offset as microseconds, trying with milliseconds")
        await proxy.seek(-offset_micros)
        await proxy.seek(offset * 1000)
        return MILLISECONDS
    except RemoteCallFailed as e:
        raise SeekFailed(f"Failed to Seek player: {player} by {offset}s: {e}") from e
