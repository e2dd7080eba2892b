"""PulseAudio (and PipeWire's pulse server) default sink volume via pactl."""

import logging
import re

from ..errors import VolumeFailed
from .base import VolumeAdapter

log = logging.getLogger("mpris-bridge.volume.pulseaudio")

# "Volume: front-left: 32768 /  50% / -18.06 dB,   front-right: ..."
_PERCENT = re.compile(r"(\d+)%")


class PulseAudioVolume(VolumeAdapter):
    command = "pactl"

    async def get_default_sink(self) -> str:
        sink = (await self._run("get-default-sink")).strip()
        if not sink:
            raise VolumeFailed("pactl reported no default sink")
        log.debug("Got sink: %s", sink)
        return sink

    async def get_volume(self) -> int:
        sink = await self.get_default_sink()
        output = await self._run("get-sink-volume", sink)
        log.debug("Got volume output: %r", output)
        match = _PERCENT.search(output)
        if match is None:
            raise VolumeFailed(f"Failed to get volume from pactl output: {output.strip()!r}")
        return int(match.group(1))

    async def _apply_volume(self, volume: int) -> None:
        sink = await self.get_default_sink()
        await self._run("set-sink-volume", sink, f"{volume}%")
        log.info("-> %s volume: %d%%", sink, volume)
