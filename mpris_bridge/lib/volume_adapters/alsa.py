"""
ALSA software volume via amixer — for machines without a pulse server.

Targets one card/control pair (``volume.card`` / ``volume.control`` in
config.json, default card 0, ``Master``).
"""

import logging

from ..errors import VolumeFailed
from .base import VolumeAdapter

log = logging.getLogger("mpris-bridge.volume.alsa")


class AlsaVolume(VolumeAdapter):
    """Volume control via ALSA software mixer."""

    command = "amixer"

    def __init__(self, max_volume: int = 100, card: str = "0", control: str = "Master"):
        super().__init__(max_volume)
        self._card = card
        self._control = control

    async def _amixer(self, *args) -> str:
        return await self._run("-c", self._card, *args)

    async def _apply_volume(self, volume: int) -> None:
        await self._amixer("sset", self._control, f"{volume}%")
        log.info("-> ALSA %s volume: %d%%", self._control, volume)

    async def get_volume(self) -> int:
        output = await self._amixer("sget", self._control)
        for line in output.splitlines():
            if "%" in line and "[" in line:
                start = line.index("[") + 1
                end = line.index("%", start)
                return int(line[start:end])
        raise VolumeFailed(f"No volume in amixer output for {self._control}")
