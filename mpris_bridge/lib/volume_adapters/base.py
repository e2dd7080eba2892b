"""
Abstract base class for default-sink volume adapters.

Every adapter implements _apply_volume and get_volume.  The base class caps
requested volumes at ``max_volume`` and runs the mixer command-line tools
through ``_run``, which subclasses use for their subprocess calls.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from ..errors import VolumeFailed

log = logging.getLogger("mpris-bridge.volume")


class VolumeAdapter(ABC):
    """Interface every volume output must implement."""

    command: str = ""

    def __init__(self, max_volume: int = 100):
        self._max_volume = max_volume

    async def set_volume(self, volume: int) -> int:
        """Cap, then call _apply_volume().  Returns the applied percentage."""
        capped = min(volume, self._max_volume)
        if volume > self._max_volume:
            log.warning("Volume %d%% capped to %d%%", volume, self._max_volume)
        await self._apply_volume(capped)
        return capped

    @abstractmethod
    async def _apply_volume(self, volume: int) -> None:
        """Actually send the volume to the mixer."""
        ...

    @abstractmethod
    async def get_volume(self) -> int: ...

    async def _run(self, *args) -> str:
        """Run the adapter's command and return stdout."""
        cmd = [self.command, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except FileNotFoundError as e:
            raise VolumeFailed(f"Failed to call: {self.command}: {e}") from e
        if proc.returncode != 0:
            raise VolumeFailed(
                f"{' '.join(cmd)} failed (rc={proc.returncode}): "
                f"{stderr.decode(errors='replace').strip()}")
        try:
            return stdout.decode()
        except UnicodeDecodeError as e:
            raise VolumeFailed(f"Failed to decode {self.command} output: {e}") from e
