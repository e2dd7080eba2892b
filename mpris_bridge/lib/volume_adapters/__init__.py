"""
Pluggable volume adapters for the default audio output.

The factory function ``create_volume_adapter`` reads config.json and returns
the correct adapter.

Supported types:
  - ``pulseaudio`` / ``pipewire``  – default sink via pactl (default)
  - ``alsa``                       – ALSA software mixer via amixer
"""

import logging

from ..config import cfg
from .alsa import AlsaVolume
from .base import VolumeAdapter
from .pulseaudio import PulseAudioVolume

logger = logging.getLogger("mpris-bridge.volume")

__all__ = [
    "VolumeAdapter",
    "AlsaVolume",
    "PulseAudioVolume",
    "create_volume_adapter",
]


def create_volume_adapter() -> VolumeAdapter:
    """Create the right volume adapter based on config.json.

    Reads from config.json "volume" section:
      type     – "pulseaudio" (default), "pipewire" or "alsa"
      max      – max volume percentage (default 100)
      card     – ALSA card (default "0", alsa only)
      control  – ALSA mixer control (default "Master", alsa only)
    """
    vol_type = str(cfg("volume", "type", default="pulseaudio")).lower()
    vol_max = int(cfg("volume", "max", default=100))

    if vol_type == "alsa":
        card = str(cfg("volume", "card", default="0"))
        control = cfg("volume", "control", default="Master")
        logger.info("Volume adapter: ALSA card %s control %s (max %d%%)",
                    card, control, vol_max)
        return AlsaVolume(vol_max, card, control)
    else:
        logger.info("Volume adapter: pactl default sink (max %d%%)", vol_max)
        return PulseAudioVolume(vol_max)
