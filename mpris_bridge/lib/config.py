"""
Shared configuration loader for mpris-bridge.

Loads a single JSON config file.  Search order:
  1. /etc/mpris-bridge/config.json   (system install)
  2. config.json                     (CWD — handy for local dev)

Deployment knobs can also come from the environment (PORT, TLS, CERTS_DIR,
UI_DIR, LOG_LEVEL); ``setting`` checks the environment first, then the file.

Usage:
    from mpris_bridge.lib.config import cfg, setting

    vol_type = cfg("volume", "type", default="pulseaudio")
    vol_max  = cfg("volume", "max", default=100)
    port     = int(setting("PORT", "server", "port", default=4433))
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/mpris-bridge/config.json",
    "config.json",
]

_VOLUME_TYPES = ("pulseaudio", "pipewire", "alsa")
_SECTIONS = ("server", "volume", "logging")


def _validate(config: dict):
    """Log problems that would otherwise surface as odd runtime behaviour."""
    for section in _SECTIONS:
        val = config.get(section)
        if val is not None and not isinstance(val, dict):
            logger.warning("Config: '%s' should be an object, got %r — ignoring it",
                           section, val)

    volume = config.get("volume")
    vol_type = volume.get("type") if isinstance(volume, dict) else None
    if vol_type is not None and str(vol_type).lower() not in _VOLUME_TYPES:
        logger.warning("Config: unknown volume.type '%s' — falling back to pulseaudio",
                       vol_type)

    server = config.get("server")
    port = server.get("port") if isinstance(server, dict) else None
    if port is not None and not isinstance(port, int):
        logger.warning("Config: server.port should be an integer, got %r", port)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _SEARCH_PATHS:
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.info("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                  → config["server"]
    cfg("volume", "type")          → config["volume"]["type"]
    cfg("volume", "max", default=100)  → config["volume"]["max"] or 100
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def setting(env: str, section: str, key: str, *, default=None):
    """Environment variable ``env`` if set, else cfg(section, key)."""
    val = os.getenv(env)
    if val is not None:
        return val
    return cfg(section, key, default=default)


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
