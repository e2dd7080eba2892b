"""
MPRIS metadata normalisation.

The Player ``Metadata`` property is an ``a{sv}`` dict whose values arrive as
``dbus_fast.Variant``.  ``normalize`` decodes the handful of keys the UI uses
into a fixed-shape ``Metadata`` record.  The schema is published by the MPRIS
spec, so a value with an unexpected signature is a bug somewhere between the
player and us and raises ``ProtocolShapeViolation`` instead of defaulting.
"""

import json
import logging
from dataclasses import asdict, dataclass, field

from .errors import ProtocolShapeViolation

log = logging.getLogger(__name__)

I64_MAX = 2**63 - 1


@dataclass(frozen=True)
class Metadata:
    """Now-playing track as served to the UI."""

    track_id: str = ""
    title: str = ""
    art_url: str = ""
    url: str = ""
    length: int = 0
    artist: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self, pretty=False) -> str:
        return json.dumps(self.to_dict(), indent=2 if pretty else None)


def _violation(key, variant, expected):
    log.error("Metadata %s has signature %r, expected %s",
              key, variant.signature, expected)
    return ProtocolShapeViolation(
        f"metadata {key} has signature {variant.signature!r}, expected {expected}")


def _decode_track_id(variant) -> str:
    if variant.signature in ("s", "o"):
        return variant.value
    raise _violation("mpris:trackid", variant, "'s' or 'o'")


def _decode_str(key):
    def decode(variant) -> str:
        if variant.signature == "s":
            return variant.value
        raise _violation(key, variant, "'s'")
    return decode


def _decode_length(variant) -> int:
    if variant.signature == "x":
        return variant.value
    if variant.signature == "t":
        if variant.value > I64_MAX:
            raise ProtocolShapeViolation(
                f"metadata mpris:length {variant.value} does not fit in int64")
        return variant.value
    raise _violation("mpris:length", variant, "'t' or 'x'")


def _decode_artist(variant) -> list[str]:
    if variant.signature == "as":
        return list(variant.value)
    if variant.signature == "av":
        artists = []
        for item in variant.value:
            if item.signature != "s":
                raise _violation("xesam:artist item", item, "'s'")
            artists.append(item.value)
        return artists
    raise _violation("xesam:artist", variant, "'as'")


# MPRIS key -> (Metadata field, decoder)
_DECODERS = {
    "mpris:trackid": ("track_id", _decode_track_id),
    "xesam:title": ("title", _decode_str("xesam:title")),
    "mpris:artUrl": ("art_url", _decode_str("mpris:artUrl")),
    "xesam:url": ("url", _decode_str("xesam:url")),
    "mpris:length": ("length", _decode_length),
    "xesam:artist": ("artist", _decode_artist),
}


def normalize(raw) -> Metadata:
    """Decode an MPRIS metadata mapping.  Missing keys keep their zero value."""
    fields = {}
    for key, (name, decode) in _DECODERS.items():
        variant = raw.get(key)
        if variant is not None:
            fields[name] = decode(variant)
    return Metadata(**fields)
