"""Typed interpretation of raw openHAB item state strings."""

from __future__ import annotations

import colorsys
import re
from collections.abc import Iterable
from dataclasses import dataclass

from openhab_remote.entities import NUMERIC_CAPABILITIES, Capability

# Historic dimmer pattern, 0-199. Matched syntactically only.
_PERCENT_RE = re.compile(r"^[01]?\d?\d$")
_COLOR_RE = re.compile(r"^(?P<h>\d{1,3}(?:\.\d+)?),(?P<s>\d{1,3}(?:\.\d+)?)(?:,(?P<l>\d{1,3}(?:\.\d+)?))?$")
_HEX_RE = re.compile(r"^#?(?P<hex>[0-9a-fA-F]{6})$")

NULL_TOKENS = frozenset({"NULL", "UNDEF"})
DEFAULT_LIGHTNESS = 50


@dataclass(frozen=True)
class ParsedValue:
    """Base interpretation of one raw item state."""


@dataclass(frozen=True)
class BoolValue(ParsedValue):
    on: bool


@dataclass(frozen=True)
class PercentValue(ParsedValue):
    value: int


@dataclass(frozen=True)
class ColorValue(ParsedValue):
    hue: int
    saturation: int
    lightness: int

    def to_hex(self) -> str:
        """Convert hue/saturation/lightness to an ``#RRGGBB`` string."""
        red, green, blue = colorsys.hls_to_rgb(
            (self.hue % 360) / 360.0,
            min(self.lightness, 100) / 100.0,
            min(self.saturation, 100) / 100.0,
        )
        return "#{:02X}{:02X}{:02X}".format(*(int(round(channel * 255)) for channel in (red, green, blue)))


@dataclass(frozen=True)
class TextValue(ParsedValue):
    text: str


@dataclass(frozen=True)
class Unrecognized(ParsedValue):
    raw: str


def parse_on_off(raw: str) -> BoolValue | None:
    token = raw.strip().upper()
    if token == "ON":
        return BoolValue(on=True)
    if token == "OFF":
        return BoolValue(on=False)
    return None


def parse_percent(raw: str) -> PercentValue | None:
    token = raw.strip()
    if not _PERCENT_RE.match(token):
        return None
    return PercentValue(value=int(token))


def parse_color(raw: str) -> ColorValue | None:
    matched = _COLOR_RE.match(raw.strip())
    if matched is None:
        return None
    lightness = matched.group("l")
    return ColorValue(
        hue=int(round(float(matched.group("h")))),
        saturation=int(round(float(matched.group("s")))),
        lightness=DEFAULT_LIGHTNESS if lightness is None else int(round(float(lightness))),
    )


def parse_value(raw: object, capabilities: Iterable[Capability] = ()) -> ParsedValue:
    """Classify ``raw`` for an entity declaring ``capabilities``.

    ON/OFF always wins. Composite colors are only considered for entities with
    ``COLOR``; bare integers only for entities with a numeric capability, so a
    switch reporting ``"1"``/``"0"`` falls through to text.
    """
    text = "" if raw is None else str(raw)
    token = text.strip()
    if not token or token.upper() in NULL_TOKENS:
        return Unrecognized(raw=text)

    on_off = parse_on_off(token)
    if on_off is not None:
        return on_off

    caps = frozenset(capabilities)
    if Capability.COLOR in caps:
        color = parse_color(token)
        if color is not None:
            return color

    if caps & NUMERIC_CAPABILITIES:
        percent = parse_percent(token)
        if percent is not None:
            return percent

    return TextValue(text=token)


def hex_to_hsl(value: str) -> tuple[int, int, int] | None:
    """Convert ``#RRGGBB`` to an integer (hue, saturation, lightness) triple."""
    matched = _HEX_RE.match(value.strip())
    if matched is None:
        return None
    raw = matched.group("hex")
    red, green, blue = (int(raw[index : index + 2], 16) / 255.0 for index in (0, 2, 4))
    hue, lightness, saturation = colorsys.rgb_to_hls(red, green, blue)
    return int(round(hue * 360)) % 360, int(round(saturation * 100)), int(round(lightness * 100))
