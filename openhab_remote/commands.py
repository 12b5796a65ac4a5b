"""Translation of entity commands into openHAB item commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from openhab_remote.entities import Attribute, EntityType
from openhab_remote.values import hex_to_hsl


class LightCommand(StrEnum):
    ON = "ON"
    OFF = "OFF"
    BRIGHTNESS = "BRIGHTNESS"
    COLOR = "COLOR"
    COLORTEMP = "COLORTEMP"


class SwitchCommand(StrEnum):
    ON = "ON"
    OFF = "OFF"


class BlindCommand(StrEnum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    STOP = "STOP"
    POSITION = "POSITION"


class MediaPlayerCommand(StrEnum):
    TURNON = "TURNON"
    TURNOFF = "TURNOFF"
    PLAY = "PLAY"
    PAUSE = "PAUSE"
    STOP = "STOP"
    PREVIOUS = "PREVIOUS"
    NEXT = "NEXT"
    VOLUME_SET = "VOLUME_SET"
    VOLUME_UP = "VOLUME_UP"
    VOLUME_DOWN = "VOLUME_DOWN"


COMMANDS: dict[EntityType, type[StrEnum]] = {
    EntityType.LIGHT: LightCommand,
    EntityType.SWITCH: SwitchCommand,
    EntityType.BLIND: BlindCommand,
    EntityType.MEDIA_PLAYER: MediaPlayerCommand,
}

_BLIND_STATES: dict[BlindCommand, str] = {
    BlindCommand.OPEN: "UP",
    BlindCommand.CLOSE: "DOWN",
    BlindCommand.STOP: "STOP",
}

_PLAYER_STATES: dict[MediaPlayerCommand, str] = {
    MediaPlayerCommand.TURNON: "ON",
    MediaPlayerCommand.TURNOFF: "OFF",
    MediaPlayerCommand.PLAY: "PLAY",
    MediaPlayerCommand.PAUSE: "PAUSE",
    MediaPlayerCommand.STOP: "STOP",
    MediaPlayerCommand.PREVIOUS: "PREVIOUS",
    MediaPlayerCommand.NEXT: "NEXT",
}

_PLAYER_VOLUME_STEPS: dict[MediaPlayerCommand, str] = {
    MediaPlayerCommand.VOLUME_UP: "INCREASE",
    MediaPlayerCommand.VOLUME_DOWN: "DECREASE",
}


@dataclass(frozen=True)
class HubCommand:
    """One item write.

    ``attribute`` is set for media players, whose commands go to the item bound
    to that attribute instead of the item named like the entity.
    """

    value: str
    attribute: Attribute | None = None


def normalize_command(entity_type: EntityType | str, command: str) -> StrEnum | None:
    """Parse ``command`` for ``entity_type``; ``None`` if unknown."""
    try:
        command_type = COMMANDS[EntityType(entity_type)]
        return command_type(command.strip().upper())
    except ValueError:
        return None


def _render_int(param: object) -> str | None:
    if isinstance(param, bool):
        return None
    try:
        return str(int(param))  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None


def _light_command(command: LightCommand, param: object) -> HubCommand | None:
    if command in (LightCommand.ON, LightCommand.OFF):
        return HubCommand(value=command.value)
    if command == LightCommand.COLOR:
        hsl = hex_to_hsl(param) if isinstance(param, str) else None
        if hsl is None:
            return None
        return HubCommand(value="{},{},{}".format(*hsl))
    value = _render_int(param)
    return None if value is None else HubCommand(value=value)


def _blind_command(command: BlindCommand, param: object) -> HubCommand | None:
    if command in _BLIND_STATES:
        return HubCommand(value=_BLIND_STATES[command])
    value = _render_int(param)
    return None if value is None else HubCommand(value=value)


def _player_command(command: MediaPlayerCommand, param: object) -> HubCommand | None:
    if command in _PLAYER_STATES:
        return HubCommand(value=_PLAYER_STATES[command], attribute=Attribute.STATE)
    if command in _PLAYER_VOLUME_STEPS:
        return HubCommand(value=_PLAYER_VOLUME_STEPS[command], attribute=Attribute.VOLUME)
    value = _render_int(param)
    return None if value is None else HubCommand(value=value, attribute=Attribute.VOLUME)


def build_command(entity_type: EntityType | str, command: str, param: object = None) -> HubCommand | None:
    """Build the item write for one entity command, or ``None`` if unsupported."""
    parsed = normalize_command(entity_type, command)
    if parsed is None:
        return None

    if isinstance(parsed, LightCommand):
        return _light_command(parsed, param)
    if isinstance(parsed, SwitchCommand):
        return HubCommand(value=parsed.value)
    if isinstance(parsed, BlindCommand):
        return _blind_command(parsed, param)
    if isinstance(parsed, MediaPlayerCommand):
        return _player_command(parsed, param)
    return None
