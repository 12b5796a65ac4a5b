"""Remote-control entity model consumed by the integration."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

AttributeValue = str | int | bool


class EntityType(StrEnum):
    LIGHT = "light"
    SWITCH = "switch"
    BLIND = "blind"
    MEDIA_PLAYER = "media_player"


class Capability(StrEnum):
    """Features an entity declares support for."""

    BRIGHTNESS = "BRIGHTNESS"
    COLOR = "COLOR"
    COLORTEMP = "COLORTEMP"
    POSITION = "POSITION"
    VOLUME = "VOLUME"
    MUTED = "MUTED"
    SOURCE = "SOURCE"
    MEDIA_INFO = "MEDIA_INFO"


NUMERIC_CAPABILITIES = frozenset(
    {Capability.BRIGHTNESS, Capability.COLORTEMP, Capability.POSITION, Capability.VOLUME}
)


class EntityState(StrEnum):
    UNKNOWN = "UNKNOWN"
    ON = "ON"
    OFF = "OFF"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PLAYING = "PLAYING"
    IDLE = "IDLE"


class Attribute(StrEnum):
    STATE = "STATE"
    BRIGHTNESS = "BRIGHTNESS"
    COLOR = "COLOR"
    COLORTEMP = "COLORTEMP"
    POSITION = "POSITION"
    VOLUME = "VOLUME"
    MUTED = "MUTED"
    SOURCE = "SOURCE"
    MEDIAARTIST = "MEDIAARTIST"
    MEDIATITLE = "MEDIATITLE"
    MEDIAPROGRESS = "MEDIAPROGRESS"
    MEDIADURATION = "MEDIADURATION"


@dataclass
class Entity:
    """One normalized remote-control object.

    Setters return ``True`` only when the stored value actually changed, which
    keeps repeated writes of the same hub value observable as no-ops.
    """

    entity_id: str
    entity_type: EntityType
    integration_id: str = ""
    capabilities: frozenset[Capability] = frozenset()
    connected: bool = False
    state: EntityState = EntityState.UNKNOWN
    attributes: dict[Attribute, AttributeValue] = field(default_factory=dict)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def set_state(self, state: EntityState) -> bool:
        if self.state == state:
            return False
        self.state = state
        return True

    def update_attribute(self, attribute: Attribute, value: AttributeValue) -> bool:
        if attribute in self.attributes and self.attributes[attribute] == value:
            return False
        self.attributes[attribute] = value
        return True

    def set_connected(self, connected: bool) -> bool:
        if self.connected == connected:
            return False
        self.connected = connected
        return True


class EntityRegistry(Protocol):
    def get(self, entity_id: str) -> Entity | None: ...

    def get_by_integration(self, integration_id: str) -> list[Entity]: ...


class NotificationSink(Protocol):
    def add(self, error: bool, text: str, action: Callable[[], object] | None = None) -> None: ...


class InMemoryEntityRegistry:
    """Dictionary-backed registry for standalone use and tests."""

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._entities: dict[str, Entity] = {}
        for entity in entities:
            self.add(entity)

    def add(self, entity: Entity) -> None:
        self._entities[entity.entity_id] = entity

    def remove(self, entity_id: str) -> None:
        self._entities.pop(entity_id, None)

    def get(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def get_by_integration(self, integration_id: str) -> list[Entity]:
        return [entity for entity in self._entities.values() if entity.integration_id == integration_id]


@dataclass(frozen=True)
class Notification:
    error: bool
    text: str
    action: Callable[[], object] | None = None


class LoggingNotificationSink:
    """Notification sink that keeps alerts in memory and logs them."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else _LOGGER
        self.notifications: list[Notification] = []

    def add(self, error: bool, text: str, action: Callable[[], object] | None = None) -> None:
        self.notifications.append(Notification(error=error, text=text, action=action))
        if error:
            self.logger.warning("Notification: %s", text)
        else:
            self.logger.info("Notification: %s", text)
