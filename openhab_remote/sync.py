"""Apply openHAB item values to remote-control entities."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from openhab_remote.channels import linked_channel_items
from openhab_remote.entities import (
    Attribute,
    Capability,
    Entity,
    EntityRegistry,
    EntityState,
    EntityType,
)
from openhab_remote.values import (
    BoolValue,
    ColorValue,
    PercentValue,
    Unrecognized,
    parse_percent,
    parse_value,
)

_PLAYER_STATES: dict[str, EntityState] = {
    "ON": EntityState.ON,
    "OFF": EntityState.OFF,
    "PLAY": EntityState.PLAYING,
    "PAUSE": EntityState.IDLE,
}


@dataclass(frozen=True)
class PlayerItem:
    """openHAB item bound to one attribute of a media player entity."""

    player_id: str
    attribute: Attribute


class EntitySynchronizer:
    """Route item values to entities and write their state/attributes.

    Every ``apply*`` method returns ``True`` when the target entity changed.
    Disconnected entities are never written.
    """

    def __init__(self, registry: EntityRegistry, logger: logging.Logger | None = None) -> None:
        self.registry = registry
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._player_items: dict[str, PlayerItem] = {}

    @property
    def player_items(self) -> Mapping[str, PlayerItem]:
        return self._player_items

    def reset_players(self) -> None:
        self._player_items.clear()

    def register_player_thing(self, entity_id: str, thing: Mapping[str, Any]) -> int:
        """Bind the linked items of a hub thing to the player ``entity_id``."""
        count = 0
        for item_name, attribute in linked_channel_items(thing):
            self._player_items[item_name] = PlayerItem(player_id=entity_id, attribute=attribute)
            count += 1
        return count

    def player_item(self, entity_id: str, attribute: Attribute) -> str | None:
        for item_name, binding in self._player_items.items():
            if binding.player_id == entity_id and binding.attribute == attribute:
                return item_name
        return None

    def target_entity(self, item_name: str) -> Entity | None:
        """Entity an item writes to, either directly by name or via a player binding."""
        entity = self.registry.get(item_name)
        if entity is not None:
            return entity
        binding = self._player_items.get(item_name)
        if binding is None:
            return None
        return self.registry.get(binding.player_id)

    def apply_item(self, item_name: str, raw: object) -> bool:
        entity = self.registry.get(item_name)
        if entity is not None:
            return self.apply(entity, raw)
        if item_name in self._player_items:
            return self.apply_player_item(item_name, raw)
        self.logger.debug("No entity for item %s", item_name)
        return False

    def apply(self, entity: Entity, raw: object) -> bool:
        if not entity.connected:
            self.logger.debug("Entity %s is disconnected, dropping value %r", entity.entity_id, raw)
            return False

        if entity.entity_type == EntityType.LIGHT:
            return self._apply_light(entity, raw)
        if entity.entity_type == EntityType.SWITCH:
            return self._apply_switch(entity, raw)
        if entity.entity_type == EntityType.BLIND:
            return self._apply_blind(entity, raw)

        self.logger.debug("Entity %s of type %s has no direct item mapping", entity.entity_id, entity.entity_type)
        return False

    def apply_player_item(self, item_name: str, raw: object) -> bool:
        binding = self._player_items.get(item_name)
        if binding is None:
            return False
        entity = self.registry.get(binding.player_id)
        if entity is None or not entity.connected:
            self.logger.debug("Player %s unavailable, dropping item %s", binding.player_id, item_name)
            return False

        parsed = parse_value(raw)
        if isinstance(parsed, Unrecognized):
            return False
        text = "" if raw is None else str(raw).strip()

        if binding.attribute == Attribute.STATE:
            state = _PLAYER_STATES.get(text.upper())
            if state is None:
                self.logger.debug("Player %s ignores state %s", entity.entity_id, text)
                return False
            return entity.set_state(state)
        if binding.attribute == Attribute.VOLUME:
            volume = parse_percent(text)
            if volume is None:
                self.logger.info("Player %s volume %r is not numeric", entity.entity_id, text)
                return False
            return entity.update_attribute(Attribute.VOLUME, volume.value)
        if binding.attribute == Attribute.MUTED:
            return entity.update_attribute(Attribute.MUTED, text.upper() == "ON")
        return entity.update_attribute(binding.attribute, text)

    def _apply_light(self, entity: Entity, raw: object) -> bool:
        parsed = parse_value(raw, entity.capabilities)

        if entity.supports(Capability.COLOR):
            if isinstance(parsed, ColorValue):
                return entity.update_attribute(Attribute.COLOR, parsed.to_hex())
            if isinstance(parsed, PercentValue):
                return self._apply_brightness(entity, parsed)
        elif entity.supports(Capability.COLORTEMP):
            if isinstance(parsed, PercentValue):
                return entity.update_attribute(Attribute.COLORTEMP, parsed.value)
        elif isinstance(parsed, PercentValue):
            return self._apply_brightness(entity, parsed)

        if isinstance(parsed, BoolValue):
            return entity.set_state(EntityState.ON if parsed.on else EntityState.OFF)

        self.logger.info("Light %s does not support value %r", entity.entity_id, raw)
        return False

    def _apply_brightness(self, entity: Entity, parsed: PercentValue) -> bool:
        if not entity.supports(Capability.BRIGHTNESS):
            self.logger.info("Light %s does not support BRIGHTNESS", entity.entity_id)
            return False
        state_changed = entity.set_state(EntityState.ON if parsed.value == 100 else EntityState.OFF)
        brightness_changed = entity.update_attribute(Attribute.BRIGHTNESS, parsed.value)
        return state_changed or brightness_changed

    def _apply_switch(self, entity: Entity, raw: object) -> bool:
        parsed = parse_value(raw)
        if isinstance(parsed, Unrecognized):
            self.logger.debug("Switch %s has no value yet", entity.entity_id)
            return False
        on = isinstance(parsed, BoolValue) and parsed.on
        return entity.set_state(EntityState.ON if on else EntityState.OFF)

    def _apply_blind(self, entity: Entity, raw: object) -> bool:
        parsed = parse_value(raw, entity.capabilities)
        if isinstance(parsed, PercentValue) and entity.supports(Capability.POSITION):
            position_changed = entity.update_attribute(Attribute.POSITION, parsed.value)
            state_changed = entity.set_state(EntityState.OPEN if parsed.value == 100 else EntityState.CLOSED)
            return position_changed or state_changed
        if isinstance(parsed, BoolValue):
            return entity.set_state(EntityState.OPEN if parsed.on else EntityState.CLOSED)
        return False
