"""Snapshot/delta view of the integration's entities for UI consumers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, fields

from openhab_remote.entities import AttributeValue, Entity


@dataclass(frozen=True)
class EntitySnapshot:
    """Immutable, comparison-friendly view of one ``Entity``."""

    entity_id: str
    entity_type: str
    connected: bool
    state: str
    attributes: tuple[tuple[str, AttributeValue], ...]


@dataclass(frozen=True)
class StateDelta:
    """One changed field of one entity between two snapshots."""

    entity_id: str
    field: str
    old: object
    new: object


@dataclass(frozen=True)
class AdapterEvent:
    """High-level event for integration consumers."""

    kind: str
    payload: dict[str, object]


def snapshot_from_entity(entity: Entity) -> EntitySnapshot:
    return EntitySnapshot(
        entity_id=entity.entity_id,
        entity_type=entity.entity_type.value,
        connected=entity.connected,
        state=entity.state.value,
        attributes=tuple(sorted((attribute.value, value) for attribute, value in entity.attributes.items())),
    )


class EntityStateAdapter:
    """Track entity snapshots and expose stable deltas/events."""

    def __init__(self) -> None:
        self._last_snapshots: dict[str, EntitySnapshot] | None = None

    @property
    def last_snapshots(self) -> dict[str, EntitySnapshot] | None:
        return self._last_snapshots

    def update(
        self, entities: Iterable[Entity]
    ) -> tuple[dict[str, EntitySnapshot], list[StateDelta], list[AdapterEvent]]:
        snapshots = {entity.entity_id: snapshot_from_entity(entity) for entity in entities}
        previous = self._last_snapshots
        self._last_snapshots = snapshots

        if previous is None:
            return snapshots, [], []

        deltas: list[StateDelta] = []
        events: list[AdapterEvent] = []
        for entity_id, current in snapshots.items():
            old = previous.get(entity_id)
            if old is None:
                events.append(AdapterEvent(kind="entity_added", payload={"entity_id": entity_id}))
                continue
            deltas.extend(_build_deltas(old, current))
            event = _connectivity_event(old, current)
            if event is not None:
                events.append(event)

        for entity_id in previous.keys() - snapshots.keys():
            events.append(AdapterEvent(kind="entity_removed", payload={"entity_id": entity_id}))

        return snapshots, deltas, events


def _build_deltas(previous: EntitySnapshot, current: EntitySnapshot) -> list[StateDelta]:
    deltas: list[StateDelta] = []
    for field_def in fields(EntitySnapshot):
        name = field_def.name
        old_value = getattr(previous, name)
        new_value = getattr(current, name)
        if old_value != new_value:
            deltas.append(StateDelta(entity_id=current.entity_id, field=name, old=old_value, new=new_value))
    return deltas


def _connectivity_event(previous: EntitySnapshot, current: EntitySnapshot) -> AdapterEvent | None:
    if previous.connected == current.connected:
        return None
    kind = "entity_connected" if current.connected else "entity_disconnected"
    return AdapterEvent(kind=kind, payload={"entity_id": current.entity_id})
