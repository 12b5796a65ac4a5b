from pathlib import Path

import pytest

from openhab_remote.entities import (
    Attribute,
    Capability,
    Entity,
    EntityState,
    EntityType,
    InMemoryEntityRegistry,
)
from openhab_remote.protocol import EventStreamParser, StreamEvent
from openhab_remote.sync import EntitySynchronizer

PLAYER_THING = {
    "UID": "player1",
    "channels": [
        {"id": "volume", "linkedItems": ["Player_Volume"]},
        {"id": "title", "linkedItems": ["Player_Title"]},
    ],
}


def _read_fixture(name: str) -> bytes:
    return (Path(__file__).parent / "fixtures" / name).read_bytes()


def _replay(data: bytes, chunk_size: int) -> list[StreamEvent]:
    parser = EventStreamParser()
    events: list[StreamEvent] = []
    for start in range(0, len(data), chunk_size):
        events.extend(parser.feed(data[start : start + chunk_size]))
    assert parser.pending is None
    return events


def _registry() -> InMemoryEntityRegistry:
    return InMemoryEntityRegistry(
        Entity(entity_id, entity_type, "openhab", frozenset(capabilities), connected=True)
        for entity_id, entity_type, capabilities in [
            ("Kitchen", EntityType.LIGHT, {Capability.BRIGHTNESS}),
            ("Strip", EntityType.LIGHT, {Capability.COLOR, Capability.BRIGHTNESS}),
            ("Fan", EntityType.SWITCH, set()),
            ("Shade", EntityType.BLIND, {Capability.POSITION}),
            ("player1", EntityType.MEDIA_PLAYER, {Capability.VOLUME, Capability.MEDIA_INFO}),
        ]
    )


@pytest.mark.parametrize("chunk_size", [1, 7, 64, 4096])
def test_session_replay_is_independent_of_chunking(chunk_size):
    events = _replay(_read_fixture("events_session.log"), chunk_size)

    assert [(event.item_name, event.value) for event in events] == [
        ("Kitchen", "100"),
        ("Strip", "120,50,50"),
        ("Fan", "ON"),
        ("Shade", "57"),
        ("Group_All", "OFF"),
        ("Player_Volume", "35"),
        ("Player_Title", "Blue in Green"),
        ("Fan", "OFF"),
    ]


def test_session_replay_converges_entities():
    registry = _registry()
    synchronizer = EntitySynchronizer(registry)
    synchronizer.register_player_thing("player1", PLAYER_THING)

    for event in _replay(_read_fixture("events_session.log"), 64):
        synchronizer.apply_item(event.item_name, event.value)

    kitchen = registry.get("Kitchen")
    assert kitchen.state == EntityState.ON
    assert kitchen.attributes[Attribute.BRIGHTNESS] == 100
    assert registry.get("Strip").attributes[Attribute.COLOR] == "#40BF40"
    assert registry.get("Fan").state == EntityState.OFF
    shade = registry.get("Shade")
    assert shade.state == EntityState.CLOSED
    assert shade.attributes[Attribute.POSITION] == 57
    player = registry.get("player1")
    assert player.attributes[Attribute.VOLUME] == 35
    assert player.attributes[Attribute.MEDIATITLE] == "Blue in Green"
