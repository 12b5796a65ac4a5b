"""Mapping of openHAB thing channels to media player attributes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from openhab_remote.entities import Attribute

MEDIA_PLAYER_CHANNELS: dict[str, Attribute] = {
    "power": Attribute.STATE,
    "control": Attribute.STATE,
    "state": Attribute.STATE,
    "mode": Attribute.SOURCE,
    "volume": Attribute.VOLUME,
    "volume-percent": Attribute.VOLUME,
    "mute": Attribute.MUTED,
    "artist": Attribute.MEDIAARTIST,
    "play-info-name": Attribute.MEDIAARTIST,
    "title": Attribute.MEDIATITLE,
    "play-info-text": Attribute.MEDIATITLE,
    "currentPlayingTime": Attribute.MEDIAPROGRESS,
    "duration": Attribute.MEDIADURATION,
}


def channel_attribute(channel_id: str) -> Attribute | None:
    """Resolve a channel id, ignoring an optional ``group#`` prefix."""
    attribute = MEDIA_PLAYER_CHANNELS.get(channel_id)
    if attribute is None and "#" in channel_id:
        attribute = MEDIA_PLAYER_CHANNELS.get(channel_id.rsplit("#", 1)[1])
    return attribute


def linked_channel_items(thing: Mapping[str, Any]) -> list[tuple[str, Attribute]]:
    """Return ``(item name, attribute)`` for every mapped channel of a thing."""
    linked: list[tuple[str, Attribute]] = []
    channels = thing.get("channels")
    if not isinstance(channels, list):
        return linked

    for channel in channels:
        if not isinstance(channel, Mapping):
            continue
        items = channel.get("linkedItems")
        channel_id = channel.get("id")
        if not isinstance(items, list) or not items or not isinstance(channel_id, str):
            continue
        attribute = channel_attribute(channel_id)
        if attribute is None or not isinstance(items[0], str):
            continue
        linked.append((items[0], attribute))
    return linked
