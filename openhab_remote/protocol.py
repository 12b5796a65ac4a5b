"""openHAB event stream framing and event decoding."""

from __future__ import annotations

import codecs
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

FRAME_PREFIX = "data: "
FRAME_FIELD = "data:"
NON_DATA_FIELDS = ("event:", "id:", "retry:", ":")

ITEM_EVENT_TYPES = frozenset({"ItemStateEvent", "GroupItemStateChangedEvent"})

# Item name is taken by position. A hub changing this shape breaks routing.
TOPIC_FORMAT = "{namespace}/items/{item}/{event}"
TOPIC_ITEM_INDEX = 2

SUPPRESSED_VALUES = frozenset({"UNDEF", "NULL"})
MAX_PENDING_FRAGMENT = 64 * 1024

JSON_LITERALS = ("true", "false", "null")
# Tail of a number cut short: sign, fraction or exponent still missing digits.
_PARTIAL_NUMBER_RE = re.compile(r"^-?\d*(?:\.\d*)?(?:[eE][+-]?\d*)?$")


@dataclass(frozen=True)
class StreamEvent:
    event_type: str
    topic: str
    item_name: str
    value: str


def item_name_from_topic(topic: str) -> str | None:
    """Extract the item name from a topic shaped like ``TOPIC_FORMAT``."""
    segments = topic.split("/")
    if len(segments) <= TOPIC_ITEM_INDEX:
        return None
    name = segments[TOPIC_ITEM_INDEX]
    return name or None


def _decode_payload(payload: object) -> Mapping[str, Any] | None:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return None
    if isinstance(payload, Mapping):
        return payload
    return None


def decode_event(envelope: Mapping[str, Any]) -> StreamEvent | None:
    """Turn one decoded SSE envelope into a ``StreamEvent``.

    Returns ``None`` for event types other than item state events, topics
    without an item segment, undecodable payloads and ``UNDEF``/``NULL`` values.
    """
    event_type = envelope.get("type")
    if not isinstance(event_type, str) or event_type not in ITEM_EVENT_TYPES:
        return None

    topic = envelope.get("topic")
    if not isinstance(topic, str):
        return None
    item_name = item_name_from_topic(topic)
    if item_name is None:
        return None

    payload = _decode_payload(envelope.get("payload"))
    if payload is None:
        return None
    value = payload.get("value")
    if value is None:
        return None

    text = str(value)
    if text.strip().upper() in SUPPRESSED_VALUES:
        return None

    return StreamEvent(event_type=event_type, topic=topic, item_name=item_name, value=text)


def _strip_frame(line: str) -> str:
    if line.startswith(FRAME_PREFIX):
        return line[len(FRAME_PREFIX) :]
    return line[len(FRAME_FIELD) :]


def _is_truncated(document: str, err: json.JSONDecodeError) -> bool:
    if err.msg.startswith(("Unterminated string", "Invalid \\")):
        return True
    rest = document[err.pos :].rstrip()
    if not rest:
        return True
    if not err.msg.startswith(("Expecting value", "Expecting ',' delimiter")):
        return False
    # A literal or number cut mid-token is reported at its start, not at the end.
    return any(literal.startswith(rest) for literal in JSON_LITERALS) or bool(_PARTIAL_NUMBER_RE.match(rest))


class EventStreamParser:
    """Incremental parser for the ``data: <json>`` lines of the event stream.

    ``feed`` accepts chunks of any size. JSON documents cut by a chunk boundary
    are kept in a pending fragment and completed by the first line of the next
    chunk; malformed lines are logged and skipped.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""
        self._pending: str | None = None

    @property
    def pending(self) -> str | None:
        return self._pending

    def reset(self) -> None:
        self._decoder.reset()
        self._carry = ""
        self._pending = None

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        text = self._carry + text
        self._carry = ""

        lines = text.split("\n")
        tail = lines.pop()

        events: list[StreamEvent] = []
        for line in lines:
            self._feed_line(line.rstrip("\r"), events)

        if tail:
            if self._pending is None and (not tail.startswith(FRAME_FIELD) or not _strip_frame(tail).strip()):
                self._carry = tail
            else:
                self._feed_line(tail, events)

        return events

    def _feed_line(self, line: str, events: list[StreamEvent]) -> None:
        if self._pending is not None:
            if line.startswith(FRAME_FIELD):
                self.logger.debug("Dropping incomplete fragment %r", self._pending)
                self._pending = None
            else:
                document = self._pending + line
                self._pending = None
                self._handle_document(document, events)
                return

        if not line.strip():
            return
        if line.startswith(NON_DATA_FIELDS):
            return
        if not line.startswith(FRAME_FIELD):
            self.logger.debug("Skipping unframed stream line %r", line)
            return

        document = _strip_frame(line)
        if document.strip():
            self._handle_document(document, events)

    def _handle_document(self, document: str, events: list[StreamEvent]) -> None:
        try:
            envelope = json.loads(document)
        except json.JSONDecodeError as err:
            envelope = self._recover(document, err)
            if envelope is None:
                return

        if not isinstance(envelope, Mapping):
            self.logger.debug("Ignoring non-object stream document %r", document)
            return

        try:
            event = decode_event(envelope)
        except (TypeError, ValueError, AttributeError) as err:
            self.logger.debug("Discarding undecodable stream document %r: %s", document, err)
            return
        if event is not None:
            events.append(event)

    def _recover(self, document: str, err: json.JSONDecodeError) -> Any:
        if err.msg == "Extra data":
            end = document.rfind("}", 0, err.pos + 1)
            if end != -1:
                try:
                    return json.loads(document[: end + 1])
                except json.JSONDecodeError:
                    pass
            self.logger.debug("Discarding stream line with trailing garbage %r", document)
            return None

        if _is_truncated(document, err):
            if len(document) > MAX_PENDING_FRAGMENT:
                self.logger.debug("Discarding oversized stream fragment (%d chars)", len(document))
                return None
            self._pending = document
            return None

        self.logger.debug("Discarding malformed stream line %r: %s", document, err)
        return None
