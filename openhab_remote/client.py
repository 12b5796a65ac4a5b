"""Connection manager for one openHAB hub integration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import suppress
from typing import Any, Protocol
from urllib.parse import quote

from openhab_remote import exceptions
from openhab_remote.adapter import AdapterEvent, EntitySnapshot, EntityStateAdapter, StateDelta
from openhab_remote.commands import build_command
from openhab_remote.config import OpenHABConfig
from openhab_remote.entities import Entity, EntityRegistry, EntityType, NotificationSink
from openhab_remote.protocol import EventStreamParser, StreamEvent
from openhab_remote.state import ConnectionState, ConnectionStatus
from openhab_remote.sync import EntitySynchronizer
from openhab_remote.transport import AiohttpTransport, network_interface_up

Callback = Callable[[str, Entity | None], None]
AdapterCallback = Callable[[dict[str, EntitySnapshot], list[StateDelta], list[AdapterEvent]], None]

_ADAPTER_EVENTS = frozenset({"entity_updated", "poll_completed", "connected", "disconnected"})


class StreamResponse(Protocol):
    def iter_chunks(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...


class Transport(Protocol):
    async def get_json(self, path: str) -> Any: ...

    async def post_text(self, path: str, body: str) -> None: ...

    async def open_stream(self, path: str) -> StreamResponse: ...

    async def close(self) -> None: ...


class OpenHABClient:
    """Keeps the entities of one integration in sync with an openHAB hub.

    All work runs on the caller's event loop. The live event stream, the
    reconnect timer and the fallback poll each run as a task that captures the
    connection epoch and stops acting once it has advanced.
    """

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 1.0
    DEFAULT_RECONNECT_DELAY = 2.0
    DEFAULT_STANDBY_POLLING_INTERVAL = 60.0
    DEFAULT_REQUEST_TIMEOUT = 10.0

    SYSTEMINFO_PATH = "systeminfo"
    ITEMS_PATH = "items"
    THINGS_PATH = "things"
    EVENTS_PATH = "events"

    def __init__(
        self,
        config: OpenHABConfig,
        registry: EntityRegistry,
        integration_id: str = "openhab",
        notifications: NotificationSink | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        standby_polling_interval: float = DEFAULT_STANDBY_POLLING_INTERVAL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        logger: logging.Logger | None = None,
        transport_factory: Callable[[], Transport] | None = None,
        sleep_func: Callable[[float], Awaitable[None]] | None = None,
        network_check: Callable[[], bool] | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.integration_id = integration_id
        self.notifications = notifications

        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.reconnect_delay = reconnect_delay
        self.standby_polling_interval = standby_polling_interval
        self.request_timeout = request_timeout

        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.status = ConnectionStatus()
        self.synchronizer = EntitySynchronizer(registry, logger=self.logger)
        self.parser = EventStreamParser(logger=self.logger)

        self._callbacks: set[Callback] = set()
        self._entities: list[Entity] = []

        self._transport_factory = transport_factory or (
            lambda: AiohttpTransport(self.config.url, self.config.token, request_timeout=self.request_timeout)
        )
        self._transport: Transport | None = None
        self._sleep = sleep_func or asyncio.sleep
        self._network_check = network_check or network_interface_up

        self._stream: StreamResponse | None = None
        self._stream_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[bool] | None = None

    @property
    def state(self) -> ConnectionState:
        return self.status.state

    @property
    def connected(self) -> bool:
        return self.status.connected

    @property
    def entities(self) -> tuple[Entity, ...]:
        return tuple(self._entities)

    def register_callback(self, callback: Callback) -> None:
        self._callbacks.add(callback)

    def deregister_callback(self, callback: Callback) -> None:
        self._callbacks.discard(callback)

    def register_adapter_callback(self, adapter: EntityStateAdapter, callback: AdapterCallback) -> Callback:
        """Register a callback that receives entity snapshots, deltas and events."""

        def wrapped(event: str, entity: Entity | None) -> None:
            if event not in _ADAPTER_EVENTS:
                return

            initial = adapter.last_snapshots is None
            snapshots, deltas, events = adapter.update(self._entities)

            if initial:
                callback(snapshots, deltas, [AdapterEvent(kind="initial", payload={}), *events])
                return

            if not deltas and not events:
                return

            callback(snapshots, deltas, events)

        self.register_callback(wrapped)
        return wrapped

    def deregister_adapter_callback(self, callback: Callback) -> None:
        """Deregister a callback previously returned by ``register_adapter_callback``."""
        self.deregister_callback(callback)

    async def connect(self) -> bool:
        """Probe the hub, run the full poll and open the event stream."""
        if self.status.state != ConnectionState.DISCONNECTED:
            self.logger.debug("connect() ignored in state %s", self.status.state)
            return self.status.connected

        self.status.transition(ConnectionState.CONNECTING)
        epoch = self.status.advance_epoch()
        self._entities = list(self.registry.get_by_integration(self.integration_id))
        self._emit("connecting", None)

        if not await self._wait_for_network(epoch):
            if self.status.is_current(epoch):
                await self._fail_connection("openHAB - network is not available")
            return False

        if not await self._retrying(self._probe, "Reachability probe", epoch):
            if self.status.is_current(epoch):
                await self._fail_connection(f"openHAB - cannot connect to {self.config.url}")
            return False

        if not await self._retrying(lambda: self.poll(first=True), "Full poll", epoch):
            if self.status.is_current(epoch):
                await self._fail_connection(f"openHAB - cannot read items from {self.config.url}")
            return False

        await self.start_sse()
        if not self.status.is_current(epoch):
            return False

        self.status.transition(ConnectionState.CONNECTED)
        self.logger.info("Connected to %s", self.config.url)
        self._emit("connected", None)
        self._start_polling(epoch)
        return True

    async def disconnect(self) -> None:
        """User-initiated teardown; never schedules a reconnect."""
        self.status.advance_epoch()
        await self._cancel_tasks()
        await self._abort_stream()
        self.parser.reset()
        self.status.stream_retries = 0

        if self.status.transition(ConnectionState.DISCONNECTED):
            self.logger.info("Disconnected from %s", self.config.url)
            self._emit("disconnected", None)

    async def close(self) -> None:
        await self.disconnect()
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._connect_task
        self._connect_task = None

        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.close()

    async def enter_standby(self) -> None:
        if not self.status.connected or self.status.standby:
            return
        self.status.standby = True
        await self._cancel_reconnect()
        await self._abort_stream()
        self.logger.info("Entering standby, event stream suspended")

    async def leave_standby(self) -> bool:
        if not self.status.standby:
            return self.status.connected
        self.status.standby = False
        if not self.status.connected:
            return False

        epoch = self.status.epoch
        self.logger.info("Leaving standby")
        if not await self._retrying(self._probe, "Reachability probe", epoch):
            if self.status.is_current(epoch):
                await self._fail_connection(f"openHAB - cannot connect to {self.config.url}")
            return False

        await self.start_sse()
        if not self.status.is_current(epoch):
            return False

        try:
            await self.poll()
        except exceptions.TRANSPORT_ERRORS as err:
            self.logger.warning("Poll after standby failed: %s", err)
        return True

    async def poll(self, first: bool = False) -> None:
        """Fetch all items and apply them.

        The first poll of a connection also resolves media player things,
        resets entity connectivity and reports missing entities once.
        """
        transport = self._get_transport()
        players = [entity for entity in self._entities if entity.entity_type == EntityType.MEDIA_PLAYER]

        things: list[Any] | None = None
        if first and players:
            things = _expect_list(self.THINGS_PATH, await transport.get_json(self.THINGS_PATH))
        items = _expect_list(self.ITEMS_PATH, await transport.get_json(self.ITEMS_PATH))

        if things is not None:
            self._process_things(things, players)
        self._process_items(items, first)
        self._emit("poll_completed", None)

    async def refresh_item(self, name: str) -> bool:
        """Fetch one item and apply its state; returns ``True`` if an entity changed."""
        if not self.status.connected:
            raise exceptions.NotConnectedError(f"Cannot refresh '{name}' while {self.status.state}")
        path = f"{self.ITEMS_PATH}/{quote(name, safe='')}"
        item = await self._get_transport().get_json(path)
        if not isinstance(item, Mapping):
            raise exceptions.MalformedResponseError(path, "expected a JSON object")
        return self._route_value(name, item.get("state"))

    async def start_sse(self) -> bool:
        """Open the event stream; a failure is handled like a stream drop."""
        epoch = self.status.epoch
        await self._abort_stream()

        try:
            response = await self._get_transport().open_stream(self.EVENTS_PATH)
        except exceptions.TRANSPORT_ERRORS as err:
            self.logger.warning("Cannot open event stream: %s", err)
            if self.status.is_current(epoch):
                await self._stream_finished(epoch)
            return False

        if not self.status.is_current(epoch) or self.status.standby:
            with suppress(*exceptions.TRANSPORT_ERRORS, OSError):
                await response.close()
            return False

        self._stream = response
        self.parser.reset()
        self.status.stream_opened()
        self._stream_task = asyncio.create_task(self._read_stream(epoch, response))
        self.logger.debug("Event stream open")
        self._emit("stream_connected", None)
        return True

    async def send_command(self, entity_type: EntityType | str, entity_id: str, command: str, param: object = None) -> bool:
        """Write one entity command to the hub. Unsupported commands are logged no-ops."""
        hub_command = build_command(entity_type, command, param)
        if hub_command is None:
            self.logger.info("%s command %s not supported for %s", entity_type, command, entity_id)
            return False

        item = entity_id
        if hub_command.attribute is not None:
            bound = self.synchronizer.player_item(entity_id, hub_command.attribute)
            if bound is None:
                self.logger.info("%s command %s not supported for %s", entity_type, command, entity_id)
                return False
            item = bound

        self.logger.debug("%s command %s - %s for %s", entity_type, command, hub_command.value, item)
        try:
            await self._get_transport().post_text(f"{self.ITEMS_PATH}/{quote(item, safe='')}", hub_command.value)
        except exceptions.TRANSPORT_ERRORS as err:
            self.logger.warning("Command %s for %s failed: %s", command, entity_id, err)
            return False
        return True

    def _get_transport(self) -> Transport:
        if self._transport is None:
            self._transport = self._transport_factory()
        return self._transport

    async def _probe(self) -> None:
        info = await self._get_transport().get_json(self.SYSTEMINFO_PATH)
        self.logger.debug("Hub system info: %s", info)

    async def _wait_for_network(self, epoch: int) -> bool:
        for attempt in range(1, self.max_retries + 1):
            if self._network_check():
                return True
            self.logger.warning("Network not available (attempt %d/%d)", attempt, self.max_retries)
            if attempt < self.max_retries:
                await self._sleep(self.retry_delay)
            if not self.status.is_current(epoch):
                return False
        return False

    async def _retrying(self, operation: Callable[[], Awaitable[None]], description: str, epoch: int) -> bool:
        for attempt in range(1, self.max_retries + 1):
            try:
                await operation()
            except exceptions.TRANSPORT_ERRORS as err:
                self.status.mark_unreachable()
                self.logger.warning("%s failed (attempt %d/%d): %s", description, attempt, self.max_retries, err)
                if attempt < self.max_retries:
                    await self._sleep(self.retry_delay)
                if not self.status.is_current(epoch):
                    return False
                continue
            self.status.mark_reachable()
            return self.status.is_current(epoch)
        return False

    def _process_things(self, things: list[Any], players: list[Entity]) -> None:
        self.synchronizer.reset_players()
        player_ids = {player.entity_id for player in players}
        found: set[str] = set()

        for thing in things:
            if not isinstance(thing, Mapping):
                continue
            uid = thing.get("UID")
            if isinstance(uid, str) and uid in player_ids:
                self.synchronizer.register_player_thing(uid, thing)
                found.add(uid)

        missing = 0
        for player in players:
            if player.entity_id in found:
                player.set_connected(True)
            else:
                self.logger.info("Missing player: %s", player.entity_id)
                player.set_connected(False)
                missing += 1

        if missing > 0:
            self._notify(True, f"openHAB - players missing: {missing}")
        self.logger.info("Got %d things, %d players, %d missing", len(things), len(found), missing)

    def _process_items(self, items: list[Any], first: bool) -> None:
        tracked = {
            entity.entity_id: entity for entity in self._entities if entity.entity_type != EntityType.MEDIA_PLAYER
        }
        if first:
            for entity in tracked.values():
                entity.set_connected(False)

        matched: set[str] = set()
        count_all = 0
        for item in items:
            if not isinstance(item, Mapping):
                continue
            name = item.get("name")
            if not isinstance(name, str):
                continue
            count_all += 1

            entity = tracked.get(name)
            if entity is not None:
                matched.add(name)
                if first:
                    entity.set_connected(True)
                if self.synchronizer.apply(entity, item.get("state")):
                    self._emit("entity_updated", entity)
            elif name in self.synchronizer.player_items:
                self._route_value(name, item.get("state"))

        if not first:
            return

        missing = [entity_id for entity_id in tracked if entity_id not in matched]
        for entity_id in missing:
            self.logger.info("Missing entity: %s", entity_id)
        if missing:
            self._notify(True, f"openHAB - entities missing: {len(missing)}")
        self.logger.info("Got %d items, %d for this integration, %d missing", count_all, len(matched), len(missing))

    def _route_value(self, item_name: str, value: object) -> bool:
        entity = self.synchronizer.target_entity(item_name)
        if entity is None or entity not in self._entities:
            self.logger.debug("No entity for item %s", item_name)
            return False
        if not entity.connected:
            self.logger.debug("Entity %s is disconnected, dropping item %s", entity.entity_id, item_name)
            return False
        if not self.synchronizer.apply_item(item_name, value):
            return False
        self._emit("entity_updated", entity)
        return True

    def _handle_event(self, event: StreamEvent) -> None:
        self._route_value(event.item_name, event.value)

    async def _read_stream(self, epoch: int, response: StreamResponse) -> None:
        healthy = False
        try:
            async for chunk in response.iter_chunks():
                if not self._is_live(epoch, response):
                    return
                if chunk and not healthy:
                    # Only a stream that delivers data ends a run of drops.
                    healthy = True
                    self.status.stream_healthy()
                for event in self.parser.feed(chunk):
                    try:
                        self._handle_event(event)
                    except Exception:
                        self.logger.exception("Failed to apply stream event for %s", event.item_name)
            self.logger.info("Event stream closed by hub")
        except exceptions.TRANSPORT_ERRORS as err:
            self.logger.warning("Event stream dropped: %s", err)

        if self._is_live(epoch, response):
            await self._stream_finished(epoch)

    def _is_live(self, epoch: int, response: StreamResponse) -> bool:
        return self.status.is_current(epoch) and self._stream is response

    async def _stream_finished(self, epoch: int) -> None:
        await self._abort_stream()
        if not self.status.is_current(epoch) or self.status.standby:
            return
        if self.status.state == ConnectionState.DISCONNECTED:
            return
        self._schedule_reconnect(epoch)

    async def _abort_stream(self) -> None:
        task, self._stream_task = self._stream_task, None
        response, self._stream = self._stream, None
        was_connected = self.status.stream_connected
        self.status.stream_closed()

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if response is not None:
            with suppress(*exceptions.TRANSPORT_ERRORS, OSError):
                await response.close()
        if was_connected:
            self._emit("stream_disconnected", None)

    def _schedule_reconnect(self, epoch: int) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self.logger.info("Event stream down, reconnecting in %.1fs", self.reconnect_delay)
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay(epoch))

    async def _reconnect_after_delay(self, epoch: int) -> None:
        await self._sleep(self.reconnect_delay)
        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None
        if not self.status.is_current(epoch) or self.status.standby:
            return
        if self.status.state == ConnectionState.DISCONNECTED:
            return
        await self._on_reconnect_timeout()

    async def _on_reconnect_timeout(self) -> None:
        if self.status.stream_retries >= self.max_retries:
            self.logger.error("Event stream failed %d times, giving up", self.status.stream_retries)
            self.status.stream_retries = 0
            await self._fail_connection(f"openHAB - cannot connect to {self.config.url}")
            return

        await self._abort_stream()
        self.status.stream_retries += 1
        self.logger.info("Reconnecting event stream (attempt %d/%d)", self.status.stream_retries, self.max_retries)
        await self.start_sse()

    def _start_polling(self, epoch: int) -> None:
        if self.config.polling_interval <= 0:
            return
        self._poll_task = asyncio.create_task(self._poll_loop(epoch))

    async def _poll_loop(self, epoch: int) -> None:
        while self.status.is_current(epoch):
            interval = self.standby_polling_interval if self.status.standby else self.config.polling_interval
            await self._sleep(interval)
            if not self.status.is_current(epoch) or not self.status.connected:
                return
            if self.status.stream_connected:
                continue

            try:
                await self.poll()
            except exceptions.TRANSPORT_ERRORS as err:
                self.status.mark_unreachable()
                self.logger.warning("Fallback poll failed: %s", err)
                if not self.status.standby and self.status.connect_retries >= self.max_retries:
                    await self._fail_connection(f"openHAB - cannot connect to {self.config.url}")
                    return
                continue
            self.status.mark_reachable()

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        await _cancel(task)

    async def _cancel_tasks(self) -> None:
        await self._cancel_reconnect()
        task, self._poll_task = self._poll_task, None
        await _cancel(task)

    async def _fail_connection(self, text: str) -> None:
        self.status.advance_epoch()
        await self._cancel_tasks()
        await self._abort_stream()
        self.status.hub_reachable = False

        if self.status.transition(ConnectionState.DISCONNECTED):
            self._emit("disconnected", None)
        self._notify(True, text, action=self._request_reconnect)

    def _request_reconnect(self) -> asyncio.Task[bool]:
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self.connect())
        return self._connect_task

    def _notify(self, error: bool, text: str, action: Callable[[], object] | None = None) -> None:
        if self.notifications is None:
            self.logger.warning("%s", text)
            return
        try:
            self.notifications.add(error, text, action)
        except Exception:
            self.logger.exception("Notification sink raised an exception for '%s'", text)

    def _emit(self, event: str, entity: Entity | None) -> None:
        for callback in tuple(self._callbacks):
            try:
                callback(event, entity)
            except Exception:
                self.logger.exception("Callback raised an exception during '%s'", event)


def _expect_list(path: str, payload: Any) -> list[Any]:
    if not isinstance(payload, list):
        raise exceptions.MalformedResponseError(path, "expected a JSON array")
    return payload


async def _cancel(task: asyncio.Task[Any] | None) -> None:
    if task is None or task is asyncio.current_task() or task.done():
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
