"""Connection state machine of one hub integration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from openhab_remote.exceptions import StateTransitionError


class ConnectionState(StrEnum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


@dataclass
class ConnectionStatus:
    """All mutable connection flags, owned by the client.

    ``epoch`` advances whenever the live stream is torn down or the connection
    is reset; pending tasks compare their captured epoch before acting.
    """

    state: ConnectionState = ConnectionState.DISCONNECTED
    standby: bool = False
    stream_connected: bool = False
    hub_reachable: bool = False
    connect_retries: int = 0
    stream_retries: int = 0
    epoch: int = 0

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def transition(self, new_state: ConnectionState) -> bool:
        """Move to ``new_state``; returns ``False`` when already there."""
        if new_state == self.state:
            return False
        if new_state not in _TRANSITIONS[self.state]:
            raise StateTransitionError(self.state.value, new_state.value)

        self.state = new_state
        if new_state == ConnectionState.CONNECTED:
            self.connect_retries = 0
            self.hub_reachable = True
        elif new_state == ConnectionState.DISCONNECTED:
            self.standby = False
            self.stream_connected = False
        return True

    def advance_epoch(self) -> int:
        self.epoch += 1
        return self.epoch

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def mark_reachable(self) -> None:
        self.hub_reachable = True
        self.connect_retries = 0

    def mark_unreachable(self) -> None:
        self.hub_reachable = False
        self.connect_retries += 1

    def stream_opened(self) -> None:
        self.stream_connected = True

    def stream_healthy(self) -> None:
        """Stream delivered data; drops from here on start a fresh retry budget."""
        self.stream_retries = 0

    def stream_closed(self) -> None:
        self.stream_connected = False
