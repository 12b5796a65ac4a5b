import pytest

from openhab_remote.exceptions import StateTransitionError
from openhab_remote.state import ConnectionState, ConnectionStatus


def test_connect_cycle_updates_flags():
    status = ConnectionStatus()
    assert status.state == ConnectionState.DISCONNECTED
    assert status.connected is False

    assert status.transition(ConnectionState.CONNECTING) is True
    status.mark_unreachable()
    status.mark_unreachable()
    assert status.connect_retries == 2
    assert status.hub_reachable is False

    assert status.transition(ConnectionState.CONNECTED) is True
    assert status.connected is True
    assert status.connect_retries == 0
    assert status.hub_reachable is True


def test_disconnect_clears_standby_and_stream():
    status = ConnectionStatus()
    status.transition(ConnectionState.CONNECTING)
    status.transition(ConnectionState.CONNECTED)
    status.standby = True
    status.stream_opened()

    assert status.transition(ConnectionState.DISCONNECTED) is True
    assert status.standby is False
    assert status.stream_connected is False


def test_repeated_transition_is_a_no_op():
    status = ConnectionStatus()

    assert status.transition(ConnectionState.DISCONNECTED) is False


@pytest.mark.parametrize(
    ("steps", "requested"),
    [
        ([], ConnectionState.CONNECTED),
        ([ConnectionState.CONNECTING, ConnectionState.CONNECTED], ConnectionState.CONNECTING),
    ],
)
def test_invalid_transitions_raise(steps, requested):
    status = ConnectionStatus()
    for step in steps:
        status.transition(step)

    with pytest.raises(StateTransitionError):
        status.transition(requested)


def test_epoch_invalidates_older_tokens():
    status = ConnectionStatus()
    token = status.advance_epoch()

    assert status.is_current(token) is True
    status.advance_epoch()
    assert status.is_current(token) is False


def test_only_healthy_stream_resets_stream_retries():
    status = ConnectionStatus(stream_retries=2)

    status.stream_opened()

    assert status.stream_connected is True
    assert status.stream_retries == 2

    status.stream_healthy()
    assert status.stream_retries == 0

    status.stream_closed()
    assert status.stream_connected is False
