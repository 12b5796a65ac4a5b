"""Library exception types."""

from __future__ import annotations


class OpenHABError(Exception):
    """Base exception for openhab_remote."""


class ConfigurationError(OpenHABError):
    """Integration options are missing or invalid."""


class ConnectionFailedError(OpenHABError):
    """HTTP connection to the hub could not be established or was lost."""


class ConnectionTimeoutError(OpenHABError):
    """HTTP request to the hub timed out."""


class NotConnectedError(OpenHABError):
    """Operation requires an active connection."""


class HubResponseError(OpenHABError):
    """Hub answered with a non-success HTTP status."""

    def __init__(self, path: str, status: int) -> None:
        super().__init__(f"Request '{path}' failed with HTTP {status}")
        self.path = path
        self.status = status


class MalformedResponseError(OpenHABError):
    """Hub answered with a body that is not the expected JSON document."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Malformed response for '{path}': {reason}")
        self.path = path
        self.reason = reason


class StateTransitionError(OpenHABError):
    """Connection state machine was asked for a transition it does not allow."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Invalid connection state transition {current} -> {requested}")
        self.current = current
        self.requested = requested


TRANSPORT_ERRORS = (ConnectionFailedError, ConnectionTimeoutError, HubResponseError, MalformedResponseError)
