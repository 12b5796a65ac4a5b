"""openHAB hub integration for remote-control entities."""

from openhab_remote import adapter, commands, entities
from openhab_remote.client import OpenHABClient
from openhab_remote.config import OpenHABConfig

__all__ = ["OpenHABClient", "OpenHABConfig", "adapter", "commands", "entities"]

__version__ = "0.1.0"
