"""
Daily Brew shared infrastructure: configuration, logging, errors, persistence.
"""

from .config import BrewSettings, get_settings, reset_settings
from .errors import BrewError, InvalidTimeError, PersistenceError
from .logging import get_logger
from .store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "BrewError",
    "BrewSettings",
    "InvalidTimeError",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PersistenceError",
    "get_logger",
    "get_settings",
    "reset_settings",
]
