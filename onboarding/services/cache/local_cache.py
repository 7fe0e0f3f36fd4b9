"""
Device-Local Cache

A namespaced key/value mirror of the visitor's drafts, kept on the device
for instant feedback and as a fallback when a reload races a pending
server write.

DESIGN DECISION: The cache never raises.
- Storage that is missing, disabled or full turns every call into a no-op
  returning False/None.
- A payload that no longer deserializes is a cache miss.
- Callers must behave correctly with no caching at all.

The device storage itself is an injected port, so tests and the server
side can substitute an in-memory fake for browser storage.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel

from onboarding.config import get_settings


logger = structlog.get_logger("onboarding.cache")


class DeviceStorageUnavailable(Exception):
    """Device storage is disabled, full or otherwise unusable."""
    pass


# =============================================================================
# DEVICE STORAGE PORT
# =============================================================================

class DeviceStoragePort(ABC):
    """
    Synchronous string key/value store on the visitor's device.

    Implementations may raise DeviceStorageUnavailable or OSError from
    any method; LocalCache absorbs both.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass


class InMemoryDeviceStorage(DeviceStoragePort):
    """Dictionary-backed storage, optionally with a size quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
            if used + len(key) + len(value) > self._quota_bytes:
                raise DeviceStorageUnavailable("Quota exceeded")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileDeviceStorage(DeviceStoragePort):
    """
    Storage persisted as one JSON object in a file.

    The whole file is rewritten on every change; it is meant for a
    single visitor's handful of keys.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise DeviceStorageUnavailable(f"Unreadable storage file: {e}") from e
        if not isinstance(data, dict):
            raise DeviceStorageUnavailable("Storage file is not a JSON object")
        return data

    def _store(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data), encoding="utf-8")

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._store(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._store(data)

    def keys(self) -> list[str]:
        return list(self._load())


class DisabledDeviceStorage(DeviceStoragePort):
    """Storage that refuses everything, like a private-browsing window."""

    def get_item(self, key: str) -> Optional[str]:
        raise DeviceStorageUnavailable("Device storage is disabled")

    def set_item(self, key: str, value: str) -> None:
        raise DeviceStorageUnavailable("Device storage is disabled")

    def remove_item(self, key: str) -> None:
        raise DeviceStorageUnavailable("Device storage is disabled")

    def keys(self) -> list[str]:
        raise DeviceStorageUnavailable("Device storage is disabled")


# =============================================================================
# LOCAL CACHE
# =============================================================================

_STORAGE_ERRORS = (DeviceStorageUnavailable, OSError)


class LocalCache:
    """
    Namespaced JSON cache over a DeviceStoragePort.

    Every key is stored as `<prefix><key>`. Pydantic models are dumped
    in JSON mode, so `get` returns plain JSON data; callers re-validate
    into their model.
    """

    def __init__(self, port: DeviceStoragePort, prefix: Optional[str] = None):
        if prefix is None:
            prefix = get_settings().drafts.cache_prefix
        self._port = port
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @staticmethod
    def _serialize(value: Any) -> str:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        return json.dumps(value)

    def set(self, key: str, value: Any) -> bool:
        """Store a value. Returns False if it could not be stored."""
        try:
            payload = self._serialize(value)
        except (TypeError, ValueError) as e:
            logger.warning("cache_serialize_failed", key=key, error=str(e))
            return False

        try:
            self._port.set_item(self._key(key), payload)
        except _STORAGE_ERRORS as e:
            logger.debug("cache_unavailable", operation="set", key=key, error=str(e))
            return False
        return True

    def get(self, key: str) -> Any:
        """Stored value, or None when missing, unreadable or unavailable."""
        try:
            payload = self._port.get_item(self._key(key))
        except _STORAGE_ERRORS as e:
            logger.debug("cache_unavailable", operation="get", key=key, error=str(e))
            return None

        if payload is None:
            return None
        try:
            return json.loads(payload)
        except (TypeError, ValueError):
            logger.info("cache_corrupted_entry", key=key)
            return None

    def remove(self, key: str) -> bool:
        try:
            self._port.remove_item(self._key(key))
        except _STORAGE_ERRORS as e:
            logger.debug("cache_unavailable", operation="remove", key=key, error=str(e))
            return False
        return True

    def _own_keys(self) -> list[str]:
        return [k for k in self._port.keys() if k.startswith(self._prefix)]

    def clear(self) -> bool:
        """Remove every key under this cache's prefix, and nothing else."""
        try:
            for key in self._own_keys():
                self._port.remove_item(key)
        except _STORAGE_ERRORS as e:
            logger.debug("cache_unavailable", operation="clear", error=str(e))
            return False
        return True

    def has_any(self) -> bool:
        try:
            return bool(self._own_keys())
        except _STORAGE_ERRORS:
            return False

    def is_available(self) -> bool:
        """Probe the port with a write and a delete."""
        probe = self._key("__probe__")
        try:
            self._port.set_item(probe, "1")
            self._port.remove_item(probe)
        except _STORAGE_ERRORS:
            return False
        return True
