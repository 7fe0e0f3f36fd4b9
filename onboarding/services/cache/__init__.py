"""Device-local cache package."""

from onboarding.services.cache.local_cache import (
    DeviceStoragePort,
    DeviceStorageUnavailable,
    DisabledDeviceStorage,
    InMemoryDeviceStorage,
    JsonFileDeviceStorage,
    LocalCache,
)

__all__ = [
    "DeviceStoragePort",
    "DeviceStorageUnavailable",
    "DisabledDeviceStorage",
    "InMemoryDeviceStorage",
    "JsonFileDeviceStorage",
    "LocalCache",
]
