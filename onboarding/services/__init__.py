"""Services package."""

from onboarding.services.cache import (
    DeviceStoragePort,
    DeviceStorageUnavailable,
    DisabledDeviceStorage,
    InMemoryDeviceStorage,
    JsonFileDeviceStorage,
    LocalCache,
)
from onboarding.services.drafts import (
    DraftAlreadyCompletedError,
    DraftExpiredError,
    DraftNotFoundError,
    DraftOrderingError,
    DraftSessionClient,
    DraftUnavailableError,
    TransportFailureError,
)
from onboarding.services.storage import (
    AccountCreationError,
    CheckoutError,
    AuditStorageInterface,
    AuthProviderInterface,
    CheckoutPort,
    DraftStoreInterface,
    NotFoundError,
    PermanentStorageInterface,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Device cache
    "DeviceStoragePort",
    "DeviceStorageUnavailable",
    "DisabledDeviceStorage",
    "InMemoryDeviceStorage",
    "JsonFileDeviceStorage",
    "LocalCache",
    # Draft client
    "DraftAlreadyCompletedError",
    "DraftExpiredError",
    "DraftNotFoundError",
    "DraftOrderingError",
    "DraftSessionClient",
    "DraftUnavailableError",
    "TransportFailureError",
    # Storage services
    "AccountCreationError",
    "CheckoutError",
    "AuditStorageInterface",
    "AuthProviderInterface",
    "CheckoutPort",
    "DraftStoreInterface",
    "NotFoundError",
    "PermanentStorageInterface",
    "StorageConnectionError",
    "StorageError",
]
