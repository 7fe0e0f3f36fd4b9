"""
Storage Services Package

Provides abstract interfaces and concrete implementations for drafts,
permanent records, accounts and the audit log. In-memory and SQL
backends implement the same interfaces and are interchangeable.
"""

from onboarding.services.storage.interface import (
    AccountCreationError,
    CheckoutError,
    AuditStorageInterface,
    AuthProviderInterface,
    CheckoutPort,
    DraftConsumedError,
    DraftExpiredStorageError,
    DraftStoreInterface,
    NotFoundError,
    OrderingError,
    PermanentStorageInterface,
    StorageConnectionError,
    StorageError,
)
from onboarding.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryAuthProvider,
    InMemoryBackend,
    InMemoryDraftStore,
    InMemoryPermanentStorage,
)
from onboarding.services.storage.sql import (
    SqlAuditStorage,
    SqlAuthProvider,
    SqlDatabase,
    SqlDraftStore,
    SqlPermanentStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "AuthProviderInterface",
    "CheckoutPort",
    "DraftStoreInterface",
    "PermanentStorageInterface",
    # Exceptions
    "AccountCreationError",
    "CheckoutError",
    "DraftConsumedError",
    "DraftExpiredStorageError",
    "NotFoundError",
    "OrderingError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryAuthProvider",
    "InMemoryBackend",
    "InMemoryDraftStore",
    "InMemoryPermanentStorage",
    # SQL implementation
    "SqlAuditStorage",
    "SqlAuthProvider",
    "SqlDatabase",
    "SqlDraftStore",
    "SqlPermanentStorage",
]
