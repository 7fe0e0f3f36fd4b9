"""Ephemeral draft session client package."""

from onboarding.services.drafts.client import (
    DraftAlreadyCompletedError,
    DraftClientError,
    DraftExpiredError,
    DraftNotFoundError,
    DraftOrderingError,
    DraftSessionClient,
    DraftUnavailableError,
    TransportFailureError,
)

__all__ = [
    "DraftAlreadyCompletedError",
    "DraftClientError",
    "DraftExpiredError",
    "DraftNotFoundError",
    "DraftOrderingError",
    "DraftSessionClient",
    "DraftUnavailableError",
    "TransportFailureError",
]
