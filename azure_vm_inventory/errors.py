"""Exceptions raised while collecting the inventory."""
from __future__ import annotations

from typing import List, Optional


class InventoryError(Exception):
    """Base class for every failure the exporter surfaces to the operator."""


class ConfigurationError(InventoryError):
    """Raised when required settings are missing or inconsistent."""

    def __init__(self, message: str, missing: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class AuthenticationError(InventoryError):
    """Raised when a token cannot be obtained or is rejected by ARM."""


class AuthorizationError(InventoryError):
    """Raised when ARM answers 403 for a request."""


class ArmRequestError(InventoryError):
    """Any other failed Resource Manager call."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class SubscriptionFetchError(InventoryError):
    """A list required to inventory a subscription could not be fetched."""

    def __init__(self, subscription_id: str, what: str, cause: Exception) -> None:
        super().__init__(f"Fetching {what} for subscription {subscription_id} failed: {cause}")
        self.subscription_id = subscription_id
        self.what = what
        self.cause = cause
