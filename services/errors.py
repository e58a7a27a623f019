"""
Error types for the SAS issuer.

Backend failures are not wrapped: anything raised by the Azure SDK reaches the
caller as the original azure.core exception. ``StorageError`` is exported as an
alias so callers can catch the whole family in one place.
"""

from azure.core.exceptions import AzureError as StorageError


class SasIssuerError(Exception):
    """Base class for errors raised by the issuer itself."""


class ValidationError(SasIssuerError, ValueError):
    """Malformed container name, policy window, identifier or permission set."""


class ConfigurationError(SasIssuerError):
    """Missing or invalid configuration, e.g. no connection string."""


class AuthorizationError(ConfigurationError):
    """The storage client holds a credential that cannot sign a SAS."""


__all__ = [
    "SasIssuerError",
    "ValidationError",
    "ConfigurationError",
    "AuthorizationError",
    "StorageError",
]
