"""Error kinds shared by the CLI and the HTTP layer."""
from __future__ import annotations


class PhonebookError(Exception):
    pass


class ConfigError(PhonebookError):
    """Missing or invalid config key, unsupported sslmode."""


class StoreConnectionError(PhonebookError):
    """The database cannot be reached or opened."""


class StoreError(PhonebookError):
    """A statement failed to execute."""


class ValidationError(PhonebookError, ValueError):
    pass


class NotFoundError(PhonebookError):
    pass
