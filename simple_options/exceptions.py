"""Errors raised (or carried) by the option store."""

from typing import Optional


class OptionStoreError(Exception):
    """Base class for every option store error."""


class InvalidOptionKey(OptionStoreError, ValueError):
    """The key is empty, not a string, or longer than 255 bytes."""


class OptionEncodeError(OptionStoreError, TypeError):
    """A non-string value could not be serialized to JSON."""


class OptionDecodeError(OptionStoreError, ValueError):
    """A row flagged as JSON holds text that does not decode."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Option {key!r} holds malformed JSON: {message}")
        self.key = key


class SchemaProvisioningError(OptionStoreError):
    """The options table could not be created (strict provisioning only)."""


class DataAccessError(OptionStoreError):
    """
    A database failure during a read or write.

    Never raised by the boolean/default API; it is carried in
    ``OptionResult.error`` and handed to the store's ``on_error`` hook.
    """

    def __init__(self, operation: str, key: Optional[str], cause: Exception):
        target = f"option {key!r}" if key is not None else "options"
        super().__init__(f"Failed to {operation} {target}: {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause
