"""Exception hierarchy for safeguardpy.

All exceptions inherit from :class:`SafeguardError` so callers can catch
every SDK failure with a single ``except`` clause while still being able to
distinguish the failure class when they need to.

Subclass hierarchy::

    SafeguardError
    +-- MissingArgumentError     (required input empty or missing)
    +-- InvalidArgumentError     (input outside its allowed values)
    +-- UnsupportedServiceError  (service outside the closed set)
    +-- MissingCredentialError   (no user token where one is required)
    +-- ProviderResolutionError  (identity provider could not be discovered)
    +-- TransportError           (non-2xx response or network failure)
    +-- ProtocolError            (well-formed but semantically invalid response)
    +-- ConfigError              (malformed environment or CA configuration)

Input-validation errors are raised before any network I/O takes place.
"""

from __future__ import annotations

from typing import Optional


class SafeguardError(Exception):
    """Base exception for all safeguardpy errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingArgumentError(SafeguardError):
    """Raised when a required argument is ``None`` or empty.

    Each field gets its own message so callers can tell which input was
    rejected without parsing the text; the field name is also available on
    :attr:`argument`.

    Args:
        argument: Name of the offending argument (e.g. ``"host_name"``).
    """

    def __init__(self, argument: str):
        super().__init__(f"{argument} may not be null or empty")
        self.argument = argument


class InvalidArgumentError(SafeguardError):
    """Raised when an argument is present but not one of its allowed values.

    Args:
        argument: Name of the offending argument.
        value: The rejected value.
    """

    def __init__(self, argument: str, value: object):
        super().__init__(f"Invalid {argument}: {value!r}")
        self.argument = argument
        self.value = value


class UnsupportedServiceError(SafeguardError):
    """Raised when a request targets a service outside the supported set."""

    def __init__(self, service: object):
        super().__init__(f"Unsupported service requested: {service}")
        self.service = service


class MissingCredentialError(SafeguardError):
    """Raised when an operation needs a user token and none is stored."""


class ProviderResolutionError(SafeguardError):
    """Raised when an identity provider name cannot be resolved to an id.

    Args:
        provider: The provider name or id the caller asked for.
        message: Optional override for the default message.
    """

    def __init__(self, provider: str, message: Optional[str] = None):
        super().__init__(message or f"Unable to find provider matching '{provider}'")
        self.provider = provider


class TransportError(SafeguardError):
    """Raised when an HTTP exchange fails.

    For HTTP-level failures :attr:`status_code` is set and :attr:`body`
    holds the appliance's (stringified) error body when one was returned.
    Network failures leave both as ``None`` and carry the transport's own
    error text as the message.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolError(SafeguardError):
    """Raised when the appliance answers with a well-formed but invalid response."""


class ConfigError(SafeguardError):
    """Raised for configuration problems (unparseable environment values, bad CA material)."""
