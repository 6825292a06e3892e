"""Domain-specific errors for gattconsole."""

from __future__ import annotations


class GattConsoleError(Exception):
    """Base error for gattconsole."""


class ResolutionError(GattConsoleError):
    """Raised when a user token cannot be resolved to a single entity."""


class EntityNotFoundError(ResolutionError):
    """Raised when no entity matches a token."""


class AmbiguousEntityError(ResolutionError):
    """Raised when more than one entity matches a token."""

    def __init__(self, message: str, candidates: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.candidates = candidates


class EncodeError(GattConsoleError):
    """Raised when a textual value cannot be encoded into bytes."""


class TransportError(GattConsoleError):
    """Base transport error."""


class TransportTimeoutError(TransportError):
    """Raised when a transport operation does not finish in time."""


class DeviceUnreachableError(TransportError):
    """Raised when a device cannot be connected or has gone away."""


class AccessDeniedError(TransportError):
    """Raised when the platform refuses access to a device or attribute."""


class ProtocolError(TransportError):
    """Raised when the peripheral answers with an ATT protocol error code."""

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or f"ATT protocol error 0x{code:02X}")


class StateError(GattConsoleError):
    """Raised when a command needs session state that is missing."""


class NoDeviceSelectedError(StateError):
    """Raised when no device is connected."""


class NoServiceSelectedError(StateError):
    """Raised when no service is selected."""


class NotSubscribedError(StateError):
    """Raised when unsubscribing from a characteristic that is not tracked."""


class AlreadySubscribedError(StateError):
    """Raised when subscribing twice to the same characteristic."""


class NotNotifiableError(StateError):
    """Raised when a characteristic supports neither notify nor indicate."""


class ScriptError(GattConsoleError):
    """Raised on malformed conditional or loop nesting in a script."""


class ConfigLoadError(GattConsoleError):
    """Raised when reading the configuration file fails."""


class ConfigValidationError(GattConsoleError):
    """Raised when the configuration does not conform to schema or semantics."""
