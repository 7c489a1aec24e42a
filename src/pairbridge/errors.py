"""Base exceptions for pairbridge."""

from enum import Enum


class PairBridgeError(Exception):
    """Base exception for all pairbridge errors."""

    pass


class ConfigError(PairBridgeError):
    """Configuration could not be used."""

    pass


class StorageError(PairBridgeError):
    """Credential storage operation failed."""

    pass


class ValidationError(PairBridgeError):
    """Phone identifier rejected by the validator.

    Attributes:
        reason: "missing-number" or "unknown-country-code".
    """

    MISSING_NUMBER = "missing-number"
    UNKNOWN_COUNTRY_CODE = "unknown-country-code"

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class SessionBusyError(PairBridgeError):
    """A pairing session is already in progress."""

    pass


class ExportError(PairBridgeError):
    """Credential export could not run."""

    pass


class ErrorKind(Enum):
    """Runtime error kinds reported by a session service adapter."""

    CONFLICT = "conflict"
    NOT_AUTHORIZED = "not-authorized"
    SOCKET_TIMEOUT = "socket-timeout"
    RATE_OVERLIMIT = "rate-overlimit"
    CONNECTION_CLOSED = "connection-closed"
    TIMED_OUT = "timed-out"
    VALUE_NOT_FOUND = "value-not-found"
    UNKNOWN = "unknown"


# Expected while a socket churns through reconnects; logged at debug only.
NOISY_ERROR_KINDS = frozenset(
    {
        ErrorKind.CONFLICT,
        ErrorKind.NOT_AUTHORIZED,
        ErrorKind.SOCKET_TIMEOUT,
        ErrorKind.RATE_OVERLIMIT,
        ErrorKind.CONNECTION_CLOSED,
        ErrorKind.TIMED_OUT,
        ErrorKind.VALUE_NOT_FOUND,
    }
)


class SessionServiceError(PairBridgeError):
    """Error raised by a session service adapter."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

    @property
    def is_noisy(self) -> bool:
        return self.kind in NOISY_ERROR_KINDS
