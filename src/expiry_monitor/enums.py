"""
Enumeration types for the expiry monitor.

These enums provide type-safe constants for log levels, error codes,
notification settings and refresh modes.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LOG_LEVEL_RANKS[self]


_LOG_LEVEL_RANKS = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_TLD = "invalid_tld"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"
    DUPLICATE = "duplicate"


class WHOISErrorCode(Enum):
    """Error codes for WHOIS client operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    NO_SERVER = "no_server"
    EMPTY_RESPONSE = "empty_response"


class NotificationPriority(Enum):
    """Priority levels understood by ntfy."""

    MIN = "min"
    LOW = "low"
    DEFAULT = "default"
    HIGH = "high"
    URGENT = "urgent"


class NotifyPolicy(Enum):
    """How warning notifications are gated."""

    # Fresh lookups alert whenever a domain is in the warning window;
    # cache reuse and recalculation alert only on entering it.
    ALWAYS_ON_LOOKUP = "always_on_lookup"
    # Every path alerts only on entering the warning window.
    EDGE = "edge"


class RefreshMode(Enum):
    """Kind of status cycle that produced a result set."""

    FULL = "full"
    RECALCULATE = "recalculate"
