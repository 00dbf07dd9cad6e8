"""
Exception classes for the expiry monitor.

All exceptions inherit from ExpiryMonitorError and carry a machine-readable
code, a human-readable message and optional details.
"""

from typing import Optional


class ExpiryMonitorError(Exception):
    """Base exception for all expiry monitor errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ExpiryMonitorError):
    """Raised when a configured domain name is not usable."""

    pass


class ConfigError(ExpiryMonitorError):
    """Raised when configuration cannot be loaded, parsed or saved."""

    pass


class WhoisLookupError(ExpiryMonitorError):
    """Raised when a WHOIS query fails at the transport or protocol level."""

    pass


class ExtractionError(ExpiryMonitorError):
    """Raised when WHOIS data holds no recognizable expiration date."""

    pass


class PersistenceError(ExpiryMonitorError):
    """Raised when the status cache cannot be read or written."""

    pass


class NotificationError(ExpiryMonitorError):
    """Raised when notification delivery fails."""

    pass
