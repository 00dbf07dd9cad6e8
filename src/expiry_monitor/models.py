"""
Data models for the expiry monitor.

This module defines the configured domain input, the per-domain status
record that is cached and served, and the summary of a refresh cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import RefreshMode


# Open-ended WHOIS field mapping; keys are registrar/TLD specific.
WhoisRecord = dict[str, Any]


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, treating naive values as UTC."""
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso_datetime(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class DomainSpec:
    """A monitored domain as entered in configuration."""

    domain: str  # Canonical form (lowercase, IDNA)
    description: str = ""

    def to_dict(self) -> dict:
        return {"domain": self.domain, "description": self.description}


@dataclass
class DomainStatus:
    """
    Expiration status of a single domain.

    A record either carries the success triple (expiration_date,
    days_until_expiration, needs_warning) or an error message, never both.
    """

    domain: str
    description: str = ""
    expiration_date: Optional[datetime] = None
    days_until_expiration: Optional[int] = None
    needs_warning: bool = False
    error: Optional[str] = None
    checked_at: Optional[str] = None  # When the WHOIS data was fetched

    @classmethod
    def failure(
        cls,
        domain: str,
        error: str,
        description: str = "",
        checked_at: Optional[str] = None,
    ) -> "DomainStatus":
        """Create an error record."""
        return cls(
            domain=domain,
            description=description,
            error=error,
            checked_at=checked_at,
        )

    @property
    def has_expiration(self) -> bool:
        return self.error is None and self.expiration_date is not None

    def to_dict(self) -> dict:
        """Serialize using the JSON keys of the status cache and API."""
        data: dict[str, Any] = {
            "domain": self.domain,
            "description": self.description,
        }
        if self.error is not None:
            data["error"] = self.error
        else:
            data["expirationDate"] = (
                format_iso_datetime(self.expiration_date)
                if self.expiration_date is not None
                else None
            )
            data["daysUntilExpiration"] = self.days_until_expiration
            data["needsWarning"] = self.needs_warning
        if self.checked_at is not None:
            data["checkedAt"] = self.checked_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DomainStatus":
        """
        Build a record from its JSON form.

        Raises:
            KeyError: If the domain key is missing
            ValueError: If the expiration date is not ISO 8601
        """
        domain = data["domain"]
        if not isinstance(domain, str) or not domain:
            raise ValueError(f"Invalid domain value: {domain!r}")

        description = data.get("description") or ""
        checked_at = data.get("checkedAt")

        if data.get("error"):
            return cls.failure(domain, str(data["error"]), description, checked_at)

        raw_expiration = data.get("expirationDate")
        expiration = parse_iso_datetime(raw_expiration) if raw_expiration else None
        days = data.get("daysUntilExpiration")

        return cls(
            domain=domain,
            description=description,
            expiration_date=expiration,
            days_until_expiration=int(days) if days is not None else None,
            needs_warning=bool(data.get("needsWarning", False)),
            error=None,
            checked_at=checked_at,
        )


@dataclass
class RefreshReport:
    """Summary of one refresh or recalculation cycle."""

    mode: RefreshMode
    started_at: str
    finished_at: Optional[str] = None
    lookups: int = 0
    cache_hits: int = 0
    errors: int = 0
    notifications: int = 0
    statuses: list[DomainStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "lookups": self.lookups,
            "cache_hits": self.cache_hits,
            "errors": self.errors,
            "notifications": self.notifications,
            "domains": len(self.statuses),
        }
