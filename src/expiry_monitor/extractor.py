"""
Expiration date extraction from WHOIS field mappings.

Registrars and registries name the expiration field differently, so the
extractor runs an ordered list of independent strategies and stops at the
first one that yields a parseable date:

1. direct match on well-known field names
2. field names matching an expiry-like pattern
3. a date-shaped substring inside expiry-like string fields

A value that does not parse is skipped; the search moves on.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .models import WhoisRecord


DIRECT_FIELDS = (
    "expiresOn",
    "expirationDate",
    "registryExpiryDate",
    "registrarRegistrationExpirationDate",
    "expires",
    "paid-till",
    "expiry",
)

EXPIRY_FIELD_PATTERN = re.compile(
    r"(expir|renew|registr.*expir|expir.*date|valid.*until)", re.IGNORECASE
)

EMBEDDED_DATE_PATTERN = re.compile(
    r"\d{4}[-/]\d{1,2}[-/]\d{1,2}|[A-Za-z]{3} \d{1,2} \d{4}"
)

# Tried in order after ISO 8601 parsing fails
DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y.%m.%d",
    "%Y.%m.%d %H:%M:%S",
    "%d-%b-%Y",
    "%d-%b-%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d/%m/%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a %b %d %H:%M:%S %Y",
    "%Y%m%d",
)

_TRAILING_ZONE = re.compile(r"\s*(?:\((?:UTC|GMT)\)|UTC|GMT|Z)$", re.IGNORECASE)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a WHOIS date value into an aware UTC datetime.

    Returns None for anything that is not a recognizable date.
    """
    if isinstance(value, datetime):
        try:
            return _as_utc(value)
        except OverflowError:
            return None
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except (ValueError, OverflowError):
        pass

    text = _TRAILING_ZONE.sub("", text).replace(",", "").strip()
    text = re.sub(r"\s+", " ", text)
    for fmt in DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(text, fmt))
        except (ValueError, OverflowError):
            continue

    return None


def _candidates(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


def _first_date(value: Any) -> Optional[datetime]:
    for candidate in _candidates(value):
        parsed = parse_date(candidate)
        if parsed is not None:
            return parsed
    return None


@dataclass
class ExtractionResult:
    """Where an expiration date was found."""

    expiration_date: datetime
    strategy: str
    field: str


def direct_field_match(record: WhoisRecord) -> Optional[ExtractionResult]:
    for name in DIRECT_FIELDS:
        if not record.get(name):
            continue
        parsed = _first_date(record[name])
        if parsed is not None:
            return ExtractionResult(parsed, "direct", name)
    return None


def pattern_field_match(record: WhoisRecord) -> Optional[ExtractionResult]:
    for name, value in record.items():
        if not value or not EXPIRY_FIELD_PATTERN.search(name):
            continue
        parsed = _first_date(value)
        if parsed is not None:
            return ExtractionResult(parsed, "pattern", name)
    return None


def embedded_date_scan(record: WhoisRecord) -> Optional[ExtractionResult]:
    for name, value in record.items():
        if not isinstance(value, str):
            continue
        lowered = name.lower()
        if "expir" not in lowered and "renew" not in lowered:
            continue
        match = EMBEDDED_DATE_PATTERN.search(value)
        if not match:
            continue
        parsed = parse_date(match.group(0))
        if parsed is not None:
            return ExtractionResult(parsed, "embedded", name)
    return None


Strategy = Callable[[WhoisRecord], Optional[ExtractionResult]]

DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    direct_field_match,
    pattern_field_match,
    embedded_date_scan,
)


class ExpirationExtractor:
    """Runs extraction strategies in priority order."""

    def __init__(
        self,
        strategies: Optional[Iterable[Strategy]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES
        self._logger = logger

    def extract(self, record: WhoisRecord) -> Optional[datetime]:
        """Return the expiration date, or None when no strategy finds one."""
        result = self.extract_with_source(record)
        return result.expiration_date if result else None

    def extract_with_source(self, record: WhoisRecord) -> Optional[ExtractionResult]:
        for strategy in self._strategies:
            result = strategy(record)
            if result is not None:
                if self._logger:
                    self._logger.debug(
                        "ExpirationExtractor",
                        f"Found expiration date in field: {result.field}",
                        {"strategy": result.strategy, "field": result.field},
                    )
                return result

        if self._logger:
            self._logger.debug(
                "ExpirationExtractor",
                "Could not find expiration date in WHOIS data",
                {"fields": list(record.keys())},
            )
        return None
