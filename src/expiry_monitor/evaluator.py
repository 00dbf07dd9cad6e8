"""
Domain evaluator: WHOIS lookup, expiration extraction and day-count
arithmetic for a single domain.
"""

import math
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .audit_logger import AuditLogger
from .exceptions import ExtractionError, WhoisLookupError
from .extractor import ExpirationExtractor
from .models import DomainStatus, WhoisRecord


NOT_FOUND_MESSAGE = "Could not find expiration date in WHOIS data"

SECONDS_PER_DAY = 86400


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WhoisLookup(Protocol):
    """Anything that can fetch a WHOIS record for a domain."""

    async def lookup(self, domain: str) -> WhoisRecord:
        ...


def days_until(expiration_date: datetime, now: datetime) -> int:
    """Whole days until expiration, rounded up (negative once expired)."""
    delta = (expiration_date - now).total_seconds()
    return math.ceil(delta / SECONDS_PER_DAY)


def build_status(
    domain: str,
    expiration_date: datetime,
    warning_days: int,
    now: datetime,
    description: str = "",
    checked_at: Optional[str] = None,
) -> DomainStatus:
    """Compute a success record for an expiration date at time `now`."""
    days = days_until(expiration_date, now)
    return DomainStatus(
        domain=domain,
        description=description,
        expiration_date=expiration_date,
        days_until_expiration=days,
        needs_warning=days <= warning_days,
        error=None,
        checked_at=checked_at,
    )


class DomainEvaluator:
    """Produces a fresh DomainStatus from a live WHOIS lookup."""

    def __init__(
        self,
        whois_lookup: WhoisLookup,
        extractor: Optional[ExpirationExtractor] = None,
        clock: Clock = utc_now,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._whois = whois_lookup
        self._extractor = extractor or ExpirationExtractor(logger=logger)
        self._clock = clock
        self._logger = logger

    async def evaluate(
        self, domain: str, warning_days: int, description: str = ""
    ) -> DomainStatus:
        """
        Evaluate one domain.

        Lookup and extraction failures are returned as error records,
        never raised; they are not retried within the cycle.
        """
        now = self._clock()
        checked_at = now.isoformat()

        try:
            record = await self._whois.lookup(domain)
        except WhoisLookupError as e:
            self._log_error(f"WHOIS lookup failed for {domain}", e, domain)
            return DomainStatus.failure(domain, e.message, description, checked_at)
        except Exception as e:
            self._log_error(f"Unexpected error looking up {domain}", e, domain)
            return DomainStatus.failure(domain, str(e) or type(e).__name__, description, checked_at)

        try:
            expiration = self._extractor.extract(record)
        except Exception as e:
            self._log_error(f"Unexpected error extracting expiration for {domain}", e, domain)
            return DomainStatus.failure(domain, str(e) or type(e).__name__, description, checked_at)
        if expiration is None:
            error = ExtractionError(
                code="expiration_not_found",
                message=NOT_FOUND_MESSAGE,
                details={"fields": list(record.keys())},
            )
            self._log_error(f"No expiration date for {domain}", error, domain)
            return DomainStatus.failure(domain, error.message, description, checked_at)

        status = build_status(
            domain, expiration, warning_days, now, description, checked_at
        )
        if self._logger:
            self._logger.info(
                "DomainEvaluator",
                f"{domain}: {status.days_until_expiration} days until expiration",
                {
                    "domain": domain,
                    "expiration_date": expiration.isoformat(),
                    "needs_warning": status.needs_warning,
                },
            )
        return status

    def _log_error(self, message: str, error: Exception, domain: str) -> None:
        if self._logger:
            self._logger.log_error("DomainEvaluator", message, error=error, domain=domain)
