"""
Refresh planner for the expiry monitor.

For every configured domain the planner decides whether the cached
expiration date can be trusted or a fresh WHOIS lookup is needed:

- caching disabled: always look up
- no usable cache entry (missing, error, no expiration date): look up
- cached domain more than 2 x warning_days from expiry: reuse the cached
  date, recompute the day-count and refresh the description
- otherwise: look up, since the domain is close enough to the warning
  window that a renewal or transfer must not be missed

Domains are processed strictly one after another. The planner never
writes the cache; the caller persists the returned list in one write.
"""

import asyncio
from datetime import datetime
from typing import Iterable, Optional

from .audit_logger import AuditLogger
from .enums import RefreshMode
from .evaluator import Clock, DomainEvaluator, build_status, days_until, utc_now
from .models import DomainSpec, DomainStatus, RefreshReport
from .notifications import NotificationGate


def index_by_domain(statuses: Iterable[DomainStatus]) -> dict[str, DomainStatus]:
    """Map domain -> status, keeping the first record for each domain."""
    index: dict[str, DomainStatus] = {}
    for status in statuses:
        index.setdefault(status.domain, status)
    return index


class RefreshPlanner:
    """Builds the status set for one refresh or recalculation cycle."""

    def __init__(
        self,
        evaluator: DomainEvaluator,
        gate: Optional[NotificationGate] = None,
        clock: Clock = utc_now,
        lookup_delay_seconds: float = 0.0,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the planner.

        Args:
            evaluator: Performs fresh WHOIS evaluations
            gate: Notification gate; None disables notifications
            clock: Source of "now"
            lookup_delay_seconds: Pause between consecutive WHOIS lookups
            logger: Optional audit logger
        """
        self._evaluator = evaluator
        self._gate = gate or NotificationGate()
        self._clock = clock
        self._lookup_delay_seconds = lookup_delay_seconds
        self._logger = logger

    def is_cache_trusted(
        self, prior: Optional[DomainStatus], warning_days: int, now: datetime
    ) -> bool:
        """True if the cached record is far enough from expiry to reuse."""
        if prior is None or prior.error is not None or prior.expiration_date is None:
            return False
        return days_until(prior.expiration_date, now) > 2 * warning_days

    async def refresh(
        self,
        specs: list[DomainSpec],
        prior_statuses: list[DomainStatus],
        warning_days: int,
        cache_enabled: bool,
    ) -> RefreshReport:
        """
        Run a full refresh cycle.

        Args:
            specs: Configured domains, in configuration order
            prior_statuses: Status set loaded from the cache
            warning_days: Warning threshold in days
            cache_enabled: Whether cached expiration data may be reused

        Returns:
            RefreshReport whose statuses hold one record per spec, in order
        """
        report = RefreshReport(
            mode=RefreshMode.FULL, started_at=self._clock().isoformat()
        )
        prior_index = index_by_domain(prior_statuses)

        self._log_info(
            f"Starting domain check for {len(specs)} domain(s)",
            {"domains": len(specs), "use_cache": cache_enabled, "warning_days": warning_days},
        )

        for spec in specs:
            prior = prior_index.get(spec.domain)
            now = self._clock()

            if cache_enabled and self.is_cache_trusted(prior, warning_days, now):
                status = build_status(
                    spec.domain,
                    prior.expiration_date,
                    warning_days,
                    now,
                    description=spec.description,
                    checked_at=prior.checked_at,
                )
                fresh = False
                report.cache_hits += 1
                self._log_debug(
                    f"{spec.domain}: using cached expiration date",
                    {"domain": spec.domain, "days": status.days_until_expiration},
                )
            else:
                if report.lookups > 0 and self._lookup_delay_seconds > 0:
                    await asyncio.sleep(self._lookup_delay_seconds)
                status = await self._evaluator.evaluate(
                    spec.domain, warning_days, description=spec.description
                )
                fresh = True
                report.lookups += 1

            if status.error is not None:
                report.errors += 1

            if await self._gate.maybe_notify(status, prior, fresh_lookup=fresh):
                report.notifications += 1

            report.statuses.append(status)

        report.finished_at = self._clock().isoformat()
        self._log_info("Domain check completed", report.to_dict())
        return report

    async def recalculate(
        self,
        prior_statuses: list[DomainStatus],
        warning_days: int,
        specs: Optional[list[DomainSpec]] = None,
    ) -> RefreshReport:
        """
        Recompute day-counts for the cached status set without WHOIS calls.

        Error records pass through unchanged. When specs are given,
        descriptions are refreshed from them and records for domains no
        longer configured are dropped.
        """
        report = RefreshReport(
            mode=RefreshMode.RECALCULATE, started_at=self._clock().isoformat()
        )
        spec_index = {spec.domain: spec for spec in specs} if specs is not None else None
        now = self._clock()

        for domain, prior in index_by_domain(prior_statuses).items():
            if spec_index is not None and domain not in spec_index:
                self._log_debug(
                    f"{domain}: dropped from cache, no longer configured",
                    {"domain": domain},
                )
                continue

            description = (
                spec_index[domain].description if spec_index is not None else prior.description
            )

            if prior.error is not None or prior.expiration_date is None:
                status = DomainStatus(
                    domain=prior.domain,
                    description=description,
                    expiration_date=prior.expiration_date,
                    days_until_expiration=prior.days_until_expiration,
                    needs_warning=prior.needs_warning,
                    error=prior.error,
                    checked_at=prior.checked_at,
                )
                if prior.error is not None:
                    report.errors += 1
                report.statuses.append(status)
                continue

            status = build_status(
                domain,
                prior.expiration_date,
                warning_days,
                now,
                description=description,
                checked_at=prior.checked_at,
            )
            report.cache_hits += 1

            if await self._gate.maybe_notify(status, prior, fresh_lookup=False):
                report.notifications += 1

            report.statuses.append(status)

        report.finished_at = self._clock().isoformat()
        self._log_info("Recalculation completed", report.to_dict())
        return report

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("RefreshPlanner", message, data)

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.debug("RefreshPlanner", message, data)
