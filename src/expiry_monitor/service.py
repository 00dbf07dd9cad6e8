"""
Monitor service for the expiry monitor.

Wires configuration, cache, WHOIS client, planner, notifications and the
scheduler together. At most one refresh or recalculation runs at a time;
every cycle holds the same lock from cache load to cache write.
"""

import asyncio
from typing import Optional

from .audit_logger import AuditLogger
from .config import AppConfig
from .config_store import ConfigStore
from .domain_validator import DomainValidator
from .evaluator import Clock, DomainEvaluator, WhoisLookup, utc_now
from .exceptions import ConfigError, PersistenceError
from .models import DomainSpec, DomainStatus, RefreshReport, WhoisRecord
from .notifications import NotificationGate, Notifier, create_notifier
from .planner import RefreshPlanner
from .scheduler import Scheduler, SchedulerManager
from .status_cache import StatusCacheStore
from .whois_client import WhoisClient


REFRESH_JOB = "refresh"
RECALCULATE_JOB = "recalculate"


class MonitorService:
    """
    Runs refresh and recalculation cycles and keeps them on schedule.

    Configuration is re-read at the start of every cycle, so edits made
    through the web API or by hand take effect on the next run.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        cache_store: StatusCacheStore,
        whois_lookup: Optional[WhoisLookup] = None,
        notifier: Optional[Notifier] = None,
        scheduler_manager: Optional[SchedulerManager] = None,
        simulation_mode: bool = False,
        clock: Clock = utc_now,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config_store: Source of configuration and domains
            cache_store: Status cache
            whois_lookup: WHOIS source; built from config per cycle if None
            notifier: Notifier override; built from config per cycle if None
            scheduler_manager: Owner of the periodic jobs
            simulation_mode: If True, no real WHOIS or ntfy requests are made
            clock: Source of "now" for day-count arithmetic
            logger: Optional audit logger
        """
        self._config_store = config_store
        self._cache_store = cache_store
        self._whois_lookup = whois_lookup
        self._notifier = notifier
        self._scheduler_manager = scheduler_manager or SchedulerManager(
            Scheduler(logger=logger)
        )
        self._simulation_mode = simulation_mode
        self._clock = clock
        self._logger = logger
        self._validator = DomainValidator()
        self._lock = asyncio.Lock()
        self._last_report: Optional[RefreshReport] = None

    @property
    def config_store(self) -> ConfigStore:
        return self._config_store

    @property
    def scheduler_manager(self) -> SchedulerManager:
        return self._scheduler_manager

    @property
    def last_report(self) -> Optional[RefreshReport]:
        return self._last_report

    @property
    def is_busy(self) -> bool:
        """True while a refresh or recalculation holds the lock."""
        return self._lock.locked()

    def load_config(self) -> tuple[AppConfig, list[DomainSpec]]:
        """
        Load configuration and domains.

        Raises:
            ConfigError: If the configuration cannot be loaded
        """
        try:
            return self._config_store.load()
        except ConfigError as e:
            self._log_error("Failed to load configuration", e)
            raise

    async def run_refresh(self) -> RefreshReport:
        """
        Run one full refresh cycle and persist the result.

        Raises:
            ConfigError: If the configuration cannot be loaded; nothing is
                looked up or written in that case
        """
        async with self._lock:
            config, specs = self.load_config()
            prior = self._cache_store.load()
            planner = self._build_planner(config)

            report = await planner.refresh(
                specs, prior, config.warning_days, config.use_cache
            )
            self._persist(report.statuses)
            self._last_report = report
            return report

    async def run_recalculation(self) -> RefreshReport:
        """
        Recompute day-counts from the cache without WHOIS lookups.

        Raises:
            ConfigError: If the configuration cannot be loaded
        """
        async with self._lock:
            config, specs = self.load_config()
            prior = self._cache_store.load()
            planner = self._build_planner(config)

            report = await planner.recalculate(prior, config.warning_days, specs)
            self._persist(report.statuses)
            self._last_report = report
            return report

    async def apply_config(
        self, config: AppConfig, domains: list[DomainSpec]
    ) -> RefreshReport:
        """
        Save new settings, then reschedule and run a cycle.

        Raises:
            ConfigError: If the files cannot be written
        """
        self._config_store.save(config, domains)
        return await self.reschedule_and_run(config)

    def reschedule(self, config: AppConfig) -> None:
        """
        Replace the periodic jobs with ones matching config.

        Raises:
            CronParseError: If a schedule expression is invalid
        """
        self._scheduler_manager.reschedule(
            REFRESH_JOB, config.check_interval, self._scheduled_refresh
        )
        if config.recalculate_interval.strip():
            self._scheduler_manager.reschedule(
                RECALCULATE_JOB, config.recalculate_interval, self._scheduled_recalculation
            )
        else:
            self._scheduler_manager.cancel(RECALCULATE_JOB)

        self._log_info(
            "Schedule updated",
            {
                "check_interval": config.check_interval,
                "recalculate_interval": config.recalculate_interval or None,
            },
        )

    async def reschedule_and_run(
        self, config: Optional[AppConfig] = None
    ) -> RefreshReport:
        """
        Reschedule the jobs and run a cycle right away.

        Runs the recalculation pass when recalculate_after_save is set,
        otherwise a full refresh.
        """
        if config is None:
            config, _ = self.load_config()
        self.reschedule(config)
        if config.recalculate_after_save:
            return await self.run_recalculation()
        return await self.run_refresh()

    def get_status(self) -> list[DomainStatus]:
        """Current cached status list."""
        return self._cache_store.load()

    async def lookup_whois(self, domain: str) -> WhoisRecord:
        """
        Fetch the full WHOIS record for one domain, bypassing the cache.

        Raises:
            ValidationError: If the domain is invalid
            WhoisLookupError: If the lookup fails
        """
        config, _ = self.load_config()
        canonical = self._validator.canonicalize(domain)
        return await self._get_whois_lookup(config).lookup(canonical)

    async def start(self) -> Optional[RefreshReport]:
        """
        Install the schedule and run the initial cycle.

        A failed initial cycle is logged; the schedule stays in place.
        """
        self._log_info("Starting monitor service", {})
        try:
            return await self.reschedule_and_run()
        except ConfigError:
            return None

    async def stop(self) -> None:
        """Cancel all jobs and wait for a running cycle to finish."""
        await self._scheduler_manager.shutdown()
        async with self._lock:
            pass
        self._log_info("Monitor service stopped", {})

    async def _scheduled_refresh(self) -> None:
        await self.run_refresh()

    async def _scheduled_recalculation(self) -> None:
        await self.run_recalculation()

    def _build_planner(self, config: AppConfig) -> RefreshPlanner:
        evaluator = DomainEvaluator(
            whois_lookup=self._get_whois_lookup(config),
            clock=self._clock,
            logger=self._logger,
        )
        notifier = self._notifier or create_notifier(
            config.ntfy, simulation_mode=self._simulation_mode, logger=self._logger
        )
        gate = NotificationGate(
            notifier=notifier, policy=config.notify_policy, logger=self._logger
        )
        return RefreshPlanner(
            evaluator=evaluator,
            gate=gate,
            clock=self._clock,
            lookup_delay_seconds=config.lookup_delay_seconds,
            logger=self._logger,
        )

    def _get_whois_lookup(self, config: AppConfig) -> WhoisLookup:
        if self._whois_lookup is not None:
            return self._whois_lookup
        return WhoisClient(
            timeout=config.whois_timeout,
            simulation_mode=self._simulation_mode,
            logger=self._logger,
        )

    def _persist(self, statuses: list[DomainStatus]) -> None:
        # A failed write leaves the previous cache in place
        try:
            self._cache_store.save(statuses)
        except PersistenceError as e:
            self._log_error("Failed to save domain status cache", e)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("MonitorService", message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error("MonitorService", message, error=error)
