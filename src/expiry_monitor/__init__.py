"""
Domain Expiry Monitor - WHOIS-based domain expiration tracking.

This package looks up the registration expiry date of configured domains,
caches the results, and sends ntfy push warnings when a domain enters its
warning window.
"""

__version__ = "0.1.0"
__author__ = "Domain Expiry Monitor Team"

from expiry_monitor.exceptions import (
    ExpiryMonitorError,
    ValidationError,
    ConfigError,
    WhoisLookupError,
    ExtractionError,
    PersistenceError,
    NotificationError,
)
from expiry_monitor.enums import (
    LogLevel,
    DomainValidationErrorCode,
    WHOISErrorCode,
    NotificationPriority,
    NotifyPolicy,
    RefreshMode,
)
from expiry_monitor.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from expiry_monitor.config import (
    NtfyConfig,
    LoggingConfig,
    AppConfig,
)
from expiry_monitor.models import (
    WhoisRecord,
    DomainSpec,
    DomainStatus,
    RefreshReport,
)
from expiry_monitor.whois_client import (
    WhoisClient,
    parse_whois_text,
)
from expiry_monitor.extractor import (
    ExpirationExtractor,
    ExtractionResult,
    parse_date,
)
from expiry_monitor.evaluator import (
    DomainEvaluator,
    build_status,
    days_until,
)
from expiry_monitor.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
    NtfyChannel,
    Notifier,
    NotificationGate,
)
from expiry_monitor.planner import (
    RefreshPlanner,
)
from expiry_monitor.status_cache import (
    StatusCacheStore,
)
from expiry_monitor.config_store import (
    ConfigStore,
    StoragePaths,
    resolve_paths,
)
from expiry_monitor.audit_logger import (
    AuditLogger,
    LogEntry,
)
from expiry_monitor.scheduler import (
    CronParser,
    CronParseError,
    CronSchedule,
    Scheduler,
    SchedulerManager,
    ScheduleHandle,
)
from expiry_monitor.service import (
    MonitorService,
)

__all__ = [
    # Exceptions
    "ExpiryMonitorError",
    "ValidationError",
    "ConfigError",
    "WhoisLookupError",
    "ExtractionError",
    "PersistenceError",
    "NotificationError",
    # Enums
    "LogLevel",
    "DomainValidationErrorCode",
    "WHOISErrorCode",
    "NotificationPriority",
    "NotifyPolicy",
    "RefreshMode",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Config
    "NtfyConfig",
    "LoggingConfig",
    "AppConfig",
    # Models
    "WhoisRecord",
    "DomainSpec",
    "DomainStatus",
    "RefreshReport",
    # WHOIS
    "WhoisClient",
    "parse_whois_text",
    # Extraction and evaluation
    "ExpirationExtractor",
    "ExtractionResult",
    "parse_date",
    "DomainEvaluator",
    "build_status",
    "days_until",
    # Notifications
    "NotificationChannel",
    "NotificationPayload",
    "NotificationResult",
    "NtfyChannel",
    "Notifier",
    "NotificationGate",
    # Refresh
    "RefreshPlanner",
    "StatusCacheStore",
    "ConfigStore",
    "StoragePaths",
    "resolve_paths",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Scheduler
    "CronParser",
    "CronParseError",
    "CronSchedule",
    "Scheduler",
    "SchedulerManager",
    "ScheduleHandle",
    # Service
    "MonitorService",
]
