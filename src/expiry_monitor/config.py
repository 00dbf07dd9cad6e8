"""
Configuration dataclasses for the expiry monitor.

This module defines the application settings edited through the web API
and stored in config.json: warning threshold, schedules, cache policy,
notification channel and logging.
"""

from dataclasses import dataclass, field
from typing import Optional

from .enums import NotificationPriority, NotifyPolicy


@dataclass
class NtfyConfig:
    """ntfy push notification channel configuration."""

    url: str = ""
    priority: NotificationPriority = NotificationPriority.DEFAULT
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    enabled: bool = True

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.url)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class AppConfig:
    """Main application configuration."""

    warning_days: int = 30
    check_interval: str = "0 0 * * *"
    use_cache: bool = True
    recalculate_after_save: bool = False
    recalculate_interval: str = "0 6 * * *"  # Empty string disables
    notify_policy: NotifyPolicy = NotifyPolicy.ALWAYS_ON_LOOKUP
    whois_timeout: float = 10.0
    lookup_delay_seconds: float = 0.0
    ntfy: NtfyConfig = field(default_factory=NtfyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
