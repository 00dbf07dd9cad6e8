"""
Configuration store for the expiry monitor.

Settings live in config.json and the monitored domains in domains.json,
both inside one configuration directory. The JSON layout uses camelCase
keys so files written by the web UI can be edited by hand.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .audit_logger import AuditLogger
from .config import AppConfig, LoggingConfig, NtfyConfig
from .domain_validator import DomainValidator
from .enums import NotificationPriority, NotifyPolicy
from .exceptions import ConfigError, ValidationError
from .models import DomainSpec
from .scheduler import CronParseError, CronParser


CONFIG_FILE_NAME = "config.json"
DOMAINS_FILE_NAME = "domains.json"
CACHE_FILE_NAME = "domain-status.json"

ENV_CONFIG_DIR = "EXPIRY_MONITOR_CONFIG_DIR"
ENV_CACHE_FILE = "EXPIRY_MONITOR_CACHE_FILE"
ENV_NTFY_TOKEN = "NTFY_TOKEN"


@dataclass
class StoragePaths:
    """Where configuration and cache files live."""

    config_dir: Path
    cache_file: Path

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def domains_file(self) -> Path:
        return self.config_dir / DOMAINS_FILE_NAME


def resolve_paths(config_dir: Optional[str] = None) -> StoragePaths:
    """
    Resolve storage paths from an explicit directory or the environment.

    Defaults to ~/.expiry_monitor with the cache in its cache/ subdirectory.
    """
    base = Path(
        config_dir or os.getenv(ENV_CONFIG_DIR) or Path.home() / ".expiry_monitor"
    ).expanduser()
    cache_env = os.getenv(ENV_CACHE_FILE)
    cache_file = Path(cache_env).expanduser() if cache_env else base / "cache" / CACHE_FILE_NAME
    return StoragePaths(config_dir=base, cache_file=cache_file)


def _require(condition: bool, message: str, details: Optional[dict] = None) -> None:
    if not condition:
        raise ConfigError(code="invalid_value", message=message, details=details or {})


def config_to_dict(config: AppConfig) -> dict:
    """Serialize AppConfig to its JSON layout."""
    return {
        "warningDays": config.warning_days,
        "checkInterval": config.check_interval,
        "useCache": config.use_cache,
        "recalculateAfterSave": config.recalculate_after_save,
        "recalculateInterval": config.recalculate_interval,
        "notifyPolicy": config.notify_policy.value,
        "whoisTimeout": config.whois_timeout,
        "lookupDelaySeconds": config.lookup_delay_seconds,
        "ntfy": {
            "url": config.ntfy.url,
            "priority": config.ntfy.priority.value,
            "token": config.ntfy.token,
            "username": config.ntfy.username,
            "password": config.ntfy.password,
            "enabled": config.ntfy.enabled,
        },
        "logging": {
            "level": config.logging.level,
            "outputFormat": config.logging.output_format,
        },
    }


def config_from_dict(data: dict) -> AppConfig:
    """
    Build AppConfig from its JSON layout, filling in defaults.

    Raises:
        ConfigError: If a value has the wrong type or is out of range
    """
    _require(isinstance(data, dict), "Configuration must be a JSON object")
    defaults = AppConfig()

    warning_days = data.get("warningDays", defaults.warning_days)
    _require(
        isinstance(warning_days, int) and not isinstance(warning_days, bool) and warning_days >= 0,
        "warningDays must be a non-negative integer",
        {"warningDays": warning_days},
    )

    check_interval = data.get("checkInterval", defaults.check_interval)
    recalculate_interval = data.get("recalculateInterval", defaults.recalculate_interval)
    parser = CronParser()
    for key, expression, optional in (
        ("checkInterval", check_interval, False),
        ("recalculateInterval", recalculate_interval, True),
    ):
        _require(isinstance(expression, str), f"{key} must be a string")
        if optional and not expression.strip():
            continue
        try:
            parser.parse(expression)
        except CronParseError as e:
            raise ConfigError(
                code="invalid_schedule",
                message=f"{key} is not a valid cron expression: {e.message}",
                details={key: expression},
            ) from e

    try:
        notify_policy = NotifyPolicy(data.get("notifyPolicy", defaults.notify_policy.value))
    except ValueError as e:
        raise ConfigError(code="invalid_value", message=str(e)) from e

    whois_timeout = data.get("whoisTimeout", defaults.whois_timeout)
    lookup_delay = data.get("lookupDelaySeconds", defaults.lookup_delay_seconds)
    _require(
        isinstance(whois_timeout, (int, float)) and whois_timeout > 0,
        "whoisTimeout must be a positive number",
    )
    _require(
        isinstance(lookup_delay, (int, float)) and lookup_delay >= 0,
        "lookupDelaySeconds must be a non-negative number",
    )

    ntfy_data = data.get("ntfy") or {}
    _require(isinstance(ntfy_data, dict), "ntfy must be a JSON object")
    try:
        priority = NotificationPriority(ntfy_data.get("priority", "default"))
    except ValueError as e:
        raise ConfigError(code="invalid_value", message=str(e)) from e

    ntfy = NtfyConfig(
        url=str(ntfy_data.get("url") or ""),
        priority=priority,
        token=ntfy_data.get("token") or None,
        username=ntfy_data.get("username") or None,
        password=ntfy_data.get("password") or None,
        enabled=bool(ntfy_data.get("enabled", True)),
    )

    logging_data = data.get("logging") or {}
    _require(isinstance(logging_data, dict), "logging must be a JSON object")
    output_format = logging_data.get("outputFormat", "text")
    _require(
        output_format in ("json", "text", "both"),
        "logging.outputFormat must be one of json, text, both",
    )

    return AppConfig(
        warning_days=warning_days,
        check_interval=check_interval,
        use_cache=bool(data.get("useCache", defaults.use_cache)),
        recalculate_after_save=bool(
            data.get("recalculateAfterSave", defaults.recalculate_after_save)
        ),
        recalculate_interval=recalculate_interval,
        notify_policy=notify_policy,
        whois_timeout=float(whois_timeout),
        lookup_delay_seconds=float(lookup_delay),
        ntfy=ntfy,
        logging=LoggingConfig(
            level=str(logging_data.get("level", "info")),
            output_format=output_format,
        ),
    )


def domains_to_dict(domains: list[DomainSpec]) -> dict:
    return {"domains": [spec.to_dict() for spec in domains]}


class ConfigStore:
    """Loads and saves config.json and domains.json."""

    def __init__(
        self,
        paths: StoragePaths,
        ntfy_token: Optional[str] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            paths: Storage locations
            ntfy_token: Token that overrides the one in config.json
            logger: Optional audit logger
        """
        self._paths = paths
        self._ntfy_token = ntfy_token
        self._validator = DomainValidator()
        self._logger = logger

    @property
    def paths(self) -> StoragePaths:
        return self._paths

    def load(self) -> tuple[AppConfig, list[DomainSpec]]:
        """
        Load configuration and domains; missing files yield defaults.

        Raises:
            ConfigError: If a file is unreadable, malformed or invalid
        """
        config = config_from_dict(self._read_json(self._paths.config_file, {}))
        if self._ntfy_token:
            config.ntfy.token = self._ntfy_token

        domains_data = self._read_json(self._paths.domains_file, {"domains": []})
        entries = domains_data.get("domains", []) if isinstance(domains_data, dict) else None
        _require(isinstance(entries, list), "domains.json must hold a 'domains' array")

        return config, self.parse_domains(entries)

    def parse_domains(self, entries: list[Any]) -> list[DomainSpec]:
        """
        Validate raw domain entries.

        Raises:
            ConfigError: If an entry is invalid or duplicated
        """
        try:
            return self._validator.build_specs(entries)
        except ValidationError as e:
            raise ConfigError(code=e.code, message=e.message, details=e.details) from e

    def config_document(self, config: AppConfig) -> dict:
        """JSON layout of config with environment-supplied secrets removed."""
        data = config_to_dict(config)
        if self._ntfy_token and config.ntfy.token == self._ntfy_token:
            data["ntfy"]["token"] = None
        return data

    def save(self, config: AppConfig, domains: list[DomainSpec]) -> None:
        """
        Write both files.

        Raises:
            ConfigError: If a file cannot be written
        """
        self._write_json(self._paths.config_file, self.config_document(config))
        self._write_json(self._paths.domains_file, domains_to_dict(domains))

        if self._logger:
            self._logger.info(
                "ConfigStore",
                "Configuration saved",
                {"config_dir": str(self._paths.config_dir), "domains": len(domains)},
            )

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(
                code="parse_error",
                message=f"Failed to parse {path.name}: {e}",
                details={"file_path": str(path)},
            ) from e
        except OSError as e:
            raise ConfigError(
                code="io_error",
                message=f"Failed to read {path.name}: {e}",
                details={"file_path": str(path)},
            ) from e

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise ConfigError(
                code="io_error",
                message=f"Failed to write {path.name}: {e}",
                details={"file_path": str(path)},
            ) from e
