"""
Notification module for the expiry monitor.

Provides the ntfy push channel, a notifier that formats expiration
warnings, and the gate that decides when a warning is due.

Gate rules:
- error records and records outside the warning window never alert
- a fresh WHOIS lookup alerts whenever the domain is in the warning window
  (unless the policy is EDGE)
- cache reuse and recalculation alert only when the domain enters the
  warning window, so a domain already known to be expiring is not
  re-announced on every cycle
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import NtfyConfig
from .enums import NotificationPriority, NotifyPolicy
from .exceptions import NotificationError
from .models import DomainStatus


WARNING_TITLE = "Domain Expiration Warning"


@dataclass
class NotificationPayload:
    """Payload for a notification message."""

    domain: str
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.DEFAULT
    tags: list[str] = field(default_factory=lambda: ["warning"])


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> bool:
        """
        Send a notification.

        Returns:
            True if delivery was successful, False otherwise
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Get the channel name."""
        ...


class NtfyChannel:
    """ntfy notification channel (HTTP POST to a topic URL)."""

    def __init__(
        self,
        config: NtfyConfig,
        simulation_mode: bool = False,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize ntfy channel.

        Args:
            config: ntfy configuration with topic URL and credentials
            simulation_mode: If True, no real network requests are made
            timeout: HTTP timeout in seconds
        """
        self._url = config.url
        self._token = config.token
        self._username = config.username
        self._password = config.password
        self._simulation_mode = simulation_mode
        self._timeout = timeout

    async def send(self, payload: NotificationPayload) -> bool:
        """
        Post the message to the ntfy topic.

        Raises:
            NotificationError: On transport failure or a non-2xx reply
        """
        if self._simulation_mode:
            return True

        headers = {
            "Title": payload.title,
            "Priority": payload.priority.value,
        }
        if payload.tags:
            headers["Tags"] = ",".join(payload.tags)
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        auth = None
        if self._username and self._password and not self._token:
            auth = httpx.BasicAuth(self._username, self._password)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(
                    self._url,
                    content=payload.message.encode("utf-8"),
                    headers=headers,
                    auth=auth,
                )
            except httpx.HTTPError as e:
                raise NotificationError(
                    code="transport_error",
                    message=f"ntfy request failed: {e}",
                    details={"url": self._url},
                ) from e

        if not 200 <= response.status_code < 300:
            raise NotificationError(
                code="http_error",
                message=f"ntfy returned HTTP {response.status_code}",
                details={"url": self._url, "status_code": response.status_code},
            )
        return True

    def get_name(self) -> str:
        """Return channel name."""
        return "ntfy"


def format_warning_message(status: DomainStatus) -> str:
    """Human-readable warning text for a success record."""
    expires = (
        status.expiration_date.date().isoformat()
        if status.expiration_date is not None
        else "unknown date"
    )
    days = status.days_until_expiration
    if days is None:
        return f"Domain {status.domain} is close to expiration ({expires})"
    if days < 0:
        return f"Domain {status.domain} expired {-days} days ago ({expires})"
    return f"Domain {status.domain} will expire in {days} days ({expires})"


class Notifier:
    """
    Formats expiration warnings and hands them to a channel.

    Delivery is attempted once; failures are logged and reported in the
    result, never raised.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        priority: NotificationPriority = NotificationPriority.DEFAULT,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._channel = channel
        self._priority = priority
        self._logger = logger

    @property
    def channel(self) -> NotificationChannel:
        return self._channel

    def build_payload(self, status: DomainStatus) -> NotificationPayload:
        return NotificationPayload(
            domain=status.domain,
            title=WARNING_TITLE,
            message=format_warning_message(status),
            priority=self._priority,
        )

    async def notify(self, status: DomainStatus) -> NotificationResult:
        payload = self.build_payload(status)
        channel_name = self._channel.get_name()

        try:
            success = await self._channel.send(payload)
        except Exception as e:
            self._log_failure(channel_name, payload, str(e))
            return NotificationResult(channel=channel_name, success=False, error=str(e))

        if not success:
            self._log_failure(channel_name, payload, "Channel returned failure")
            return NotificationResult(
                channel=channel_name, success=False, error="Channel returned failure"
            )

        if self._logger:
            self._logger.info(
                "Notifier",
                f"Expiration warning sent for {status.domain}",
                {"channel": channel_name, "domain": status.domain},
            )
        return NotificationResult(channel=channel_name, success=True)

    def _log_failure(
        self, channel_name: str, payload: NotificationPayload, error: str
    ) -> None:
        if self._logger is None:
            return
        self._logger.log_error(
            "Notifier",
            f"Notification delivery failed for channel '{channel_name}'",
            domain=payload.domain,
            additional_data={
                "channel": channel_name,
                "title": payload.title,
                "priority": payload.priority.value,
                "error": error,
            },
        )


class NotificationGate:
    """Decides, per domain and cycle, whether a warning goes out."""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        policy: NotifyPolicy = NotifyPolicy.ALWAYS_ON_LOOKUP,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._notifier = notifier
        self._policy = policy
        self._logger = logger

    @property
    def policy(self) -> NotifyPolicy:
        return self._policy

    def should_notify(
        self,
        new_status: DomainStatus,
        prior_status: Optional[DomainStatus],
        fresh_lookup: bool,
    ) -> bool:
        """
        Determine if a warning should be sent.

        Args:
            new_status: The record produced in this cycle
            prior_status: The cached record from the previous cycle, if any
            fresh_lookup: True when new_status came from a live WHOIS query

        Returns:
            True if a notification should be sent
        """
        if new_status.error is not None or not new_status.needs_warning:
            return False

        if fresh_lookup and self._policy == NotifyPolicy.ALWAYS_ON_LOOKUP:
            return True

        if prior_status is None or prior_status.error is not None:
            return True

        return not prior_status.needs_warning

    async def maybe_notify(
        self,
        new_status: DomainStatus,
        prior_status: Optional[DomainStatus],
        fresh_lookup: bool = False,
    ) -> bool:
        """
        Send a warning if one is due.

        Returns:
            True if a notification was delivered
        """
        if not self.should_notify(new_status, prior_status, fresh_lookup):
            return False

        if self._notifier is None:
            if self._logger:
                self._logger.warn(
                    "NotificationGate",
                    f"Warning due for {new_status.domain} but no notification channel is configured",
                    {"domain": new_status.domain},
                )
            return False

        result = await self._notifier.notify(new_status)
        return result.success


def create_notifier(
    config: NtfyConfig,
    simulation_mode: bool = False,
    logger: Optional[AuditLogger] = None,
) -> Optional[Notifier]:
    """Build a notifier from configuration, or None if ntfy is not set up."""
    if not config.is_configured:
        return None
    channel = NtfyChannel(config=config, simulation_mode=simulation_mode)
    return Notifier(channel=channel, priority=config.priority, logger=logger)
