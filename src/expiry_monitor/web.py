"""
HTTP API for the expiry monitor.

Creates the FastAPI app that exposes configuration, cached status, live
WHOIS lookups and manual refresh triggers. Error responses carry a JSON
body of the form {"error": message}.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from . import __version__
from .config_store import config_from_dict, domains_to_dict
from .exceptions import ConfigError, ExpiryMonitorError, ValidationError, WhoisLookupError
from .models import RefreshReport
from .service import MonitorService


HEALTH_CHECK_PATH = "/health"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def report_response(report: RefreshReport) -> dict[str, Any]:
    data = report.to_dict()
    data["statuses"] = [status.to_dict() for status in report.statuses]
    return data


def _domain_entries(payload: Any) -> list[Any]:
    # Accepts the domains.json layout or a bare list
    if isinstance(payload, dict):
        payload = payload.get("domains", [])
    if not isinstance(payload, list):
        raise ConfigError(
            code="invalid_value",
            message="domains must be a list or an object with a 'domains' list",
        )
    return payload


def create_app(service: MonitorService, start_service: bool = True) -> FastAPI:
    """
    Build the FastAPI application around a MonitorService.

    Args:
        service: The monitor service backing every route
        start_service: Install the schedule and run the initial cycle at
            startup

    Returns:
        A configured FastAPI app
    """
    startup_task: Optional["asyncio.Task[Any]"] = None

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        nonlocal startup_task
        if start_service:
            # The initial cycle may take a while; the API serves meanwhile
            startup_task = asyncio.get_running_loop().create_task(service.start())
        yield
        if startup_task is not None and not startup_task.done():
            startup_task.cancel()
        # Saving the config installs jobs even when startup was skipped
        await service.stop()

    application = FastAPI(
        title="Domain Expiry Monitor",
        description="Tracks domain registration expiry dates via WHOIS.",
        version=__version__,
        lifespan=lifespan,
    )

    @application.get("/api/config")
    async def get_config() -> Any:
        try:
            config, domains = service.load_config()
        except ConfigError as e:
            return error_response(500, e.message)
        return {
            "config": service.config_store.config_document(config),
            "domains": domains_to_dict(domains),
        }

    @application.post("/api/config")
    async def save_config(payload: dict[str, Any] = Body(...)) -> Any:
        try:
            config = config_from_dict(payload.get("config") or {})
            domains = service.config_store.parse_domains(
                _domain_entries(payload.get("domains", []))
            )
        except ConfigError as e:
            return error_response(400, e.message)

        try:
            await service.apply_config(config, domains)
        except ExpiryMonitorError as e:
            return error_response(500, e.message)
        return {"success": True}

    @application.get("/api/domains/status")
    async def get_domain_status() -> Any:
        return [status.to_dict() for status in service.get_status()]

    @application.get("/api/domains/{domain}/whois")
    async def get_domain_whois(domain: str) -> Any:
        try:
            return await service.lookup_whois(domain)
        except ValidationError as e:
            return error_response(400, e.message)
        except WhoisLookupError as e:
            return error_response(502, e.message)
        except ConfigError as e:
            return error_response(500, e.message)

    @application.post("/api/domains/refresh")
    async def refresh_domains() -> Any:
        try:
            report = await service.run_refresh()
        except ConfigError as e:
            return error_response(500, e.message)
        return report_response(report)

    @application.post("/api/domains/recalculate")
    async def recalculate_domains() -> Any:
        try:
            report = await service.run_recalculation()
        except ConfigError as e:
            return error_response(500, e.message)
        return report_response(report)

    @application.get(HEALTH_CHECK_PATH)
    async def health_check() -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "busy": service.is_busy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return application
