"""
Tests for the HTTP API.

Uses FastAPI's TestClient against an app wired to a temporary config
directory and a scripted WHOIS source.
"""

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_monitor import __version__
from expiry_monitor.config import AppConfig
from expiry_monitor.config_store import ConfigStore, StoragePaths
from expiry_monitor.enums import WHOISErrorCode
from expiry_monitor.exceptions import WhoisLookupError
from expiry_monitor.models import DomainSpec
from expiry_monitor.service import MonitorService
from expiry_monitor.status_cache import StatusCacheStore
from expiry_monitor.web import create_app


NOW = datetime(2026, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


class TableWhois:
    """WHOIS double answering from a fixed table."""

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self._failing = failing
        self.calls: list[str] = []

    async def lookup(self, domain: str) -> dict:
        self.calls.append(domain)
        if domain in self._failing:
            raise WhoisLookupError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Socket error talking to whois server for {domain}",
            )
        return {
            "domainName": domain.upper(),
            "registryExpiryDate": (NOW + timedelta(days=200)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }


class ApiFixture:
    def __init__(self, tmp: str, whois: Optional[TableWhois] = None) -> None:
        base = Path(tmp)
        self.paths = StoragePaths(config_dir=base, cache_file=base / "cache" / "domain-status.json")
        self.config_store = ConfigStore(self.paths)
        self.whois = whois or TableWhois()
        self.service = MonitorService(
            config_store=self.config_store,
            cache_store=StatusCacheStore(self.paths.cache_file),
            whois_lookup=self.whois,
            clock=lambda: NOW,
        )
        self.app = create_app(self.service, start_service=False)


@pytest.fixture
def api():
    with tempfile.TemporaryDirectory() as tmp:
        fixture = ApiFixture(tmp)
        with TestClient(fixture.app) as client:
            yield fixture, client


class TestConfigEndpoints:
    def test_get_config_returns_defaults(self, api) -> None:
        _, client = api

        response = client.get("/api/config")

        assert response.status_code == 200
        body = response.json()
        assert body["config"]["warningDays"] == 30
        assert body["config"]["checkInterval"] == "0 0 * * *"
        assert body["domains"] == {"domains": []}

    def test_post_config_saves_and_runs_check(self, api) -> None:
        fixture, client = api

        response = client.post("/api/config", json={
            "config": {"warningDays": 14, "checkInterval": "0 3 * * *"},
            "domains": {"domains": [{"domain": "Example.COM", "description": "main"}]},
        })

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fixture.whois.calls == ["example.com"]

        saved = json.loads(fixture.paths.domains_file.read_text(encoding="utf-8"))
        assert saved == {"domains": [{"domain": "example.com", "description": "main"}]}

        body = client.get("/api/config").json()
        assert body["config"]["warningDays"] == 14
        assert body["domains"]["domains"][0]["domain"] == "example.com"

        statuses = client.get("/api/domains/status").json()
        assert [s["domain"] for s in statuses] == ["example.com"]

    def test_post_config_accepts_bare_domain_list(self, api) -> None:
        fixture, client = api

        response = client.post("/api/config", json={
            "config": {},
            "domains": [{"domain": "a.com"}, {"domain": "b.org"}],
        })

        assert response.status_code == 200
        assert fixture.whois.calls == ["a.com", "b.org"]

    @pytest.mark.parametrize("payload", [
        {"config": {"warningDays": -1}},
        {"config": {"checkInterval": "whenever"}},
        {"config": {"ntfy": {"priority": "shouting"}}},
        {"config": {}, "domains": [{"domain": "dup.com"}, {"domain": "DUP.com"}]},
        {"config": {}, "domains": [{"domain": "bad domain.com"}]},
        {"config": {}, "domains": "example.com"},
    ])
    def test_invalid_config_is_rejected(self, api, payload: dict) -> None:
        fixture, client = api

        response = client.post("/api/config", json=payload)

        assert response.status_code == 400
        assert "error" in response.json()
        assert not fixture.paths.config_file.exists()
        assert fixture.whois.calls == []

    def test_broken_config_file_is_server_error(self, api) -> None:
        fixture, client = api
        fixture.paths.config_file.write_text("{oops", encoding="utf-8")

        response = client.get("/api/config")

        assert response.status_code == 500
        assert "config.json" in response.json()["error"]


class TestStatusEndpoints:
    def test_status_is_empty_before_first_check(self, api) -> None:
        _, client = api

        assert client.get("/api/domains/status").json() == []

    def test_refresh_returns_report(self, api) -> None:
        fixture, client = api
        fixture.config_store.save(AppConfig(), [DomainSpec("example.com"), DomainSpec("example.org")])

        response = client.post("/api/domains/refresh")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "full"
        assert body["lookups"] == 2
        assert [s["domain"] for s in body["statuses"]] == ["example.com", "example.org"]
        assert body["statuses"][0]["daysUntilExpiration"] == 200
        assert body["statuses"][0]["needsWarning"] is False

    def test_recalculate_uses_cache_only(self, api) -> None:
        fixture, client = api
        fixture.config_store.save(AppConfig(), [DomainSpec("example.com")])
        client.post("/api/domains/refresh")

        response = client.post("/api/domains/recalculate")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "recalculate"
        assert body["cache_hits"] == 1
        assert fixture.whois.calls == ["example.com"]

    def test_refresh_with_broken_config_is_server_error(self, api) -> None:
        fixture, client = api
        fixture.paths.config_file.write_text("[]", encoding="utf-8")

        response = client.post("/api/domains/refresh")

        assert response.status_code == 500
        assert not fixture.paths.cache_file.exists()


class TestWhoisEndpoint:
    def test_returns_full_record(self, api) -> None:
        fixture, client = api

        response = client.get("/api/domains/Example.com/whois")

        assert response.status_code == 200
        assert response.json()["domainName"] == "EXAMPLE.COM"
        assert fixture.whois.calls == ["example.com"]

    def test_invalid_domain_is_bad_request(self, api) -> None:
        _, client = api

        response = client.get("/api/domains/exa$mple.com/whois")

        assert response.status_code == 400
        assert "Invalid domain" in response.json()["error"]

    def test_lookup_failure_is_bad_gateway(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            fixture = ApiFixture(tmp, whois=TableWhois(failing=("down.com",)))
            with TestClient(fixture.app) as client:
                response = client.get("/api/domains/down.com/whois")

        assert response.status_code == 502
        assert "Socket error" in response.json()["error"]


class TestHealthEndpoint:
    def test_health(self, api) -> None:
        _, client = api

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["version"] == __version__
        assert body["busy"] is False
        assert "timestamp" in body

    @given(warning_days=st.integers(min_value=0, max_value=365))
    @settings(max_examples=10, deadline=None)
    def test_config_round_trips_through_api(self, warning_days: int) -> None:
        """
        Property: A saved warningDays value is what the API returns.
        """
        with tempfile.TemporaryDirectory() as tmp:
            fixture = ApiFixture(tmp)
            with TestClient(fixture.app) as client:
                client.post("/api/config", json={"config": {"warningDays": warning_days}, "domains": []})
                body = client.get("/api/config").json()

        assert body["config"]["warningDays"] == warning_days
