"""
Property-based tests for the refresh planner module.

Uses Hypothesis for property-based testing to verify cache trust,
ordering, per-domain failure isolation, recalculation and notification
edge-triggering.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_monitor.enums import NotifyPolicy, RefreshMode, WHOISErrorCode
from expiry_monitor.evaluator import DomainEvaluator, build_status
from expiry_monitor.exceptions import WhoisLookupError
from expiry_monitor.models import DomainSpec, DomainStatus
from expiry_monitor.notifications import NotificationGate, NotificationPayload, Notifier
from expiry_monitor.planner import RefreshPlanner, index_by_domain


NOW = datetime(2026, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


class ScriptedWhois:
    """WHOIS double answering from a table of expiration dates."""

    def __init__(
        self,
        expirations: dict[str, datetime],
        failing: tuple[str, ...] = (),
    ) -> None:
        self._expirations = expirations
        self._failing = failing
        self.calls: list[str] = []

    async def lookup(self, domain: str) -> dict:
        self.calls.append(domain)
        if domain in self._failing:
            raise WhoisLookupError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Socket error talking to whois server for {domain}",
                details={"domain": domain},
            )
        expiration = self._expirations.get(domain)
        if expiration is None:
            return {"domainName": domain.upper()}
        return {"registryExpiryDate": expiration.strftime("%Y-%m-%dT%H:%M:%SZ")}


class RecordingChannel:
    """Notification channel that records payloads."""

    def __init__(self) -> None:
        self.payloads: list[NotificationPayload] = []

    async def send(self, payload: NotificationPayload) -> bool:
        self.payloads.append(payload)
        return True

    def get_name(self) -> str:
        return "recording"


def make_planner(
    whois: ScriptedWhois,
    channel: Optional[RecordingChannel] = None,
    policy: NotifyPolicy = NotifyPolicy.ALWAYS_ON_LOOKUP,
    clock=lambda: NOW,
) -> RefreshPlanner:
    notifier = Notifier(channel) if channel is not None else None
    return RefreshPlanner(
        evaluator=DomainEvaluator(whois, clock=clock),
        gate=NotificationGate(notifier=notifier, policy=policy),
        clock=clock,
    )


def cached(domain: str, days_ahead: int, warning_days: int = 30) -> DomainStatus:
    return build_status(
        domain,
        NOW + timedelta(days=days_ahead),
        warning_days,
        NOW - timedelta(days=1),
        checked_at="2026-05-31T08:00:00+00:00",
    )


class TestCacheTrustProperty:
    """
    Property-based tests for the cache trust rule.
    """

    @given(
        warning_days=st.integers(min_value=1, max_value=90),
        margin=st.integers(min_value=1, max_value=300),
    )
    @settings(max_examples=100)
    def test_far_from_expiry_reuses_cache(self, warning_days: int, margin: int) -> None:
        """
        Property: A cached record more than 2 x warning_days from expiry is
        reused without a WHOIS lookup.
        """
        days_ahead = 2 * warning_days + margin
        whois = ScriptedWhois({})
        planner = make_planner(whois)
        prior = [cached("example.com", days_ahead, warning_days)]

        report = run_async(planner.refresh(
            [DomainSpec("example.com")], prior, warning_days, cache_enabled=True
        ))

        assert whois.calls == []
        assert report.cache_hits == 1
        assert report.lookups == 0
        assert report.statuses[0].days_until_expiration == days_ahead
        assert report.statuses[0].checked_at == prior[0].checked_at

    @given(
        warning_days=st.integers(min_value=1, max_value=90),
        days_ahead=st.integers(min_value=-10, max_value=180),
    )
    @settings(max_examples=100)
    def test_near_expiry_triggers_lookup(self, warning_days: int, days_ahead: int) -> None:
        """
        Property: A cached record at most 2 x warning_days from expiry is
        looked up again.
        """
        days_ahead = min(days_ahead, 2 * warning_days)
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=400)})
        planner = make_planner(whois)

        report = run_async(planner.refresh(
            [DomainSpec("example.com")],
            [cached("example.com", days_ahead, warning_days)],
            warning_days,
            cache_enabled=True,
        ))

        assert whois.calls == ["example.com"]
        assert report.lookups == 1
        assert report.statuses[0].days_until_expiration == 400

    def test_hundred_days_out_uses_cache(self) -> None:
        """Test the worked example: 100 days left, warning at 30."""
        whois = ScriptedWhois({})
        planner = make_planner(whois)

        report = run_async(planner.refresh(
            [DomainSpec("example.com", "Main")],
            [cached("example.com", 100)],
            30,
            cache_enabled=True,
        ))

        status = report.statuses[0]
        assert whois.calls == []
        assert status.days_until_expiration == 100
        assert status.needs_warning is False
        assert status.description == "Main"

    def test_twenty_days_out_looks_up_and_warns(self) -> None:
        """Test the worked example: 20 days left, warning at 30."""
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=20)})
        channel = RecordingChannel()
        planner = make_planner(whois, channel)

        report = run_async(planner.refresh(
            [DomainSpec("example.com")],
            [cached("example.com", 20)],
            30,
            cache_enabled=True,
        ))

        assert whois.calls == ["example.com"]
        assert report.statuses[0].needs_warning is True
        assert len(channel.payloads) == 1
        assert "20 days" in channel.payloads[0].message

    def test_cache_disabled_always_looks_up(self) -> None:
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=300)})
        planner = make_planner(whois)

        run_async(planner.refresh(
            [DomainSpec("example.com")],
            [cached("example.com", 300)],
            30,
            cache_enabled=False,
        ))

        assert whois.calls == ["example.com"]

    def test_cached_error_record_is_not_trusted(self) -> None:
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=300)})
        planner = make_planner(whois)
        prior = [DomainStatus.failure("example.com", "timeout")]

        report = run_async(planner.refresh(
            [DomainSpec("example.com")], prior, 30, cache_enabled=True
        ))

        assert whois.calls == ["example.com"]
        assert report.statuses[0].error is None


class TestRefreshOrderingProperty:
    """
    Property-based tests for output ordering and failure isolation.
    """

    @given(names=st.lists(
        st.text(alphabet="abcdefghij", min_size=1, max_size=8),
        min_size=1,
        max_size=8,
        unique=True,
    ))
    @settings(max_examples=50)
    def test_output_follows_configuration_order(self, names: list[str]) -> None:
        """
        Property: The status list has one record per configured domain, in
        configuration order.
        """
        domains = [f"{name}.com" for name in names]
        whois = ScriptedWhois({d: NOW + timedelta(days=200) for d in domains})
        planner = make_planner(whois)

        report = run_async(planner.refresh(
            [DomainSpec(d) for d in domains], [], 30, cache_enabled=True
        ))

        assert [s.domain for s in report.statuses] == domains
        assert whois.calls == domains

    def test_failure_does_not_stop_the_cycle(self) -> None:
        """Test that b.com failing leaves a.com and c.com intact."""
        whois = ScriptedWhois(
            {
                "a.com": NOW + timedelta(days=200),
                "c.com": NOW + timedelta(days=10),
            },
            failing=("b.com",),
        )
        channel = RecordingChannel()
        planner = make_planner(whois, channel)

        report = run_async(planner.refresh(
            [DomainSpec("a.com"), DomainSpec("b.com"), DomainSpec("c.com")],
            [],
            30,
            cache_enabled=True,
        ))

        a, b, c = report.statuses
        assert whois.calls == ["a.com", "b.com", "c.com"]
        assert a.error is None and a.days_until_expiration == 200
        assert b.error is not None and b.expiration_date is None
        assert c.needs_warning is True
        assert report.errors == 1
        assert [p.domain for p in channel.payloads] == ["c.com"]

    def test_unexpected_errors_do_not_stop_the_cycle(self) -> None:
        """Test that a stray exception and an overflowing date stay per-domain."""
        class UnrulyWhois:
            def __init__(self) -> None:
                self.calls: list[str] = []

            async def lookup(self, domain: str) -> dict:
                self.calls.append(domain)
                if domain == "b.com":
                    raise UnicodeError("label empty or too long")
                if domain == "c.com":
                    return {"registryExpiryDate": "9999-12-31T23:00:00-05:00"}
                return {"registryExpiryDate": "2026-12-18T08:00:00Z"}

        whois = UnrulyWhois()
        planner = make_planner(whois)

        report = run_async(planner.refresh(
            [DomainSpec("a.com"), DomainSpec("b.com"), DomainSpec("c.com"), DomainSpec("d.com")],
            [],
            30,
            cache_enabled=True,
        ))

        a, b, c, d = report.statuses
        assert whois.calls == ["a.com", "b.com", "c.com", "d.com"]
        assert a.error is None and d.error is None
        assert b.error is not None and "label empty" in b.error
        assert c.error is not None and c.expiration_date is None
        assert report.errors == 2

    def test_removed_domains_are_dropped(self) -> None:
        """Test that records for unconfigured domains do not survive a refresh."""
        whois = ScriptedWhois({})
        planner = make_planner(whois)

        report = run_async(planner.refresh(
            [DomainSpec("keep.com")],
            [cached("keep.com", 300), cached("gone.com", 300)],
            30,
            cache_enabled=True,
        ))

        assert [s.domain for s in report.statuses] == ["keep.com"]


class TestNotificationGatingProperty:
    """
    Property-based tests for when warnings go out during a cycle.
    """

    def test_fresh_lookup_repeats_warning_by_default(self) -> None:
        """Test that each fresh lookup in the window warns again."""
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=5)})
        channel = RecordingChannel()
        planner = make_planner(whois, channel)
        prior = [cached("example.com", 6)]

        run_async(planner.refresh([DomainSpec("example.com")], prior, 30, True))

        assert len(channel.payloads) == 1

    def test_edge_policy_suppresses_repeat_on_lookup(self) -> None:
        """Test that EDGE warns only on entering the window."""
        whois = ScriptedWhois({"example.com": NOW + timedelta(days=5)})
        channel = RecordingChannel()
        planner = make_planner(whois, channel, policy=NotifyPolicy.EDGE)

        run_async(planner.refresh(
            [DomainSpec("example.com")], [cached("example.com", 6)], 30, True
        ))
        assert channel.payloads == []

        run_async(planner.refresh(
            [DomainSpec("example.com")], [cached("example.com", 50)], 30, True
        ))
        assert len(channel.payloads) == 1

    def test_recalculation_warns_once_on_transition(self) -> None:
        """Test that crossing the threshold warns once, then stays quiet."""
        channel = RecordingChannel()
        clock_value = [NOW]
        planner = make_planner(ScriptedWhois({}), channel, clock=lambda: clock_value[0])

        prior = [cached("example.com", 31)]
        first = run_async(planner.recalculate(prior, 30))
        assert first.statuses[0].needs_warning is False
        assert channel.payloads == []

        clock_value[0] = NOW + timedelta(days=2)
        second = run_async(planner.recalculate(first.statuses, 30))
        assert second.statuses[0].needs_warning is True
        assert len(channel.payloads) == 1

        clock_value[0] = NOW + timedelta(days=3)
        third = run_async(planner.recalculate(second.statuses, 30))
        assert third.statuses[0].needs_warning is True
        assert len(channel.payloads) == 1


class TestRecalculationProperty:
    """
    Property-based tests for the recalculation pass.
    """

    @given(
        offsets=st.lists(st.integers(min_value=-50, max_value=800), min_size=1, max_size=6),
        warning_days=st.integers(min_value=0, max_value=120),
    )
    @settings(max_examples=100)
    def test_recalculation_is_idempotent(self, offsets: list[int], warning_days: int) -> None:
        """
        Property: Recalculating twice at the same instant gives the same
        status set as recalculating once.
        """
        prior = [cached(f"d{i}.com", days, warning_days) for i, days in enumerate(offsets)]
        whois = ScriptedWhois({})
        planner = make_planner(whois)

        once = run_async(planner.recalculate(prior, warning_days))
        twice = run_async(planner.recalculate(once.statuses, warning_days))

        assert [s.to_dict() for s in once.statuses] == [s.to_dict() for s in twice.statuses]
        assert whois.calls == []
        assert once.mode == RefreshMode.RECALCULATE

    def test_error_records_pass_through(self) -> None:
        prior = [DomainStatus.failure("broken.com", "No WHOIS server known for TLD: zz")]
        planner = make_planner(ScriptedWhois({}))

        report = run_async(planner.recalculate(prior, 30))

        assert report.statuses == prior
        assert report.errors == 1

    def test_specs_refresh_descriptions_and_drop_unconfigured(self) -> None:
        prior = [cached("a.com", 100), cached("b.com", 100)]
        planner = make_planner(ScriptedWhois({}))

        report = run_async(planner.recalculate(
            prior, 30, specs=[DomainSpec("a.com", "Renamed")]
        ))

        assert [(s.domain, s.description) for s in report.statuses] == [("a.com", "Renamed")]


class TestIndexByDomain:
    def test_first_record_wins(self) -> None:
        first = cached("dup.com", 10)
        second = cached("dup.com", 99)

        index = index_by_domain([first, second])

        assert index == {"dup.com": first}
