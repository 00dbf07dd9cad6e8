"""
Property-based tests for the expiration extractor module.

Uses Hypothesis for property-based testing to verify strategy order,
date parsing and the not-found case.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_monitor.extractor import (
    DIRECT_FIELDS,
    ExpirationExtractor,
    direct_field_match,
    embedded_date_scan,
    parse_date,
    pattern_field_match,
)


@st.composite
def utc_datetime_strategy(draw) -> datetime:
    """Generate whole-second UTC datetimes."""
    return draw(
        st.datetimes(
            min_value=datetime(2000, 1, 1),
            max_value=datetime(2099, 12, 31),
        )
    ).replace(microsecond=0, tzinfo=timezone.utc)


def iso_z(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


# Fields that are never mistaken for expiration data
unrelated_field_strategy = st.sampled_from([
    "domainName", "registrar", "nameServer", "creationDate", "updatedDate",
    "registrant", "dnssec",
])


class TestParseDate:
    """Tests for WHOIS date parsing."""

    @given(dt=utc_datetime_strategy())
    @settings(max_examples=100)
    def test_iso_with_z_suffix_round_trips(self, dt: datetime) -> None:
        """
        Property: ISO 8601 timestamps with a Z suffix parse to the same
        instant, as an aware UTC datetime.
        """
        parsed = parse_date(iso_z(dt))

        assert parsed == dt
        assert parsed.tzinfo is not None
        assert parsed.utcoffset() == timedelta(0)

    def test_common_registry_formats(self) -> None:
        """Test that the formats registries actually emit are recognized."""
        expected = datetime(2026, 3, 14, tzinfo=timezone.utc)
        samples = [
            "2026-03-14",
            "2026-03-14T00:00:00Z",
            "2026-03-14T00:00:00.000Z",
            "2026-03-14 00:00:00",
            "2026-03-14 00:00:00 UTC",
            "2026/03/14",
            "2026.03.14",
            "14-Mar-2026",
            "14.03.2026",
            "Mar 14 2026",
        ]

        for sample in samples:
            parsed = parse_date(sample)
            assert parsed is not None, f"Failed to parse: {sample}"
            assert parsed.date() == expected.date(), f"Wrong date for: {sample}"

    def test_offsets_are_normalized_to_utc(self) -> None:
        """Test that a non-UTC offset is converted, not discarded."""
        parsed = parse_date("2026-03-14T02:00:00+02:00")

        assert parsed == datetime(2026, 3, 14, 0, 0, tzinfo=timezone.utc)

    def test_offset_past_the_end_of_range_returns_none(self) -> None:
        """Test that a date that overflows when converted to UTC is skipped."""
        assert parse_date("9999-12-31T23:00:00-05:00") is None
        assert parse_date(datetime.fromisoformat("9999-12-31T23:00:00-05:00")) is None

    def test_overflowing_value_falls_through_to_next_field(self) -> None:
        """Test that extraction moves on past an overflowing value."""
        record = {
            "registryExpiryDate": "9999-12-31T23:00:00-05:00",
            "registrarRegistrationExpirationDate": "2027-05-01T00:00:00Z",
        }

        assert ExpirationExtractor().extract(record) == datetime(
            2027, 5, 1, tzinfo=timezone.utc
        )

    @given(value=st.one_of(
        st.none(),
        st.integers(),
        st.just(""),
        st.just("   "),
        st.just("not a date"),
        st.just("ACTIVE"),
        st.just("clientTransferProhibited"),
    ))
    @settings(max_examples=50)
    def test_non_dates_return_none(self, value) -> None:
        """Property: Values that are not dates parse to None."""
        assert parse_date(value) is None


class TestExtractionStrategyOrder:
    """
    Property-based tests for extraction strategy priority.
    """

    @given(
        direct_date=utc_datetime_strategy(),
        other_date=utc_datetime_strategy(),
        field=st.sampled_from(DIRECT_FIELDS),
    )
    @settings(max_examples=100)
    def test_direct_field_wins_over_pattern_field(
        self, direct_date: datetime, other_date: datetime, field: str
    ) -> None:
        """
        Property: When a well-known field holds a date, it is returned even
        if another expiry-like field appears earlier in the record.
        """
        record = {
            "domainExpiresAt": iso_z(other_date),
            field: iso_z(direct_date),
        }

        result = ExpirationExtractor().extract_with_source(record)

        assert result is not None
        assert result.strategy == "direct"
        assert result.field == field
        assert result.expiration_date == direct_date

    @given(dt=utc_datetime_strategy(), noise=unrelated_field_strategy)
    @settings(max_examples=100)
    def test_pattern_field_used_when_no_direct_field(
        self, dt: datetime, noise: str
    ) -> None:
        """
        Property: Without a well-known field, an expiry-like field name is
        used.
        """
        record = {noise: "something", "domainExpirationTime": iso_z(dt)}

        result = ExpirationExtractor().extract_with_source(record)

        assert result is not None
        assert result.strategy == "pattern"
        assert result.field == "domainExpirationTime"
        assert result.expiration_date == dt

    def test_embedded_date_found_inside_free_text(self) -> None:
        """Test that a date inside a sentence is found as a last resort."""
        record = {"renewalNotice": "Domain is due for renewal on 2027-05-01 at noon"}

        assert direct_field_match(record) is None
        assert pattern_field_match(record) is None

        result = embedded_date_scan(record)
        assert result is not None
        assert result.expiration_date.date().isoformat() == "2027-05-01"
        assert ExpirationExtractor().extract(record) == result.expiration_date

    def test_unparseable_direct_value_falls_through(self) -> None:
        """Test that a well-known field with garbage does not stop the search."""
        record = {
            "expirationDate": "see registrar",
            "registrarRegistrationExpirationDate": "2030-01-02T03:04:05Z",
        }

        result = ExpirationExtractor().extract_with_source(record)

        assert result is not None
        assert result.field == "registrarRegistrationExpirationDate"
        assert result.expiration_date == datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_list_values_use_first_parseable_element(self) -> None:
        """Test that repeated fields are searched element by element."""
        record = {"expires": ["n/a", "2031-07-08"]}

        assert ExpirationExtractor().extract(record) == datetime(
            2031, 7, 8, tzinfo=timezone.utc
        )

    def test_registry_expiry_date_record(self) -> None:
        """Test a typical thin registry record."""
        record = {
            "domainName": "EXAMPLE.COM",
            "registryExpiryDate": "2025-08-13T04:00:00Z",
            "registrar": "RESERVED-Internet Assigned Numbers Authority",
        }

        assert ExpirationExtractor().extract(record) == datetime(
            2025, 8, 13, 4, 0, 0, tzinfo=timezone.utc
        )


class TestExtractionNotFound:
    """Tests for records without any expiration data."""

    @given(fields=st.dictionaries(
        keys=unrelated_field_strategy,
        values=st.text(alphabet="abcdefghijklmnopqrstuvwxyz ", max_size=20),
        max_size=5,
    ))
    @settings(max_examples=100)
    def test_records_without_expiry_fields_yield_none(self, fields: dict) -> None:
        """
        Property: A record with no expiry-like field yields no date.
        """
        assert ExpirationExtractor().extract(fields) is None

    def test_empty_record_yields_none(self) -> None:
        assert ExpirationExtractor().extract({}) is None

    def test_custom_strategies_are_respected(self) -> None:
        """Test that the strategy list can be narrowed."""
        record = {"domainExpirationTime": "2030-01-01"}
        extractor = ExpirationExtractor(strategies=[direct_field_match])

        assert extractor.extract(record) is None
