"""
Unit tests for the Messages timestamp codec.
"""

from datetime import datetime, timedelta, timezone

import pytest

from imessage_engine.core import timestamps


class TestEncode:
    """Tests for datetime -> store units."""

    def test_epoch_is_zero(self):
        assert timestamps.encode(timestamps.COCOA_EPOCH) == 0

    def test_one_second_is_a_billion_units(self):
        one_second = timestamps.COCOA_EPOCH + timedelta(seconds=1)
        assert timestamps.encode(one_second) == 1_000_000_000

    def test_naive_datetime_is_taken_as_utc(self):
        naive = datetime(2024, 6, 1, 8, 30)
        aware = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)
        assert timestamps.encode(naive) == timestamps.encode(aware)

    def test_other_timezones_are_converted(self):
        plus_two = timezone(timedelta(hours=2))
        local = datetime(2024, 6, 1, 10, 30, tzinfo=plus_two)
        utc = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)
        assert timestamps.encode(local) == timestamps.encode(utc)


class TestDecode:
    """Tests for store units -> datetime."""

    @pytest.mark.parametrize("units", [0, None])
    def test_zero_and_null_are_unknown(self, units):
        assert timestamps.decode(units) is None
        assert timestamps.to_iso(units) == timestamps.UNKNOWN

    def test_decoded_value_is_aware_utc(self):
        decoded = timestamps.decode(1_000_000_000)
        assert decoded.tzinfo is not None
        assert decoded == datetime(2001, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    def test_to_iso_formats_known_dates(self):
        assert timestamps.to_iso(1_000_000_000) == "2001-01-01T00:00:01+00:00"


class TestRoundTrip:
    """decode(encode(t)) == t for instants after the store epoch."""

    @pytest.mark.parametrize("instant", [
        datetime(2001, 1, 1, 0, 0, 0, 1, tzinfo=timezone.utc),
        datetime(2015, 3, 14, 15, 9, 26, 535897, tzinfo=timezone.utc),
        datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc),
        datetime(2099, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
    ])
    def test_round_trip_is_exact(self, instant):
        assert timestamps.decode(timestamps.encode(instant)) == instant

    def test_round_trip_preserves_ordering(self):
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        later = earlier + timedelta(microseconds=1)
        assert timestamps.encode(earlier) < timestamps.encode(later)
