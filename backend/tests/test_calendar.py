from datetime import date, datetime, timezone

import pytest

from moodflow.engine.calendar import (
    local_date, parse_client_date, parse_date_strict, resolve_timezone, today_in,
)
from moodflow.errors import InvalidArgument

UTC = timezone.utc


class TestResolveTimezone:
    def test_default_is_utc(self):
        assert resolve_timezone(None) is UTC
        assert resolve_timezone("utc") is UTC

    def test_named_zone(self):
        assert str(resolve_timezone("America/New_York")) == "America/New_York"

    def test_unknown_zone_rejected(self):
        with pytest.raises(InvalidArgument):
            resolve_timezone("Mars/Olympus_Mons")


class TestLocalDate:
    def test_utc_iso_string(self):
        assert local_date("2024-01-02T23:30:00Z", UTC) == date(2024, 1, 2)

    def test_same_instant_different_zone(self):
        tz = resolve_timezone("America/Los_Angeles")
        assert local_date("2024-01-02T03:00:00+00:00", tz) == date(2024, 1, 1)

    def test_naive_datetime_treated_as_utc(self):
        tz = resolve_timezone("Asia/Tokyo")
        assert local_date(datetime(2024, 1, 1, 20, 0), tz) == date(2024, 1, 2)

    def test_garbage_rejected(self):
        with pytest.raises(InvalidArgument):
            local_date("not a timestamp", UTC)

    def test_today_in_uses_given_now(self):
        now = datetime(2024, 3, 1, 1, 0, tzinfo=UTC)
        assert today_in(resolve_timezone("America/New_York"), now=now) == date(2024, 2, 29)


class TestClientDate:
    def test_valid(self):
        assert parse_client_date("2024-01-10") == date(2024, 1, 10)

    @pytest.mark.parametrize("value", [None, "", "2024-1-10", "2024-01-10T00:00", "10/01/2024", "2024-02-30"])
    def test_invalid_falls_back_to_none(self, value):
        assert parse_client_date(value) is None

    def test_strict_variant_raises(self):
        with pytest.raises(InvalidArgument):
            parse_date_strict("2024-13-01")
