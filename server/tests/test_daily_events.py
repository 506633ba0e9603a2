"""
Tests for the fixed-step rise/culmination/set scanner.
"""

from datetime import datetime, timezone

import pytest

from ephemeris_server.astro.events import Event, sample_times, scan_daily_events
from ephemeris_server.ephemeris.provider import ABSENT, BodyPosition

from conftest import minutes_of_day, sinusoidal_altitude

DAY = datetime(2024, 3, 20, 15, 42, tzinfo=timezone.utc)


def sampler(altitude_fn, absent_minutes=()):
    calls = []

    def sample(instant):
        calls.append(instant)
        if minutes_of_day(instant) in absent_minutes:
            return ABSENT
        return BodyPosition(
            apparent_longitude=0.0,
            altitude=altitude_fn(instant),
            azimuth=minutes_of_day(instant) / 4.0,
        )

    sample.calls = calls
    return sample


class TestSampleTimes:
    """Tests for the sampling grid."""

    def test_covers_utc_day(self):
        times = sample_times(DAY, 15)
        assert len(times) == 96
        assert times[0] == datetime(2024, 3, 20, tzinfo=timezone.utc)
        assert times[-1] == datetime(2024, 3, 20, 23, 45, tzinfo=timezone.utc)

    def test_custom_step(self):
        assert len(sample_times(DAY, 60)) == 24


class TestScanDailyEvents:
    """Tests for event detection over one day."""

    def test_rise_culminate_set(self):
        sample = sampler(sinusoidal_altitude)
        events = scan_daily_events(sample, DAY)

        assert [e.event for e in events] == ["rising", "culmination", "setting"]
        assert events[0].time == datetime(2024, 3, 20, 6, 0, tzinfo=timezone.utc)
        assert events[1].time == datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)
        assert events[2].time == datetime(2024, 3, 20, 18, 15, tzinfo=timezone.utc)

        assert events[1].altitude == pytest.approx(30.0)
        assert events[1].azimuth == 180.0
        assert len(sample.calls) == 96

    def test_samples_in_time_order(self):
        sample = sampler(sinusoidal_altitude)
        scan_daily_events(sample, DAY)
        assert sample.calls == sorted(sample.calls)

    def test_never_rises(self):
        """Test a body below the horizon all day yields nothing."""
        assert scan_daily_events(sampler(lambda t: -10.0), DAY) == []

    def test_circumpolar(self):
        """Test a body always up yields a culmination only."""
        events = scan_daily_events(sampler(lambda t: 20.0 + minutes_of_day(t) / 1440), DAY)
        assert [e.event for e in events] == ["culmination"]
        assert events[0].time == datetime(2024, 3, 20, 23, 45, tzinfo=timezone.utc)

    def test_first_maximum_kept(self):
        """Test an equal later altitude does not move the culmination."""
        events = scan_daily_events(sampler(lambda t: 5.0), DAY)
        assert events[0].time == datetime(2024, 3, 20, 0, 0, tzinfo=timezone.utc)

    def test_absent_samples_skipped(self):
        """Test gaps do not reset the previous altitude."""
        sample = sampler(sinusoidal_altitude, absent_minutes={360, 375})
        events = scan_daily_events(sample, DAY)

        assert events[0].event == "rising"
        assert events[0].time == datetime(2024, 3, 20, 6, 30, tzinfo=timezone.utc)

    def test_non_numeric_altitude_skipped(self):
        def sample(instant):
            return BodyPosition(apparent_longitude=0.0, altitude=None, azimuth=None)

        assert scan_daily_events(sample, DAY) == []

    def test_rising_at_exact_zero(self):
        """Test reaching exactly 0 from below counts as rising."""
        altitudes = {0: -1.0, 15: 0.0, 30: 1.0}
        events = scan_daily_events(
            sampler(lambda t: altitudes.get(minutes_of_day(t), -5.0)), DAY, step_minutes=15
        )
        rising = [e for e in events if e.event == "rising"]
        assert rising[0].time == datetime(2024, 3, 20, 0, 15, tzinfo=timezone.utc)

    def test_max_events_truncates(self):
        """Test only the earliest events survive truncation."""
        # Up and down every two hours
        def altitude(t):
            return 10.0 if (minutes_of_day(t) // 60) % 2 else -10.0

        events = scan_daily_events(sampler(altitude), DAY, max_events=4)
        assert len(events) == 4
        assert [e.time for e in events] == sorted(e.time for e in events)

    def test_same_time_keeps_emission_order(self):
        """Test a rising that is also the maximum sorts before the culmination."""
        altitudes = {0: -5.0, 15: 40.0}
        events = scan_daily_events(
            sampler(lambda t: altitudes.get(minutes_of_day(t), 10.0)), DAY
        )
        assert [e.event for e in events[:2]] == ["rising", "culmination"]
        assert events[0].time == events[1].time


class TestEventSerialization:
    def test_to_dict(self):
        event = Event("rising", datetime(2024, 3, 20, 6, 0, tzinfo=timezone.utc), 0.004, 89.999)
        assert event.to_dict() == {
            "event": "rising",
            "time": "2024-03-20T06:00:00.000Z",
            "altitude": 0.0,
            "azimuth": 90.0,
        }
