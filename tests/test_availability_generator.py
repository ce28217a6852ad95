"""
Availability generator unit tests — pure expansion of weekly schedules,
no database access.
"""

from datetime import date, datetime, time, timezone

import pytest

from portfolio.core.exceptions import InvalidScheduleConfigurationError
from portfolio.models.scheduling import BookingConstraints, Schedule, normalize_weekdays
from portfolio.services.availability_generator import daterange, expand_schedule, partition_slots

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)


def _schedule(days=("monday", "wednesday"), start=time(9, 0), end=time(10, 0), duration=30,
              effective_from=date(2030, 1, 1), effective_until=None):
    schedule = Schedule(profile_id=1, is_active=True)
    schedule.configure(
        name="Office hours",
        days_of_week=list(days),
        start_time_of_day=start,
        end_time_of_day=end,
        slot_duration_minutes=duration,
        effective_from=effective_from,
        effective_until=effective_until,
        constraints=BookingConstraints(),
    )
    return schedule


def _utc(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


class TestPartition:
    def test_contiguous_slots(self):
        slots = partition_slots(_utc(MONDAY, 9), _utc(MONDAY, 10), 30)
        assert [(s.start, s.end) for s in slots] == [
            (_utc(MONDAY, 9), _utc(MONDAY, 9, 30)),
            (_utc(MONDAY, 9, 30), _utc(MONDAY, 10)),
        ]

    def test_remainder_dropped(self):
        slots = partition_slots(_utc(MONDAY, 9), _utc(MONDAY, 10), 25)
        assert len(slots) == 2
        assert slots[-1].end == _utc(MONDAY, 9, 50)

    def test_non_positive_duration(self):
        with pytest.raises(ValueError):
            partition_slots(_utc(MONDAY, 9), _utc(MONDAY, 10), 0)

    def test_daterange_inclusive(self):
        assert list(daterange(MONDAY, date(2030, 1, 9))) == [
            date(2030, 1, 7), date(2030, 1, 8), date(2030, 1, 9),
        ]


class TestExpandSchedule:
    def test_two_weeks_of_monday_wednesday(self):
        plans = expand_schedule(_schedule(), MONDAY, date(2030, 1, 20))
        assert [p.day for p in plans] == [
            date(2030, 1, 7), date(2030, 1, 9), date(2030, 1, 14), date(2030, 1, 16),
        ]
        assert all(len(p.slots) == 2 for p in plans)
        assert plans[0].start == _utc(MONDAY, 9)
        assert plans[0].end == _utc(MONDAY, 10)

    def test_effective_range_limits_dates(self):
        schedule = _schedule(effective_from=date(2030, 1, 9), effective_until=date(2030, 1, 14))
        plans = expand_schedule(schedule, MONDAY, date(2030, 1, 20))
        assert [p.day for p in plans] == [date(2030, 1, 9), date(2030, 1, 14)]

    def test_paused_schedule_yields_nothing(self):
        schedule = _schedule()
        schedule.is_active = False
        assert expand_schedule(schedule, MONDAY, date(2030, 1, 20)) == []

    def test_single_day_range(self):
        plans = expand_schedule(_schedule(), MONDAY, MONDAY)
        assert len(plans) == 1


class TestScheduleRule:
    def test_weekdays_accept_names_and_numbers(self):
        assert normalize_weekdays(["Friday", 1, "3", "monday"]) == [1, 3, 5]

    @pytest.mark.parametrize("days", [["funday"], [0], [8]])
    def test_unknown_weekday(self, days):
        with pytest.raises(InvalidScheduleConfigurationError):
            normalize_weekdays(days)

    @pytest.mark.parametrize("kwargs", [
        {"days": ()},
        {"start": time(10, 0), "end": time(9, 0)},
        {"duration": 4},
        {"duration": 90},
        {"effective_from": date(2030, 2, 1), "effective_until": date(2030, 1, 1)},
    ])
    def test_invalid_rules(self, kwargs):
        with pytest.raises(InvalidScheduleConfigurationError):
            _schedule(**kwargs)
