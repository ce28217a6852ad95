"""
Availability generator — expands a weekly schedule into concrete windows.

Pure functions over plain values; no database access.  ``availability_service``
persists the plans and handles overlaps with what is already stored.

    expand_schedule(schedule, date(2025, 1, 6), date(2025, 1, 19))
    → one AvailabilityPlan per effective date in the range (inclusive), each
      spanning [date + start_time_of_day, date + end_time_of_day) in UTC and
      partitioned into contiguous slots of ``slot_duration_minutes``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone


@dataclass(frozen=True)
class SlotWindow:
    start: datetime
    end: datetime


@dataclass
class AvailabilityPlan:
    day: date
    start: datetime
    end: datetime
    slots: list[SlotWindow] = field(default_factory=list)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


def partition_slots(start: datetime, end: datetime, duration_minutes: int) -> list[SlotWindow]:
    """Contiguous slots from ``start``; a trailing remainder shorter than one slot is dropped."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    step = timedelta(minutes=duration_minutes)
    slots = []
    cursor = start
    while cursor + step <= end:
        slots.append(SlotWindow(cursor, cursor + step))
        cursor += step
    return slots


def daterange(from_date: date, to_date: date):
    day = from_date
    while day <= to_date:
        yield day
        day += timedelta(days=1)


def expand_schedule(schedule, from_date: date, to_date: date) -> list[AvailabilityPlan]:
    """Plans for every date in [from_date, to_date] on which ``schedule`` is effective.

    ``schedule`` needs ``is_effective_on(day)``, ``start_time_of_day``,
    ``end_time_of_day`` and ``slot_duration_minutes``.
    """
    plans = []
    for day in daterange(from_date, to_date):
        if not schedule.is_effective_on(day):
            continue
        start = datetime.combine(day, schedule.start_time_of_day, tzinfo=timezone.utc)
        end = datetime.combine(day, schedule.end_time_of_day, tzinfo=timezone.utc)
        plans.append(AvailabilityPlan(
            day=day,
            start=start,
            end=end,
            slots=partition_slots(start, end, schedule.slot_duration_minutes),
        ))
    return plans
