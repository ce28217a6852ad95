"""
Availability Service — concrete bookable windows of a host profile.

Windows of one host never overlap.  The check is query-then-insert: a single
host edits one calendar at a time, so no database constraint backs it.

Generation from a schedule (``generate_availabilities``) skips dates whose
window collides with an existing availability (or one produced earlier in
the same run) and reports them instead of failing the whole range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select

from portfolio.core.exceptions import (
    InvalidScheduleConfigurationError,
    InvalidStateError,
    NotFoundError,
    OverlappingAvailabilityError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.scheduling import (
    Availability,
    BookingConstraints,
    TimeSlot,
    validate_window_minutes,
)
from portfolio.services import profile_service, schedule_service, unit_of_work
from portfolio.services.availability_generator import expand_schedule, partition_slots
from portfolio.services.current_user import CurrentUser
from portfolio.utils.time import as_utc

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    availabilities: list[Availability] = field(default_factory=list)
    skipped_dates: list[date] = field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.availabilities)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_dates)

    def to_dict(self):
        return {
            "generated_count": self.generated_count,
            "skipped_count": self.skipped_count,
            "skipped_dates": [d.isoformat() for d in self.skipped_dates],
            "availabilities": [a.to_dict() for a in self.availabilities],
        }


def _invalid_availability(message):
    return ValidationError(message, code="INVALID_AVAILABILITY")


def _overlapping(host_profile_id: int, start: datetime, end: datetime) -> list[Availability]:
    return db.session.execute(
        select(Availability).where(
            Availability.host_profile_id == host_profile_id,
            Availability.start_time < end,
            Availability.end_time > start,
        )
    ).scalars().all()


def _build(host_profile_id, start, end, slot_duration_minutes, constraints, schedule_id=None):
    availability = Availability(
        host_profile_id=host_profile_id,
        schedule_id=schedule_id,
        start_time=start,
        end_time=end,
        slot_duration_minutes=slot_duration_minutes,
    )
    availability.apply_constraints(constraints)
    for window in partition_slots(start, end, slot_duration_minutes):
        availability.time_slots.append(TimeSlot(start_time=window.start, end_time=window.end))
    return availability


# ═════════════════════════════════════════════════════════════════════════════
# Manual availabilities
# ═════════════════════════════════════════════════════════════════════════════


def create_availability(
    profile_id: int,
    user: CurrentUser,
    start_time: datetime,
    end_time: datetime,
    slot_duration_minutes: int,
    constraints: BookingConstraints | None = None,
) -> Availability:
    profile = profile_service.get_owned_profile(profile_id, user)
    if start_time is None or end_time is None:
        raise _invalid_availability("start_time and end_time are required")
    start, end = as_utc(start_time), as_utc(end_time)
    span_minutes = int((end - start).total_seconds() // 60)
    validate_window_minutes(0, span_minutes, slot_duration_minutes, error=_invalid_availability)
    constraints = (constraints or BookingConstraints()).validate()

    if _overlapping(profile.id, start, end):
        raise OverlappingAvailabilityError(start, end)

    availability = _build(profile.id, start, end, slot_duration_minutes, constraints)
    db.session.add(availability)
    unit_of_work.commit(user.user_id)
    logger.info(
        "Availability created",
        extra={"profile_id": profile.id, "availability_id": availability.id,
               "slots": len(availability.time_slots)},
    )
    return availability


def get_availability(profile_id: int, availability_id: int) -> Availability:
    availability = db.session.get(Availability, availability_id)
    if availability is None or availability.host_profile_id != profile_id:
        raise NotFoundError("Availability", availability_id, code="AVAILABILITY_NOT_FOUND")
    return availability


def list_availabilities(profile_id: int, start: datetime | None = None,
                        end: datetime | None = None) -> list[Availability]:
    profile = profile_service.get_profile(profile_id)
    stmt = select(Availability).where(Availability.host_profile_id == profile.id)
    if start is not None:
        stmt = stmt.where(Availability.end_time > as_utc(start))
    if end is not None:
        stmt = stmt.where(Availability.start_time < as_utc(end))
    return db.session.execute(stmt.order_by(Availability.start_time)).scalars().all()


def delete_availability(profile_id: int, availability_id: int, user: CurrentUser) -> None:
    profile = profile_service.get_owned_profile(profile_id, user)
    availability = get_availability(profile.id, availability_id)
    if availability.has_booked_slots():
        raise InvalidStateError("Availability has booked slots and cannot be deleted",
                                code="CANNOT_DELETE_AVAILABILITY")
    db.session.delete(availability)
    unit_of_work.commit(user.user_id)
    logger.info("Availability deleted", extra={"availability_id": availability_id})


# ═════════════════════════════════════════════════════════════════════════════
# Generation from a schedule
# ═════════════════════════════════════════════════════════════════════════════


def generate_availabilities(profile_id: int, schedule_id: int, user: CurrentUser,
                            from_date: date, to_date: date) -> GenerationResult:
    profile = profile_service.get_owned_profile(profile_id, user)
    schedule = schedule_service.get_schedule(profile.id, schedule_id)
    if not schedule.is_active:
        raise InvalidScheduleConfigurationError("Paused schedules cannot generate availabilities")
    if from_date is None or to_date is None or from_date > to_date:
        raise ValidationError("from_date must be on or before to_date", code="INVALID_DATE_RANGE")
    max_days = current_app.config["MAX_GENERATION_DAYS"]
    if (to_date - from_date).days + 1 > max_days:
        raise ValidationError(f"Cannot generate more than {max_days} days at once",
                              code="INVALID_DATE_RANGE")

    plans = expand_schedule(schedule, from_date, to_date)
    range_start = datetime.combine(from_date, datetime.min.time(), tzinfo=timezone.utc)
    range_end = datetime.combine(to_date + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
    taken = [(as_utc(a.start_time), as_utc(a.end_time))
             for a in _overlapping(profile.id, range_start, range_end)]

    result = GenerationResult()
    constraints = schedule.booking_constraints
    for plan in plans:
        if any(plan.overlaps(s, e) for s, e in taken):
            result.skipped_dates.append(plan.day)
            continue
        availability = _build(profile.id, plan.start, plan.end, schedule.slot_duration_minutes,
                              constraints, schedule_id=schedule.id)
        db.session.add(availability)
        result.availabilities.append(availability)
        taken.append((plan.start, plan.end))

    unit_of_work.commit(user.user_id)
    logger.info(
        "Availabilities generated",
        extra={"schedule_id": schedule.id, "generated": result.generated_count,
               "skipped": result.skipped_count},
    )
    return result
