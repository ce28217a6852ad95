"""
Schedule Service — weekly recurrence rules of a host profile.

All mutations require the caller to own the profile.  Validation lives in
``Schedule.configure`` so create and update apply the same rules.
"""

from __future__ import annotations

import logging
from datetime import date, time

from sqlalchemy import select

from portfolio.core.exceptions import ConflictError, NotFoundError
from portfolio.models import db
from portfolio.models.scheduling import BookingConstraints, Schedule
from portfolio.services import profile_service, unit_of_work
from portfolio.services.current_user import CurrentUser

logger = logging.getLogger(__name__)


def _ensure_name_free(profile_id: int, name: str, exclude_id: int | None = None) -> None:
    stmt = select(Schedule.id).where(Schedule.profile_id == profile_id, Schedule.name == name.strip())
    if exclude_id is not None:
        stmt = stmt.where(Schedule.id != exclude_id)
    if db.session.execute(stmt).first():
        raise ConflictError(f"A schedule named {name.strip()!r} already exists for this profile",
                            code="SCHEDULE_ALREADY_EXISTS")


def get_schedule(profile_id: int, schedule_id: int) -> Schedule:
    schedule = db.session.get(Schedule, schedule_id)
    if schedule is None or schedule.profile_id != profile_id:
        raise NotFoundError("Schedule", schedule_id, code="SCHEDULE_NOT_FOUND")
    return schedule


def list_schedules(profile_id: int) -> list[Schedule]:
    profile = profile_service.get_profile(profile_id)
    return db.session.execute(
        select(Schedule).where(Schedule.profile_id == profile.id).order_by(Schedule.name)
    ).scalars().all()


def create_schedule(
    profile_id: int,
    user: CurrentUser,
    *,
    name: str,
    days_of_week,
    start_time_of_day: time,
    end_time_of_day: time,
    slot_duration_minutes: int,
    effective_from: date,
    effective_until: date | None = None,
    constraints: BookingConstraints | None = None,
) -> Schedule:
    profile = profile_service.get_owned_profile(profile_id, user)

    schedule = Schedule(profile_id=profile.id, is_active=True)
    schedule.configure(
        name=name,
        days_of_week=days_of_week,
        start_time_of_day=start_time_of_day,
        end_time_of_day=end_time_of_day,
        slot_duration_minutes=slot_duration_minutes,
        effective_from=effective_from,
        effective_until=effective_until,
        constraints=constraints or BookingConstraints(),
    )
    _ensure_name_free(profile.id, schedule.name)

    db.session.add(schedule)
    unit_of_work.commit(user.user_id)
    logger.info("Schedule created", extra={"profile_id": profile.id, "schedule_id": schedule.id})
    return schedule


def update_schedule(
    profile_id: int,
    schedule_id: int,
    user: CurrentUser,
    *,
    name: str,
    days_of_week,
    start_time_of_day: time,
    end_time_of_day: time,
    slot_duration_minutes: int,
    effective_from: date,
    effective_until: date | None = None,
    constraints: BookingConstraints | None = None,
) -> Schedule:
    """Replace the rule.  Already generated availabilities are left as they are."""
    profile = profile_service.get_owned_profile(profile_id, user)
    schedule = get_schedule(profile.id, schedule_id)
    schedule.configure(
        name=name,
        days_of_week=days_of_week,
        start_time_of_day=start_time_of_day,
        end_time_of_day=end_time_of_day,
        slot_duration_minutes=slot_duration_minutes,
        effective_from=effective_from,
        effective_until=effective_until,
        constraints=constraints or schedule.booking_constraints,
    )
    _ensure_name_free(profile.id, schedule.name, exclude_id=schedule.id)
    unit_of_work.commit(user.user_id)
    return schedule


def pause_schedule(profile_id: int, schedule_id: int, user: CurrentUser) -> Schedule:
    profile = profile_service.get_owned_profile(profile_id, user)
    schedule = get_schedule(profile.id, schedule_id)
    schedule.pause()
    unit_of_work.commit(user.user_id)
    logger.info("Schedule paused", extra={"schedule_id": schedule.id})
    return schedule


def resume_schedule(profile_id: int, schedule_id: int, user: CurrentUser) -> Schedule:
    profile = profile_service.get_owned_profile(profile_id, user)
    schedule = get_schedule(profile.id, schedule_id)
    schedule.resume()
    unit_of_work.commit(user.user_id)
    logger.info("Schedule resumed", extra={"schedule_id": schedule.id})
    return schedule
