"""
Booking Service — time slot state changes and appointments.

Double booking is prevented twice over:
    - ``TimeSlot.book`` refuses anything but an available slot, and the
      slot's ``version`` column rejects a stale concurrent update;
    - ``appointments.time_slot_id`` is UNIQUE, so a second appointment for
      the same slot cannot commit even if both requests saw it available.
Either failure at commit becomes TimeSlotAlreadyBookedError (409, retryable).

Cancelling gives the slot back (booked → available) and drops the
appointment's live claim on it; the slot id stays readable on the
appointment as ``original_time_slot_id``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select

from portfolio.core.exceptions import (
    AppointmentNotFoundError,
    ConcurrentUpdateError,
    DuplicateEntryError,
    TimeSlotAlreadyBookedError,
    TimeSlotNotFoundError,
    UnauthorizedSchedulingAccessError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.scheduling import (
    APPOINTMENT_STATUSES,
    SLOT_AVAILABLE,
    Appointment,
    Availability,
    TimeSlot,
)
from portfolio.services import profile_service, unit_of_work
from portfolio.services.current_user import CurrentUser
from portfolio.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def _slots_of_host(profile_id: int, slot_ids) -> list[TimeSlot]:
    """Slots among ``slot_ids`` that belong to the host; others are dropped."""
    ids = {int(s) for s in slot_ids or []}
    if not ids:
        return []
    return db.session.execute(
        select(TimeSlot)
        .join(Availability, TimeSlot.availability_id == Availability.id)
        .where(TimeSlot.id.in_(ids), Availability.host_profile_id == profile_id)
        .order_by(TimeSlot.start_time)
    ).scalars().all()


# ═════════════════════════════════════════════════════════════════════════════
# Slot blocking
# ═════════════════════════════════════════════════════════════════════════════


def block_slots(profile_id: int, user: CurrentUser, slot_ids) -> dict:
    """Block the host's slots.  Ids of other hosts' slots are silently skipped."""
    profile = profile_service.get_owned_profile(profile_id, user)
    slots = _slots_of_host(profile.id, slot_ids)
    for slot in slots:
        slot.block()
    unit_of_work.commit(user.user_id)
    blocked = [s.id for s in slots]
    logger.info("Time slots blocked", extra={"profile_id": profile.id, "count": len(blocked)})
    return {"blocked_count": len(blocked), "blocked_slot_ids": blocked}


def unblock_slots(profile_id: int, user: CurrentUser, slot_ids) -> dict:
    """Unblock the host's blocked slots; slots in any other state are left alone."""
    profile = profile_service.get_owned_profile(profile_id, user)
    unblocked = [s.id for s in _slots_of_host(profile.id, slot_ids) if s.unblock()]
    unit_of_work.commit(user.user_id)
    return {"unblocked_count": len(unblocked), "unblocked_slot_ids": unblocked}


def get_available_slots(profile_id: int, start: datetime, end: datetime) -> list[TimeSlot]:
    """Available slots of the host starting in [start, end), earliest first."""
    profile = profile_service.get_profile(profile_id)
    if start is None or end is None or as_utc(start) >= as_utc(end):
        raise ValidationError("'from' must be before 'to'", code="INVALID_DATE_RANGE")
    return db.session.execute(
        select(TimeSlot)
        .join(Availability, TimeSlot.availability_id == Availability.id)
        .where(
            Availability.host_profile_id == profile.id,
            TimeSlot.status == SLOT_AVAILABLE,
            TimeSlot.start_time >= as_utc(start),
            TimeSlot.start_time < as_utc(end),
        )
        .order_by(TimeSlot.start_time)
    ).scalars().all()


# ═════════════════════════════════════════════════════════════════════════════
# Appointments
# ═════════════════════════════════════════════════════════════════════════════


def book_appointment(host_profile_id: int, guest_profile_id: int, time_slot_id: int,
                     user: CurrentUser) -> Appointment:
    guest = profile_service.get_owned_profile(guest_profile_id, user)
    host = profile_service.get_profile(host_profile_id)
    if host.id == guest.id or host.external_user_id == guest.external_user_id:
        raise ValidationError("You cannot book an appointment with yourself",
                              code="SELF_BOOKING_NOT_ALLOWED")

    slot = db.session.get(TimeSlot, time_slot_id)
    if slot is None or slot.host_profile_id != host.id:
        raise TimeSlotNotFoundError(time_slot_id)

    availability = slot.availability
    availability.booking_constraints.check_booking_window(slot.start_time, utcnow())
    slot.book()

    appointment = Appointment(
        time_slot=slot,
        original_time_slot=slot,
        host_profile_id=host.id,
        guest_profile_id=guest.id,
        status="booked",
        start_time=slot.start_time,
        end_time=slot.end_time,
        cancellation_deadline_minutes=availability.cancellation_deadline_minutes,
    )
    db.session.add(appointment)
    try:
        unit_of_work.commit(user.user_id)
    except (DuplicateEntryError, ConcurrentUpdateError) as exc:
        logger.warning("Lost booking race", extra={"time_slot_id": time_slot_id})
        raise TimeSlotAlreadyBookedError(time_slot_id) from exc

    logger.info(
        "Appointment booked",
        extra={"appointment_id": appointment.id, "time_slot_id": slot.id,
               "profile_id": host.id},
    )
    return appointment


def _participant_appointment(profile_id: int, appointment_id: int, user: CurrentUser):
    profile = profile_service.get_owned_profile(profile_id, user)
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None or not appointment.involves(profile.id):
        raise AppointmentNotFoundError(appointment_id)
    return profile, appointment


def get_appointment(profile_id: int, appointment_id: int, user: CurrentUser) -> Appointment:
    return _participant_appointment(profile_id, appointment_id, user)[1]


def list_appointments(profile_id: int, user: CurrentUser, status: str | None = None) -> list[Appointment]:
    profile = profile_service.get_owned_profile(profile_id, user)
    if status is not None and status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"Unknown appointment status '{status}'", code="INVALID_APPOINTMENT_STATUS")
    stmt = select(Appointment).where(
        (Appointment.host_profile_id == profile.id) | (Appointment.guest_profile_id == profile.id)
    )
    if status:
        stmt = stmt.where(Appointment.status == status)
    return db.session.execute(stmt.order_by(Appointment.start_time)).scalars().all()


def cancel_appointment(profile_id: int, appointment_id: int, user: CurrentUser) -> Appointment:
    """Either participant cancels before the deadline; the slot becomes bookable again."""
    _, appointment = _participant_appointment(profile_id, appointment_id, user)
    appointment.cancel(user.user_id)
    unit_of_work.commit(user.user_id)
    logger.info("Appointment cancelled", extra={"appointment_id": appointment.id})
    return appointment


def complete_appointment(profile_id: int, appointment_id: int, user: CurrentUser) -> Appointment:
    profile, appointment = _participant_appointment(profile_id, appointment_id, user)
    if appointment.host_profile_id != profile.id:
        raise UnauthorizedSchedulingAccessError("Only the host can complete an appointment")
    appointment.complete()
    unit_of_work.commit(user.user_id)
    logger.info("Appointment completed", extra={"appointment_id": appointment.id})
    return appointment
