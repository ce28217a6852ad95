"""
Scheduling domain models.

Models:
    - SchedulingProfile: the scheduling-side identity of a user (individual or business)
    - Schedule: weekly recurrence rule owned by a profile
    - Availability: concrete UTC window owned by a host profile, partitioned into slots
    - TimeSlot: the bookable unit — available / booked / blocked
    - Appointment: a guest's claim on one time slot

Slot state machine:
    available ──book──→ booked ──release (appointment cancelled)──→ available
    available ──block──→ blocked ──unblock──→ available

One appointment per slot:
    appointments.time_slot_id is UNIQUE and is the authoritative guard against
    double booking.  A cancelled appointment gives up its claim (time_slot_id
    → NULL, kept in original_time_slot_id) so the released slot can be booked
    again.  time_slots.version adds optimistic locking on the slot row.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from portfolio.core.exceptions import (
    BookingWindowViolationError,
    ConflictError,
    InvalidScheduleConfigurationError,
    InvalidStateError,
    TimeSlotNotAvailableError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.base import AuditMixin
from portfolio.models.soft_delete import SoftDeleteMixin
from portfolio.utils.time import as_utc, isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

PROFILE_TYPES = {"individual", "business"}

SLOT_AVAILABLE = "available"
SLOT_BOOKED = "booked"
SLOT_BLOCKED = "blocked"
SLOT_STATUSES = {SLOT_AVAILABLE, SLOT_BOOKED, SLOT_BLOCKED}

APPOINTMENT_STATUSES = {"booked", "cancelled", "completed"}

# ISO weekday numbers: Monday=1 … Sunday=7
WEEKDAYS = {
    "monday": 1, "tuesday": 2, "wednesday": 3, "thursday": 4,
    "friday": 5, "saturday": 6, "sunday": 7,
}
WEEKDAY_NAMES = {v: k for k, v in WEEKDAYS.items()}

MIN_SLOT_DURATION_MINUTES = 5

DEFAULT_MIN_ADVANCE_BOOKING_MINUTES = 60
DEFAULT_MAX_ADVANCE_BOOKING_DAYS = 30
DEFAULT_CANCELLATION_DEADLINE_MINUTES = 60


def normalize_weekdays(values) -> list[int]:
    """Accept ISO numbers or English day names; return sorted distinct ISO numbers.

    Raises InvalidScheduleConfigurationError for unknown values.
    """
    result = set()
    for raw in values or []:
        if isinstance(raw, str) and not raw.strip().isdigit():
            day = WEEKDAYS.get(raw.strip().lower())
        else:
            try:
                day = int(raw)
            except (TypeError, ValueError):
                day = None
            if day not in WEEKDAY_NAMES:
                day = None
        if day is None:
            raise InvalidScheduleConfigurationError(f"Unknown day of week: {raw!r}")
        result.add(day)
    return sorted(result)


# ── Booking constraints ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class BookingConstraints:
    """Booking-window rules carried from a schedule onto its availabilities."""

    min_advance_booking_minutes: int = DEFAULT_MIN_ADVANCE_BOOKING_MINUTES
    max_advance_booking_days: int = DEFAULT_MAX_ADVANCE_BOOKING_DAYS
    cancellation_deadline_minutes: int = DEFAULT_CANCELLATION_DEADLINE_MINUTES

    @classmethod
    def from_payload(cls, data: dict | None) -> "BookingConstraints":
        data = data or {}
        try:
            return cls(
                min_advance_booking_minutes=int(data.get(
                    "min_advance_booking_minutes", DEFAULT_MIN_ADVANCE_BOOKING_MINUTES)),
                max_advance_booking_days=int(data.get(
                    "max_advance_booking_days", DEFAULT_MAX_ADVANCE_BOOKING_DAYS)),
                cancellation_deadline_minutes=int(data.get(
                    "cancellation_deadline_minutes", DEFAULT_CANCELLATION_DEADLINE_MINUTES)),
            )
        except (TypeError, ValueError):
            raise ValidationError("Booking constraints must be integers", code="INVALID_BOOKING_CONSTRAINTS")

    def validate(self):
        if self.min_advance_booking_minutes < 0:
            raise ValidationError("min_advance_booking_minutes cannot be negative", code="INVALID_BOOKING_CONSTRAINTS")
        if self.max_advance_booking_days < 0:
            raise ValidationError("max_advance_booking_days cannot be negative", code="INVALID_BOOKING_CONSTRAINTS")
        if self.cancellation_deadline_minutes < 0:
            raise ValidationError("cancellation_deadline_minutes cannot be negative", code="INVALID_BOOKING_CONSTRAINTS")
        return self

    def check_booking_window(self, slot_start: datetime, now: datetime):
        slot_start = as_utc(slot_start)
        if slot_start < now + timedelta(minutes=self.min_advance_booking_minutes):
            raise BookingWindowViolationError(
                f"Slots must be booked at least {self.min_advance_booking_minutes} minutes in advance"
            )
        if slot_start > now + timedelta(days=self.max_advance_booking_days):
            raise BookingWindowViolationError(
                f"Slots cannot be booked more than {self.max_advance_booking_days} days in advance"
            )

    def to_dict(self):
        return {
            "min_advance_booking_minutes": self.min_advance_booking_minutes,
            "max_advance_booking_days": self.max_advance_booking_days,
            "cancellation_deadline_minutes": self.cancellation_deadline_minutes,
        }


class _ConstraintColumns:
    min_advance_booking_minutes = db.Column(
        db.Integer, nullable=False, default=DEFAULT_MIN_ADVANCE_BOOKING_MINUTES)
    max_advance_booking_days = db.Column(
        db.Integer, nullable=False, default=DEFAULT_MAX_ADVANCE_BOOKING_DAYS)
    cancellation_deadline_minutes = db.Column(
        db.Integer, nullable=False, default=DEFAULT_CANCELLATION_DEADLINE_MINUTES)

    @property
    def booking_constraints(self) -> BookingConstraints:
        return BookingConstraints(
            min_advance_booking_minutes=self.min_advance_booking_minutes,
            max_advance_booking_days=self.max_advance_booking_days,
            cancellation_deadline_minutes=self.cancellation_deadline_minutes,
        )

    def apply_constraints(self, constraints: BookingConstraints):
        self.min_advance_booking_minutes = constraints.min_advance_booking_minutes
        self.max_advance_booking_days = constraints.max_advance_booking_days
        self.cancellation_deadline_minutes = constraints.cancellation_deadline_minutes


# ═════════════════════════════════════════════════════════════════════════════
# PROFILE
# ═════════════════════════════════════════════════════════════════════════════


class SchedulingProfile(AuditMixin, SoftDeleteMixin, db.Model):
    """
    Business rules (enforced in profile_service):
    - at most one individual profile per external user
    - business_name required for business profiles, unique per user
    """

    __tablename__ = "scheduling_profiles"

    id = db.Column(db.Integer, primary_key=True)
    external_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    profile_type = db.Column(db.String(20), nullable=False)
    display_name = db.Column(db.String(200))
    business_name = db.Column(db.String(200))

    def is_owned_by(self, user_id) -> bool:
        return user_id is not None and self.external_user_id == user_id

    def to_dict(self):
        return {
            "id": self.id,
            "external_user_id": self.external_user_id,
            "profile_type": self.profile_type,
            "display_name": self.display_name,
            "business_name": self.business_name,
            "created_at": isoformat(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# SCHEDULE
# ═════════════════════════════════════════════════════════════════════════════


class Schedule(_ConstraintColumns, AuditMixin, db.Model):
    __tablename__ = "schedules"

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(
        db.Integer, db.ForeignKey("scheduling_profiles.id", ondelete="CASCADE"), nullable=False,
    )
    name = db.Column(db.String(200), nullable=False)
    days_of_week = db.Column(db.JSON, nullable=False, default=list)
    start_time_of_day = db.Column(db.Time, nullable=False)
    end_time_of_day = db.Column(db.Time, nullable=False)
    slot_duration_minutes = db.Column(db.Integer, nullable=False)
    effective_from = db.Column(db.Date, nullable=False)
    effective_until = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.UniqueConstraint("profile_id", "name", name="uq_schedule_profile_name"),
    )

    profile = db.relationship("SchedulingProfile")

    def configure(self, *, name, days_of_week, start_time_of_day, end_time_of_day,
                  slot_duration_minutes, effective_from, effective_until, constraints):
        """Validate and apply the full rule; used by create and update."""
        name = (name or "").strip()
        if not name:
            raise InvalidScheduleConfigurationError("Schedule name is required")
        days = normalize_weekdays(days_of_week)
        if not days:
            raise InvalidScheduleConfigurationError("At least one day of week is required")
        validate_window_minutes(
            _minutes(start_time_of_day), _minutes(end_time_of_day), slot_duration_minutes,
            error=InvalidScheduleConfigurationError,
        )
        if effective_from is None:
            raise InvalidScheduleConfigurationError("effective_from is required")
        if effective_until is not None and effective_until < effective_from:
            raise InvalidScheduleConfigurationError("effective_until cannot be before effective_from")
        constraints.validate()

        self.name = name
        self.days_of_week = days
        self.start_time_of_day = start_time_of_day
        self.end_time_of_day = end_time_of_day
        self.slot_duration_minutes = slot_duration_minutes
        self.effective_from = effective_from
        self.effective_until = effective_until
        self.apply_constraints(constraints)

    def pause(self):
        if not self.is_active:
            raise InvalidStateError(f"Schedule id={self.id} is already paused", code="SCHEDULE_ALREADY_PAUSED")
        self.is_active = False

    def resume(self):
        if self.is_active:
            raise InvalidStateError(f"Schedule id={self.id} is already active", code="SCHEDULE_ALREADY_ACTIVE")
        self.is_active = True

    def is_effective_on(self, day: date) -> bool:
        if not self.is_active:
            return False
        if day < self.effective_from:
            return False
        if self.effective_until is not None and day > self.effective_until:
            return False
        return day.isoweekday() in (self.days_of_week or [])

    def to_dict(self):
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "name": self.name,
            "days_of_week": [WEEKDAY_NAMES[d] for d in (self.days_of_week or [])],
            "start_time_of_day": self.start_time_of_day.strftime("%H:%M"),
            "end_time_of_day": self.end_time_of_day.strftime("%H:%M"),
            "slot_duration_minutes": self.slot_duration_minutes,
            "effective_from": self.effective_from.isoformat(),
            "effective_until": self.effective_until.isoformat() if self.effective_until else None,
            "is_active": self.is_active,
            **self.booking_constraints.to_dict(),
        }


def _minutes(t) -> int:
    return t.hour * 60 + t.minute


def validate_window_minutes(start_minutes, end_minutes, slot_duration_minutes, *, error):
    """Shared window rule: start < end, slot ≥ 5 min, at least one slot fits."""
    if end_minutes <= start_minutes:
        raise error("End time must be after start time")
    if slot_duration_minutes is None or slot_duration_minutes < MIN_SLOT_DURATION_MINUTES:
        raise error(f"Slot duration must be at least {MIN_SLOT_DURATION_MINUTES} minutes")
    if end_minutes - start_minutes < slot_duration_minutes:
        raise error("The time range must fit at least one slot")


# ═════════════════════════════════════════════════════════════════════════════
# AVAILABILITY & TIME SLOTS
# ═════════════════════════════════════════════════════════════════════════════


class Availability(_ConstraintColumns, AuditMixin, db.Model):
    """A concrete [start_time, end_time) window; windows of one host never overlap."""

    __tablename__ = "availabilities"

    id = db.Column(db.Integer, primary_key=True)
    host_profile_id = db.Column(
        db.Integer, db.ForeignKey("scheduling_profiles.id", ondelete="CASCADE"), nullable=False,
    )
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    slot_duration_minutes = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.Index("ix_availabilities_host_window", "host_profile_id", "start_time", "end_time"),
        db.CheckConstraint("end_time > start_time", name="ck_availability_window"),
    )

    time_slots = db.relationship(
        "TimeSlot", back_populates="availability",
        order_by="TimeSlot.start_time", cascade="all, delete-orphan",
    )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return as_utc(self.start_time) < end and as_utc(self.end_time) > start

    def has_booked_slots(self) -> bool:
        return any(s.status == SLOT_BOOKED for s in self.time_slots)

    def to_dict(self, include_slots=False):
        d = {
            "id": self.id,
            "host_profile_id": self.host_profile_id,
            "schedule_id": self.schedule_id,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "slot_duration_minutes": self.slot_duration_minutes,
            "slot_count": len(self.time_slots),
            **self.booking_constraints.to_dict(),
        }
        if include_slots:
            d["time_slots"] = [s.to_dict() for s in self.time_slots]
        return d


class TimeSlot(db.Model):
    __tablename__ = "time_slots"

    id = db.Column(db.Integer, primary_key=True)
    availability_id = db.Column(
        db.Integer, db.ForeignKey("availabilities.id", ondelete="CASCADE"), nullable=False,
    )
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=SLOT_AVAILABLE)
    version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.Index("ix_time_slots_availability_start", "availability_id", "start_time"),
        db.Index("ix_time_slots_status_start", "status", "start_time"),
    )
    __mapper_args__ = {"version_id_col": version}

    availability = db.relationship("Availability", back_populates="time_slots")

    @property
    def host_profile_id(self):
        return self.availability.host_profile_id if self.availability else None

    def book(self):
        if self.status != SLOT_AVAILABLE:
            raise TimeSlotNotAvailableError(self.id, self.status)
        self.status = SLOT_BOOKED

    def block(self):
        if self.status == SLOT_BOOKED:
            raise ConflictError(f"Time slot id={self.id} is booked and cannot be blocked",
                                code="CANNOT_BLOCK_BOOKED_SLOT")
        if self.status == SLOT_BLOCKED:
            raise ConflictError(f"Time slot id={self.id} is already blocked",
                                code="TIME_SLOT_ALREADY_BLOCKED")
        self.status = SLOT_BLOCKED

    def unblock(self) -> bool:
        """Blocked → available.  Returns False (no change) for any other status."""
        if self.status != SLOT_BLOCKED:
            return False
        self.status = SLOT_AVAILABLE
        return True

    def release(self):
        """Booked → available, when the appointment holding the slot is cancelled."""
        if self.status == SLOT_BOOKED:
            self.status = SLOT_AVAILABLE

    def to_dict(self):
        return {
            "id": self.id,
            "availability_id": self.availability_id,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "status": self.status,
        }


# ═════════════════════════════════════════════════════════════════════════════
# APPOINTMENT
# ═════════════════════════════════════════════════════════════════════════════


class Appointment(AuditMixin, db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.Integer, primary_key=True)
    time_slot_id = db.Column(
        db.Integer, db.ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True, unique=True,
    )
    original_time_slot_id = db.Column(db.Integer, db.ForeignKey("time_slots.id"), nullable=False, index=True)
    host_profile_id = db.Column(db.Integer, db.ForeignKey("scheduling_profiles.id"), nullable=False, index=True)
    guest_profile_id = db.Column(db.Integer, db.ForeignKey("scheduling_profiles.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="booked")
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    cancellation_deadline_minutes = db.Column(db.Integer, nullable=False, default=DEFAULT_CANCELLATION_DEADLINE_MINUTES)
    cancelled_at = db.Column(db.DateTime(timezone=True))
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    completed_at = db.Column(db.DateTime(timezone=True))

    time_slot = db.relationship("TimeSlot", foreign_keys=[time_slot_id])
    original_time_slot = db.relationship("TimeSlot", foreign_keys=[original_time_slot_id])

    def involves(self, profile_id) -> bool:
        return profile_id in (self.host_profile_id, self.guest_profile_id)

    def _ensure_open(self):
        if self.status == "cancelled":
            raise InvalidStateError(f"Appointment id={self.id} is already cancelled",
                                    code="APPOINTMENT_ALREADY_CANCELED")
        if self.status == "completed":
            raise InvalidStateError(f"Appointment id={self.id} is already completed",
                                    code="APPOINTMENT_ALREADY_COMPLETED")

    def cancel(self, cancelled_by, now=None):
        self._ensure_open()
        now = now or utcnow()
        deadline = as_utc(self.start_time) - timedelta(minutes=self.cancellation_deadline_minutes)
        if now > deadline:
            raise InvalidStateError(
                f"Appointments must be cancelled at least {self.cancellation_deadline_minutes} minutes before start",
                code="CANCELLATION_DEADLINE_PASSED",
            )
        slot = self.time_slot
        self.status = "cancelled"
        self.cancelled_at = now
        self.cancelled_by = cancelled_by
        self.time_slot = None
        self.time_slot_id = None
        if slot is not None:
            slot.release()

    def complete(self, now=None):
        self._ensure_open()
        self.status = "completed"
        self.completed_at = now or utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "time_slot_id": self.original_time_slot_id,
            "host_profile_id": self.host_profile_id,
            "guest_profile_id": self.guest_profile_id,
            "status": self.status,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "created_at": isoformat(self.created_at),
            "cancelled_at": isoformat(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "completed_at": isoformat(self.completed_at),
        }
