"""
Profile Service — scheduling profiles (the host / guest identity of a user).
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from portfolio.core.exceptions import (
    ConflictError,
    InvalidStateError,
    SchedulingProfileNotFoundError,
    UnauthorizedSchedulingAccessError,
    ValidationError,
)
from portfolio.models import db
from portfolio.models.scheduling import PROFILE_TYPES, Appointment, SchedulingProfile
from portfolio.services import unit_of_work
from portfolio.services.current_user import CurrentUser
from portfolio.utils.time import utcnow

logger = logging.getLogger(__name__)


def get_profile(profile_id: int) -> SchedulingProfile:
    profile = db.session.execute(
        select(SchedulingProfile).where(
            SchedulingProfile.id == profile_id, SchedulingProfile.not_deleted(),
        )
    ).scalar_one_or_none()
    if profile is None:
        raise SchedulingProfileNotFoundError(profile_id)
    return profile


def get_owned_profile(profile_id: int, user: CurrentUser) -> SchedulingProfile:
    """Load a profile and require the caller to own it."""
    profile = get_profile(profile_id)
    if not profile.is_owned_by(user.user_id):
        raise UnauthorizedSchedulingAccessError()
    return profile


def get_my_profiles(user: CurrentUser) -> list[SchedulingProfile]:
    return db.session.execute(
        select(SchedulingProfile)
        .where(SchedulingProfile.external_user_id == user.user_id, SchedulingProfile.not_deleted())
        .order_by(SchedulingProfile.id)
    ).scalars().all()


def create_profile(user: CurrentUser, profile_type: str, display_name: str | None = None,
                   business_name: str | None = None) -> SchedulingProfile:
    profile_type = (profile_type or "").strip().lower()
    if profile_type not in PROFILE_TYPES:
        raise ValidationError(
            f"profile_type must be one of: {', '.join(sorted(PROFILE_TYPES))}",
            code="INVALID_PROFILE_TYPE",
        )
    business_name = (business_name or "").strip() or None
    if profile_type == "business" and not business_name:
        raise ValidationError("Business profiles need a business_name", code="INVALID_PROFILE")

    existing = get_my_profiles(user)
    if profile_type == "individual" and any(p.profile_type == "individual" for p in existing):
        raise ConflictError("You already have an individual profile",
                            code="SCHEDULING_PROFILE_ALREADY_EXISTS")
    if profile_type == "business" and any(
        p.profile_type == "business" and (p.business_name or "").lower() == business_name.lower()
        for p in existing
    ):
        raise ConflictError(f"You already have a business profile named {business_name!r}",
                            code="SCHEDULING_PROFILE_ALREADY_EXISTS")

    profile = SchedulingProfile(
        external_user_id=user.user_id,
        profile_type=profile_type,
        display_name=(display_name or "").strip() or None,
        business_name=business_name if profile_type == "business" else None,
    )
    db.session.add(profile)
    unit_of_work.commit(user.user_id)
    logger.info("Scheduling profile created", extra={"profile_id": profile.id})
    return profile


def delete_profile(profile_id: int, user: CurrentUser) -> None:
    """Soft delete.  Refused while the profile has upcoming booked appointments."""
    profile = get_owned_profile(profile_id, user)
    upcoming = db.session.execute(
        select(Appointment.id).where(
            (Appointment.host_profile_id == profile.id) | (Appointment.guest_profile_id == profile.id),
            Appointment.status == "booked",
            Appointment.start_time > utcnow(),
        ).limit(1)
    ).first()
    if upcoming:
        raise InvalidStateError("Profile has upcoming appointments; cancel them first",
                                code="CANNOT_DELETE_PROFILE")
    profile.soft_delete(user.user_id)
    unit_of_work.commit(user.user_id)
    logger.info("Scheduling profile deleted", extra={"profile_id": profile.id})
