"""
Scheduling Blueprint — profiles, schedules, availabilities, slots, appointments.

Routes (prefix /api/v1/scheduling):
  POST   /profiles                                   – create profile
  GET    /profiles                                   – my profiles
  GET    /profiles/<pid>                             – profile
  DELETE /profiles/<pid>                             – soft delete

  POST   /profiles/<pid>/schedules                   – create schedule
  GET    /profiles/<pid>/schedules                   – list schedules
  GET    /profiles/<pid>/schedules/<sid>             – schedule
  PUT    /profiles/<pid>/schedules/<sid>             – replace schedule rule
  POST   /profiles/<pid>/schedules/<sid>/pause       – pause
  POST   /profiles/<pid>/schedules/<sid>/resume      – resume
  POST   /profiles/<pid>/schedules/<sid>/generate    – generate availabilities

  POST   /profiles/<pid>/availabilities              – one-off availability
  GET    /profiles/<pid>/availabilities              – list (?from=&to=)
  GET    /profiles/<pid>/availabilities/<aid>        – availability with slots
  DELETE /profiles/<pid>/availabilities/<aid>        – delete (no booked slots)

  GET    /profiles/<pid>/slots/available             – ?from=&to=
  POST   /profiles/<pid>/slots/block                 – { slot_ids: [...] }
  POST   /profiles/<pid>/slots/unblock               – { slot_ids: [...] }

  POST   /appointments                               – book
  GET    /profiles/<pid>/appointments                – list (?status=)
  GET    /appointments/<id>?profile_id=              – appointment
  POST   /appointments/<id>/cancel                   – { profile_id }
  POST   /appointments/<id>/complete                 – { profile_id }  (host)

Times are ISO-8601 instants (naive input is UTC); times of day are HH:MM.
"""

from flask import Blueprint, jsonify, request

from portfolio.blueprints import (
    json_body,
    page_response,
    paginate,
    parse_date_field,
    parse_instant_field,
    parse_int_field,
    parse_time_field,
)
from portfolio.core.exceptions import ValidationError
from portfolio.models.scheduling import BookingConstraints
from portfolio.services import (
    availability_service,
    booking_service,
    profile_service,
    schedule_service,
)
from portfolio.services.current_user import current_user, require_auth
from portfolio.utils.errors import E

scheduling_bp = Blueprint("scheduling_bp", __name__, url_prefix="/api/v1/scheduling")

_CONSTRAINT_KEYS = (
    "min_advance_booking_minutes",
    "max_advance_booking_days",
    "cancellation_deadline_minutes",
)


def _constraints(data):
    if not any(k in data for k in _CONSTRAINT_KEYS):
        return None
    return BookingConstraints.from_payload(data)


def _schedule_fields(data):
    days = data.get("days_of_week")
    if not isinstance(days, list):
        raise ValidationError("days_of_week must be a list", code="INVALID_SCHEDULE_CONFIGURATION")
    return {
        "name": data.get("name"),
        "days_of_week": days,
        "start_time_of_day": parse_time_field(data.get("start_time_of_day"), "start_time_of_day"),
        "end_time_of_day": parse_time_field(data.get("end_time_of_day"), "end_time_of_day"),
        "slot_duration_minutes": parse_int_field(data.get("slot_duration_minutes"), "slot_duration_minutes"),
        "effective_from": parse_date_field(data.get("effective_from"), "effective_from"),
        "effective_until": parse_date_field(data.get("effective_until"), "effective_until", required=False),
        "constraints": _constraints(data),
    }


def _slot_ids(data):
    ids = data.get("slot_ids")
    if not isinstance(ids, list):
        raise ValidationError("slot_ids must be a list", code=E.VALIDATION_INVALID)
    return [parse_int_field(i, "slot_ids") for i in ids]


# ═════════════════════════════════════════════════════════════════════════════
# PROFILES
# ═════════════════════════════════════════════════════════════════════════════

@scheduling_bp.route("/profiles", methods=["POST"])
@require_auth
def create_profile():
    """Body: { profile_type: individual|business, display_name?, business_name? }"""
    data = json_body()
    profile = profile_service.create_profile(
        current_user(), data.get("profile_type"),
        display_name=data.get("display_name"), business_name=data.get("business_name"),
    )
    return jsonify(profile.to_dict()), 201


@scheduling_bp.route("/profiles", methods=["GET"])
@require_auth
def my_profiles():
    return jsonify([p.to_dict() for p in profile_service.get_my_profiles(current_user())]), 200


@scheduling_bp.route("/profiles/<int:pid>", methods=["GET"])
@require_auth
def get_profile(pid):
    return jsonify(profile_service.get_profile(pid).to_dict()), 200


@scheduling_bp.route("/profiles/<int:pid>", methods=["DELETE"])
@require_auth
def delete_profile(pid):
    profile_service.delete_profile(pid, current_user())
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# SCHEDULES
# ═════════════════════════════════════════════════════════════════════════════

@scheduling_bp.route("/profiles/<int:pid>/schedules", methods=["POST"])
@require_auth
def create_schedule(pid):
    schedule = schedule_service.create_schedule(pid, current_user(), **_schedule_fields(json_body()))
    return jsonify(schedule.to_dict()), 201


@scheduling_bp.route("/profiles/<int:pid>/schedules", methods=["GET"])
@require_auth
def list_schedules(pid):
    return jsonify([s.to_dict() for s in schedule_service.list_schedules(pid)]), 200


@scheduling_bp.route("/profiles/<int:pid>/schedules/<int:sid>", methods=["GET"])
@require_auth
def get_schedule(pid, sid):
    return jsonify(schedule_service.get_schedule(pid, sid).to_dict()), 200


@scheduling_bp.route("/profiles/<int:pid>/schedules/<int:sid>", methods=["PUT"])
@require_auth
def update_schedule(pid, sid):
    schedule = schedule_service.update_schedule(pid, sid, current_user(), **_schedule_fields(json_body()))
    return jsonify(schedule.to_dict()), 200


@scheduling_bp.route("/profiles/<int:pid>/schedules/<int:sid>/pause", methods=["POST"])
@require_auth
def pause_schedule(pid, sid):
    return jsonify(schedule_service.pause_schedule(pid, sid, current_user()).to_dict()), 200


@scheduling_bp.route("/profiles/<int:pid>/schedules/<int:sid>/resume", methods=["POST"])
@require_auth
def resume_schedule(pid, sid):
    return jsonify(schedule_service.resume_schedule(pid, sid, current_user()).to_dict()), 200


@scheduling_bp.route("/profiles/<int:pid>/schedules/<int:sid>/generate", methods=["POST"])
@require_auth
def generate(pid, sid):
    """Body: { from_date: YYYY-MM-DD, to_date: YYYY-MM-DD }"""
    data = json_body()
    result = availability_service.generate_availabilities(
        pid, sid, current_user(),
        parse_date_field(data.get("from_date"), "from_date"),
        parse_date_field(data.get("to_date"), "to_date"),
    )
    return jsonify(result.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# AVAILABILITIES
# ═════════════════════════════════════════════════════════════════════════════

@scheduling_bp.route("/profiles/<int:pid>/availabilities", methods=["POST"])
@require_auth
def create_availability(pid):
    """Body: { start_time, end_time, slot_duration_minutes, <constraints>? }"""
    data = json_body()
    availability = availability_service.create_availability(
        pid,
        current_user(),
        parse_instant_field(data.get("start_time"), "start_time"),
        parse_instant_field(data.get("end_time"), "end_time"),
        parse_int_field(data.get("slot_duration_minutes"), "slot_duration_minutes"),
        constraints=_constraints(data),
    )
    return jsonify(availability.to_dict(include_slots=True)), 201


@scheduling_bp.route("/profiles/<int:pid>/availabilities", methods=["GET"])
@require_auth
def list_availabilities(pid):
    availabilities = availability_service.list_availabilities(
        pid,
        parse_instant_field(request.args.get("from"), "from", required=False),
        parse_instant_field(request.args.get("to"), "to", required=False),
    )
    items, total = paginate(availabilities)
    return jsonify(page_response(items, total)), 200


@scheduling_bp.route("/profiles/<int:pid>/availabilities/<int:aid>", methods=["GET"])
@require_auth
def get_availability(pid, aid):
    return jsonify(availability_service.get_availability(pid, aid).to_dict(include_slots=True)), 200


@scheduling_bp.route("/profiles/<int:pid>/availabilities/<int:aid>", methods=["DELETE"])
@require_auth
def delete_availability(pid, aid):
    availability_service.delete_availability(pid, aid, current_user())
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# SLOTS
# ═════════════════════════════════════════════════════════════════════════════

@scheduling_bp.route("/profiles/<int:pid>/slots/available", methods=["GET"])
@require_auth
def available_slots(pid):
    slots = booking_service.get_available_slots(
        pid,
        parse_instant_field(request.args.get("from"), "from"),
        parse_instant_field(request.args.get("to"), "to"),
    )
    return jsonify([s.to_dict() for s in slots]), 200


@scheduling_bp.route("/profiles/<int:pid>/slots/block", methods=["POST"])
@require_auth
def block_slots(pid):
    return jsonify(booking_service.block_slots(pid, current_user(), _slot_ids(json_body()))), 200


@scheduling_bp.route("/profiles/<int:pid>/slots/unblock", methods=["POST"])
@require_auth
def unblock_slots(pid):
    return jsonify(booking_service.unblock_slots(pid, current_user(), _slot_ids(json_body()))), 200


# ═════════════════════════════════════════════════════════════════════════════
# APPOINTMENTS
# ═════════════════════════════════════════════════════════════════════════════

@scheduling_bp.route("/appointments", methods=["POST"])
@require_auth
def book():
    """Body: { host_profile_id, guest_profile_id, time_slot_id }"""
    data = json_body()
    appointment = booking_service.book_appointment(
        parse_int_field(data.get("host_profile_id"), "host_profile_id"),
        parse_int_field(data.get("guest_profile_id"), "guest_profile_id"),
        parse_int_field(data.get("time_slot_id"), "time_slot_id"),
        current_user(),
    )
    return jsonify(appointment.to_dict()), 201


@scheduling_bp.route("/profiles/<int:pid>/appointments", methods=["GET"])
@require_auth
def list_appointments(pid):
    appointments = booking_service.list_appointments(
        pid, current_user(), status=request.args.get("status") or None,
    )
    items, total = paginate(appointments)
    return jsonify(page_response(items, total)), 200


@scheduling_bp.route("/appointments/<int:appointment_id>", methods=["GET"])
@require_auth
def get_appointment(appointment_id):
    pid = parse_int_field(request.args.get("profile_id"), "profile_id")
    return jsonify(booking_service.get_appointment(pid, appointment_id, current_user()).to_dict()), 200


@scheduling_bp.route("/appointments/<int:appointment_id>/cancel", methods=["POST"])
@require_auth
def cancel_appointment(appointment_id):
    pid = parse_int_field(json_body().get("profile_id"), "profile_id")
    appointment = booking_service.cancel_appointment(pid, appointment_id, current_user())
    return jsonify(appointment.to_dict()), 200


@scheduling_bp.route("/appointments/<int:appointment_id>/complete", methods=["POST"])
@require_auth
def complete_appointment(appointment_id):
    pid = parse_int_field(json_body().get("profile_id"), "profile_id")
    appointment = booking_service.complete_appointment(pid, appointment_id, current_user())
    return jsonify(appointment.to_dict()), 200
