"""
Portfolio Platform
Blueprint registry and shared request helpers.
"""

from datetime import date, time

from flask import request

from portfolio.core.exceptions import ValidationError
from portfolio.utils.errors import E
from portfolio.utils.time import parse_instant


def paginate(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-ordered result list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return list(items[offset:offset + limit]), total


def page_response(items, total, serialize=lambda x: x.to_dict()):
    return {"items": [serialize(i) for i in items], "total": total}


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Field parsers: raise ValidationError (400) on malformed input ────────


def parse_instant_field(raw, field, required=True):
    if raw in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", code=E.VALIDATION_REQUIRED)
        return None
    try:
        return parse_instant(str(raw))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp", code=E.VALIDATION_INVALID)


def parse_date_field(raw, field, required=True):
    if raw in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", code=E.VALIDATION_REQUIRED)
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", code=E.VALIDATION_INVALID)


def parse_time_field(raw, field):
    if raw in (None, ""):
        raise ValidationError(f"{field} is required", code=E.VALIDATION_REQUIRED)
    try:
        return time.fromisoformat(str(raw))
    except ValueError:
        raise ValidationError(f"{field} must be a time of day (HH:MM)", code=E.VALIDATION_INVALID)


def parse_int_field(raw, field, required=True):
    if raw in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", code=E.VALIDATION_REQUIRED)
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be an integer", code=E.VALIDATION_INVALID)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", code=E.VALIDATION_INVALID)
