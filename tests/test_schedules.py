"""
Scheduling tests — profiles, weekly schedules and availability generation.
"""

import pytest

BASE = "/api/v1/scheduling"

OFFICE_HOURS = {
    "name": "Office hours",
    "days_of_week": ["monday", "wednesday"],
    "start_time_of_day": "09:00",
    "end_time_of_day": "10:00",
    "slot_duration_minutes": 30,
    "effective_from": "2030-01-01",
    "min_advance_booking_minutes": 0,
}


def _profile(client, actor, **body):
    payload = {"profile_type": "individual", **body}
    return client.post(f"{BASE}/profiles", json=payload, headers=actor.headers)


@pytest.fixture()
def host(client, owner):
    res = _profile(client, owner, display_name="Dr. Host")
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def schedule(client, owner, host):
    res = client.post(f"{BASE}/profiles/{host['id']}/schedules", json=OFFICE_HOURS, headers=owner.headers)
    assert res.status_code == 201
    return res.get_json()


def _generate(client, actor, host, schedule, from_date="2030-01-07", to_date="2030-01-20"):
    return client.post(
        f"{BASE}/profiles/{host['id']}/schedules/{schedule['id']}/generate",
        json={"from_date": from_date, "to_date": to_date},
        headers=actor.headers,
    )


# ═════════════════════════════════════════════════════════════════════════
# PROFILES
# ═════════════════════════════════════════════════════════════════════════

class TestProfiles:
    def test_create_individual(self, client, owner, host):
        assert host["profile_type"] == "individual"
        assert host["external_user_id"] == owner.id
        assert host["display_name"] == "Dr. Host"

    def test_one_individual_per_user(self, client, owner, host):
        res = _profile(client, owner)
        assert res.status_code == 409
        assert res.get_json()["code"] == "SCHEDULING_PROFILE_ALREADY_EXISTS"

    def test_business_profiles(self, client, owner, host):
        first = _profile(client, owner, profile_type="business", business_name="Acme Clinic")
        assert first.status_code == 201
        second = _profile(client, owner, profile_type="business", business_name="Acme Labs")
        assert second.status_code == 201

        dup = _profile(client, owner, profile_type="business", business_name="ACME clinic")
        assert dup.status_code == 409

        mine = client.get(f"{BASE}/profiles", headers=owner.headers).get_json()
        assert [p["id"] for p in mine] == [host["id"], first.get_json()["id"], second.get_json()["id"]]

    def test_business_needs_name(self, client, owner):
        res = _profile(client, owner, profile_type="business")
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_PROFILE"

    def test_unknown_profile_type(self, client, owner):
        res = _profile(client, owner, profile_type="robot")
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_PROFILE_TYPE"

    def test_delete_profile(self, client, owner, host):
        res = client.delete(f"{BASE}/profiles/{host['id']}", headers=owner.headers)
        assert res.status_code == 204
        res = client.get(f"{BASE}/profiles/{host['id']}", headers=owner.headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "SCHEDULING_PROFILE_NOT_FOUND"
        # the individual slot is free again
        assert _profile(client, owner).status_code == 201

    def test_delete_someone_elses_profile(self, client, other, host):
        res = client.delete(f"{BASE}/profiles/{host['id']}", headers=other.headers)
        assert res.status_code == 403
        assert res.get_json()["code"] == "UNAUTHORIZED_SCHEDULING_ACCESS"


# ═════════════════════════════════════════════════════════════════════════
# SCHEDULES
# ═════════════════════════════════════════════════════════════════════════

class TestSchedules:
    def test_create_schedule(self, schedule):
        assert schedule["days_of_week"] == ["monday", "wednesday"]
        assert schedule["start_time_of_day"] == "09:00"
        assert schedule["is_active"] is True
        assert schedule["min_advance_booking_minutes"] == 0
        assert schedule["cancellation_deadline_minutes"] == 60

    def test_duplicate_name(self, client, owner, host, schedule):
        res = client.post(f"{BASE}/profiles/{host['id']}/schedules", json=OFFICE_HOURS, headers=owner.headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "SCHEDULE_ALREADY_EXISTS"

    @pytest.mark.parametrize("override,code", [
        ({"days_of_week": "monday"}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"days_of_week": []}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"days_of_week": ["someday"]}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"end_time_of_day": "08:00"}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"slot_duration_minutes": 3}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"slot_duration_minutes": 61}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"effective_until": "2029-12-31"}, "INVALID_SCHEDULE_CONFIGURATION"),
        ({"start_time_of_day": "9am"}, "ERR_VALIDATION_INVALID"),
        ({"effective_from": None}, "ERR_VALIDATION_REQUIRED"),
        ({"min_advance_booking_minutes": -5}, "INVALID_BOOKING_CONSTRAINTS"),
    ])
    def test_invalid_schedule(self, client, owner, host, override, code):
        res = client.post(f"{BASE}/profiles/{host['id']}/schedules",
                          json={**OFFICE_HOURS, **override}, headers=owner.headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == code

    def test_only_owner_creates_schedule(self, client, other, host):
        res = client.post(f"{BASE}/profiles/{host['id']}/schedules", json=OFFICE_HOURS, headers=other.headers)
        assert res.status_code == 403

    def test_update_keeps_constraints(self, client, owner, host, schedule):
        body = {k: v for k, v in OFFICE_HOURS.items() if k != "min_advance_booking_minutes"}
        body.update(slot_duration_minutes=20, days_of_week=[5])
        res = client.put(f"{BASE}/profiles/{host['id']}/schedules/{schedule['id']}",
                         json=body, headers=owner.headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["slot_duration_minutes"] == 20
        assert data["days_of_week"] == ["friday"]
        assert data["min_advance_booking_minutes"] == 0

    def test_pause_and_resume(self, client, owner, host, schedule):
        url = f"{BASE}/profiles/{host['id']}/schedules/{schedule['id']}"
        assert client.post(f"{url}/pause", headers=owner.headers).get_json()["is_active"] is False

        again = client.post(f"{url}/pause", headers=owner.headers)
        assert again.status_code == 400
        assert again.get_json()["code"] == "SCHEDULE_ALREADY_PAUSED"

        assert client.post(f"{url}/resume", headers=owner.headers).get_json()["is_active"] is True

    def test_missing_schedule(self, client, owner, host):
        res = client.get(f"{BASE}/profiles/{host['id']}/schedules/999", headers=owner.headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "SCHEDULE_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# GENERATION
# ═════════════════════════════════════════════════════════════════════════

class TestGeneration:
    def test_generate_two_weeks(self, client, owner, host, schedule):
        res = _generate(client, owner, host, schedule)
        assert res.status_code == 201
        data = res.get_json()
        assert data["generated_count"] == 4
        assert data["skipped_count"] == 0
        assert all(a["slot_count"] == 2 for a in data["availabilities"])
        assert all(a["schedule_id"] == schedule["id"] for a in data["availabilities"])
        assert all(a["min_advance_booking_minutes"] == 0 for a in data["availabilities"])

        listed = client.get(f"{BASE}/profiles/{host['id']}/availabilities", headers=owner.headers).get_json()
        assert listed["total"] == 4

    def test_regenerate_skips_existing(self, client, owner, host, schedule):
        _generate(client, owner, host, schedule)
        data = _generate(client, owner, host, schedule).get_json()
        assert data["generated_count"] == 0
        assert data["skipped_dates"] == ["2030-01-07", "2030-01-09", "2030-01-14", "2030-01-16"]

    def test_skips_dates_with_manual_availability(self, client, owner, host, schedule):
        res = client.post(f"{BASE}/profiles/{host['id']}/availabilities", json={
            "start_time": "2030-01-09T09:30:00Z",
            "end_time": "2030-01-09T11:00:00Z",
            "slot_duration_minutes": 30,
        }, headers=owner.headers)
        assert res.status_code == 201

        data = _generate(client, owner, host, schedule).get_json()
        assert data["generated_count"] == 3
        assert data["skipped_dates"] == ["2030-01-09"]

    def test_paused_schedule_cannot_generate(self, client, owner, host, schedule):
        client.post(f"{BASE}/profiles/{host['id']}/schedules/{schedule['id']}/pause", headers=owner.headers)
        res = _generate(client, owner, host, schedule)
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_SCHEDULE_CONFIGURATION"

    @pytest.mark.parametrize("from_date,to_date", [
        ("2030-01-20", "2030-01-07"),
        ("2030-01-01", "2031-01-02"),
    ])
    def test_invalid_range(self, client, owner, host, schedule, from_date, to_date):
        res = _generate(client, owner, host, schedule, from_date, to_date)
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_DATE_RANGE"

    def test_before_effective_from_generates_nothing(self, client, owner, host, schedule):
        data = _generate(client, owner, host, schedule, "2029-12-01", "2029-12-31").get_json()
        assert data["generated_count"] == 0
        assert data["skipped_count"] == 0
