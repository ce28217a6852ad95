"""
Approval workflow definition tests.
"""

import pytest

TWO_STEPS = [
    {"step_order": 1, "required_role": "REVIEWER", "name": "Review"},
    {"step_order": 2, "required_role": "MANAGER", "name": "Sign-off"},
]


def _create(client, actor, name="Standard review", steps=None):
    return client.post(
        "/api/v1/workflows",
        json={"name": name, "steps": TWO_STEPS if steps is None else steps},
        headers=actor.headers,
    )


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreateWorkflow:
    def test_create_workflow(self, client, doc_admin):
        res = _create(client, doc_admin)
        assert res.status_code == 201
        data = res.get_json()
        assert data["step_count"] == 2
        wf = data["workflow"]
        assert wf["is_active"] is True
        assert [s["required_role"] for s in wf["steps"]] == ["REVIEWER", "MANAGER"]

    def test_admin_may_create(self, client, admin):
        assert _create(client, admin).status_code == 201

    def test_plain_user_forbidden(self, client, owner):
        res = _create(client, owner)
        assert res.status_code == 403

    def test_steps_sorted_by_order(self, client, doc_admin):
        res = _create(client, doc_admin, steps=[
            {"step_order": 20, "required_role": "MANAGER"},
            {"step_order": 10, "required_role": "REVIEWER"},
        ])
        steps = res.get_json()["workflow"]["steps"]
        assert [s["step_order"] for s in steps] == [10, 20]

    def test_step_order_defaults_to_position(self, client, doc_admin):
        res = _create(client, doc_admin, steps=[
            {"required_role": "REVIEWER"},
            {"required_role": "MANAGER"},
        ])
        steps = res.get_json()["workflow"]["steps"]
        assert [s["step_order"] for s in steps] == [1, 2]

    @pytest.mark.parametrize("steps,status,code", [
        ([], 400, "INVALID_WORKFLOW"),
        ([{"step_order": 1}], 400, "INVALID_WORKFLOW"),
        ([{"step_order": 0, "required_role": "REVIEWER"}], 400, "INVALID_STEP_ORDER"),
        ([{"step_order": "one", "required_role": "REVIEWER"}], 400, "INVALID_STEP_ORDER"),
        ([{"step_order": 1, "required_role": "REVIEWER"},
          {"step_order": 1, "required_role": "MANAGER"}], 409, "DUPLICATE_STEP_ORDER"),
    ])
    def test_invalid_steps(self, client, doc_admin, steps, status, code):
        res = _create(client, doc_admin, steps=steps)
        assert res.status_code == status
        assert res.get_json()["code"] == code

    def test_name_required(self, client, doc_admin):
        res = _create(client, doc_admin, name=" ")
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# READ & TOGGLE
# ═════════════════════════════════════════════════════════════════════════

class TestReadAndToggle:
    def test_get_workflow(self, client, doc_admin, owner):
        wid = _create(client, doc_admin).get_json()["id"]
        res = client.get(f"/api/v1/workflows/{wid}", headers=owner.headers)
        assert res.status_code == 200
        assert res.get_json()["name"] == "Standard review"

    def test_get_missing_workflow(self, client, owner):
        res = client.get("/api/v1/workflows/999", headers=owner.headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "WORKFLOW_NOT_FOUND"

    def test_deactivate_hides_from_active_list(self, client, doc_admin):
        keep = _create(client, doc_admin, name="A keep").get_json()["id"]
        drop = _create(client, doc_admin, name="B drop").get_json()["id"]

        res = client.post(f"/api/v1/workflows/{drop}/deactivate", headers=doc_admin.headers)
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False

        active = client.get("/api/v1/workflows?active=true", headers=doc_admin.headers).get_json()
        assert [w["id"] for w in active] == [keep]
        everything = client.get("/api/v1/workflows", headers=doc_admin.headers).get_json()
        assert [w["id"] for w in everything] == [keep, drop]

        res = client.post(f"/api/v1/workflows/{drop}/activate", headers=doc_admin.headers)
        assert res.get_json()["is_active"] is True

    def test_toggle_needs_workflow_admin(self, client, doc_admin, owner):
        wid = _create(client, doc_admin).get_json()["id"]
        res = client.post(f"/api/v1/workflows/{wid}/deactivate", headers=owner.headers)
        assert res.status_code == 403
