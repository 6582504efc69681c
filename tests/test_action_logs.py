"""
Project Tracker
Tests — standalone action logs, their items and requirement checklists.
"""

from datetime import date, timedelta

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db as _db
from app.models.action_log import ActionLog, ActionLogItem, ActionRequirement
from app.models.audit import WorkflowLog
from app.services import action_log_service


@pytest.fixture()
def action_log(project, person):
    return action_log_service.create_action_log(
        {"project_id": project.id, "log_name": "Weekly project review",
         "description": "Actions from the weekly review"},
        actor_id=person.id,
    )


def _item(action_log, person, **kw):
    data = {"action_description": "Complete API documentation"}
    data.update(kw)
    return action_log_service.create_item(action_log.id, data, actor_id=person.id)


# ═════════════════════════════════════════════════════════════════════════════
# SERVICE — ACTION LOGS
# ═════════════════════════════════════════════════════════════════════════════


class TestActionLogs:
    def test_create_defaults(self, action_log, person):
        assert action_log.log_number == "LOG-0001"
        assert action_log.status == "Active"
        assert action_log.created_by_id == person.id
        # Action logs stand apart from the workflow log.
        assert WorkflowLog.query.count() == 0

    def test_numbers_are_sequential_and_supplied_numbers_kept(self, project, action_log):
        second = action_log_service.create_action_log({"project_id": project.id, "log_name": "Steering"})
        custom = action_log_service.create_action_log(
            {"project_id": project.id, "log_name": "Workshop", "log_number": "MEET-7"},
        )
        assert second.log_number == "LOG-0002"
        assert custom.log_number == "MEET-7"

    def test_duplicate_number_conflict(self, project, action_log):
        with pytest.raises(ConflictError):
            action_log_service.create_action_log(
                {"project_id": project.id, "log_name": "Clash", "log_number": "LOG-0001"},
            )
        assert ActionLog.query.count() == 1

    def test_required_fields(self, project):
        with pytest.raises(ValidationError) as exc:
            action_log_service.create_action_log({"project_id": project.id})
        assert exc.value.required is True
        assert exc.value.details == {"log_name": "required"}

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            action_log_service.create_action_log({"project_id": 999, "log_name": "Orphan"})

    def test_invalid_status(self, project):
        with pytest.raises(ValidationError):
            action_log_service.create_action_log(
                {"project_id": project.id, "log_name": "x", "status": "Open"},
            )

    def test_update_requires_a_field(self, action_log):
        with pytest.raises(ValidationError) as exc:
            action_log_service.update_action_log(action_log.id, {"unknown": 1})
        assert str(exc.value) == "No fields to update"

    def test_update_status_and_name(self, action_log):
        updated = action_log_service.update_action_log(
            action_log.id, {"status": "Archived", "log_name": "Archived review"},
        )
        assert updated.status == "Archived"
        assert updated.log_name == "Archived review"

    def test_list_filters(self, project, action_log):
        action_log_service.create_action_log(
            {"project_id": project.id, "log_name": "Cutover rehearsal", "status": "Completed"},
        )
        assert [a.log_name for a in action_log_service.list_action_logs(search="cutover")] == [
            "Cutover rehearsal",
        ]
        assert action_log_service.list_action_logs(status="Active").count() == 1
        assert action_log_service.list_action_logs(project_id=project.id).count() == 2
        # Newest first.
        assert action_log_service.list_action_logs().first().log_name == "Cutover rehearsal"

    def test_delete_removes_items_and_requirements(self, action_log, person):
        item = _item(action_log, person)
        action_log_service.create_requirement(
            action_log.id, item.id, {"requirement_description": "Draft"}, actor_id=person.id,
        )

        action_log_service.delete_action_log(action_log.id)

        assert ActionLog.query.count() == 0
        assert ActionLogItem.query.count() == 0
        assert ActionRequirement.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# SERVICE — ITEMS
# ═════════════════════════════════════════════════════════════════════════════


class TestActionLogItems:
    def test_create_defaults(self, action_log, person, approver):
        item = _item(action_log, person, assigned_to_id=approver.id, due_date="2030-02-01")

        assert item.status == "Pending"
        assert item.priority == "Medium"
        assert item.created_by_id == person.id
        assert item.created_date == date.today()
        assert item.to_dict()["assigned_to_name"] == "Bob Approver"

    def test_description_required(self, action_log, person):
        with pytest.raises(ValidationError) as exc:
            action_log_service.create_item(action_log.id, {"notes": "n"}, actor_id=person.id)
        assert exc.value.required is True

    def test_work_queue_order(self, action_log, person):
        today = date.today()
        _item(action_log, person, action_description="done", status="Completed")
        _item(action_log, person, action_description="later", due_date=(today + timedelta(days=9)).isoformat())
        _item(action_log, person, action_description="parked", status="On Hold")
        _item(action_log, person, action_description="sooner", due_date=(today + timedelta(days=1)).isoformat())

        assert [i.action_description for i in action_log_service.list_items(action_log.id)] == [
            "sooner", "later", "parked", "done",
        ]
        assert [i.action_description for i in action_log_service.list_items(action_log.id, status="On Hold")] == [
            "parked",
        ]

    def test_complete_stamps_date_and_reopen_clears_it(self, action_log, person):
        item = _item(action_log, person)

        done = action_log_service.update_item(action_log.id, item.id, {"status": "Completed"})
        assert done.completed_date == date.today()

        reopened = action_log_service.update_item(action_log.id, item.id, {"status": "In Progress"})
        assert reopened.completed_date is None

    def test_counts_on_log(self, action_log, person):
        _item(action_log, person, status="Completed")
        _item(action_log, person, status="In Progress")
        _item(action_log, person, status="Cancelled")

        data = _db.session.get(ActionLog, action_log.id).to_dict()
        assert (data["total_items"], data["completed_items"], data["active_items"]) == (3, 1, 1)

    def test_item_scoped_to_its_log(self, project, action_log, person):
        other = action_log_service.create_action_log({"project_id": project.id, "log_name": "Other"})
        item = _item(action_log, person)

        with pytest.raises(NotFoundError):
            action_log_service.update_item(other.id, item.id, {"notes": "x"})

    def test_invalid_priority(self, action_log, person):
        item = _item(action_log, person)
        with pytest.raises(ValidationError):
            action_log_service.update_item(action_log.id, item.id, {"priority": "Urgent"})

    def test_delete_item(self, action_log, person):
        item = _item(action_log, person)
        action_log_service.delete_item(action_log.id, item.id)
        assert ActionLogItem.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# SERVICE — REQUIREMENTS
# ═════════════════════════════════════════════════════════════════════════════


class TestActionRequirements:
    def test_ordered_by_sequence(self, action_log, person):
        item = _item(action_log, person)
        for text, seq in (("second", 2), ("unordered", None), ("first", 1)):
            action_log_service.create_requirement(
                action_log.id, item.id, {"requirement_description": text, "sequence_order": seq},
            )

        reqs = action_log_service.list_requirements(action_log.id, item.id)
        assert [r.requirement_description for r in reqs] == ["first", "second", "unordered"]

    def test_complete_records_who_and_when(self, action_log, person, approver):
        item = _item(action_log, person)
        req = action_log_service.create_requirement(
            action_log.id, item.id, {"requirement_description": "Check SQL injection prevention"},
        )

        done = action_log_service.update_requirement(
            action_log.id, item.id, req.id, {"status": "Completed"}, actor_id=approver.id,
        )
        assert done.completed_by_id == approver.id
        assert done.completed_date == date.today()
        assert done.to_dict()["completed_by_name"] == "Bob Approver"

        undone = action_log_service.update_requirement(action_log.id, item.id, req.id, {"status": "Pending"})
        assert undone.completed_by_id is None
        assert undone.completed_date is None

    def test_explicit_completer(self, action_log, person, approver):
        item = _item(action_log, person)
        req = action_log_service.create_requirement(action_log.id, item.id, {"requirement_description": "r"})

        done = action_log_service.update_requirement(
            action_log.id, item.id, req.id, {"status": "Completed", "completed_by_id": person.id},
            actor_id=approver.id,
        )
        assert done.completed_by_id == person.id

    def test_bad_sequence_order(self, action_log, person):
        item = _item(action_log, person)
        with pytest.raises(ValidationError):
            action_log_service.create_requirement(
                action_log.id, item.id, {"requirement_description": "r", "sequence_order": "first"},
            )

    def test_requirement_scoped_to_item(self, action_log, person):
        first = _item(action_log, person)
        second = _item(action_log, person)
        req = action_log_service.create_requirement(action_log.id, first.id, {"requirement_description": "r"})

        with pytest.raises(NotFoundError):
            action_log_service.delete_requirement(action_log.id, second.id, req.id)
        assert ActionRequirement.query.count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


class TestActionLogApi:
    def test_full_cycle(self, client, project, person):
        res = client.post("/api/v1/action-logs", json={
            "project_id": project.id, "log_name": "Weekly review", "actor_id": person.id,
        })
        assert res.status_code == 201
        log_id = res.get_json()["id"]

        res = client.post(f"/api/v1/action-logs/{log_id}/items", json={
            "action_description": "Review security audit findings", "priority": "Critical",
            "due_date": "2030-03-01", "actor_id": person.id,
        })
        assert res.status_code == 201
        item_id = res.get_json()["id"]

        base = f"/api/v1/action-logs/{log_id}/items/{item_id}/requirements"
        res = client.post(base, json={"requirement_description": "Review auth", "sequence_order": 1})
        assert res.status_code == 201
        req_id = res.get_json()["id"]

        res = client.put(f"{base}/{req_id}", json={"status": "Completed", "actor_id": person.id})
        assert res.get_json()["completed_by_name"] == "Alice Analyst"

        res = client.put(f"/api/v1/action-logs/{log_id}/items/{item_id}", json={"status": "Completed"})
        assert res.get_json()["completed_date"] == date.today().isoformat()

        detail = client.get(f"/api/v1/action-logs/{log_id}").get_json()
        assert detail["project_code"] == "PRJ-001"
        assert detail["completed_items"] == 1
        assert detail["items"][0]["requirements"][0]["status"] == "Completed"

        listing = client.get(f"/api/v1/action-logs?project_id={project.id}&search=weekly").get_json()
        assert listing["total"] == 1

        assert client.delete(f"/api/v1/action-logs/{log_id}").status_code == 200
        assert client.get(f"/api/v1/action-logs/{log_id}").status_code == 404

    def test_empty_update_400(self, client, project):
        log_id = client.post("/api/v1/action-logs", json={
            "project_id": project.id, "log_name": "x",
        }).get_json()["id"]
        res = client.put(f"/api/v1/action-logs/{log_id}", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_duplicate_number_409(self, client, project):
        body = {"project_id": project.id, "log_name": "x", "log_number": "MEET-1"}
        assert client.post("/api/v1/action-logs", json=body).status_code == 201
        assert client.post("/api/v1/action-logs", json=body).status_code == 409

    def test_missing_item_404(self, client, project):
        log_id = client.post("/api/v1/action-logs", json={
            "project_id": project.id, "log_name": "x",
        }).get_json()["id"]
        assert client.put(f"/api/v1/action-logs/{log_id}/items/77", json={"notes": "n"}).status_code == 404
