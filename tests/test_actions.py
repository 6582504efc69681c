"""Tests — action items under workflow entities."""

from datetime import date, timedelta

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.audit import WorkflowLog
from app.models.workflow import ActionItem
from app.services import action_service, workflow_service


@pytest.fixture()
def risk(project, person):
    return workflow_service.create_entity(
        "risk", project.id, {"title": "Data migration slips", "description": "Volume unknown"}, person.id,
    )


def _status_history(entity_id):
    return [
        e.new_status for e in
        WorkflowLog.query.filter_by(entity_type="risk", entity_id=entity_id)
        .filter(WorkflowLog.new_status.isnot(None)).order_by(WorkflowLog.id)
    ]


class TestActionItems:
    def test_create_defaults_and_log(self, risk, person, approver):
        action = action_service.create_action(
            "risk", risk.id,
            {"description": "Run trial load", "assigned_to_id": approver.id, "due_date": "2030-01-31"},
            person.id,
        )

        assert action.status == "Pending"
        assert action.priority == "Medium"
        assert action.created_by_id == person.id
        assert action.due_date == date(2030, 1, 31)

        entry = workflow_service.list_log("risk", risk.id)[0]
        assert entry.log_type == "Action"
        assert entry.comments == "Action added: Run trial load"
        assert entry.new_status is None

    def test_description_required(self, risk, person):
        with pytest.raises(ValidationError) as exc:
            action_service.create_action("risk", risk.id, {"notes": "x"}, person.id)
        assert exc.value.required is True

    def test_parent_must_exist(self, person):
        with pytest.raises(NotFoundError):
            action_service.create_action("issue", 555, {"description": "x"}, person.id)

    def test_invalid_status_rejected(self, risk, person):
        action = action_service.create_action("risk", risk.id, {"description": "x"}, person.id)
        with pytest.raises(ValidationError):
            action_service.update_action("risk", risk.id, action.id, {"status": "Done"}, person.id)

    def test_complete_stamps_date_and_logs(self, risk, person):
        action = action_service.create_action("risk", risk.id, {"description": "x"}, person.id)
        updated = action_service.update_action("risk", risk.id, action.id, {"status": "Completed"}, person.id)

        assert updated.completed_date == date.today()
        assert workflow_service.list_log("risk", risk.id)[0].comments == (
            f"Action {action.id} status changed from Pending to Completed"
        )
        # Action entries never enter the entity's status history.
        assert _status_history(risk.id) == ["Identified"]

    def test_action_scoped_to_parent(self, risk, project, person):
        other = workflow_service.create_entity(
            "risk", project.id, {"title": "Other", "description": "d"}, person.id,
        )
        action = action_service.create_action("risk", risk.id, {"description": "x"}, person.id)

        with pytest.raises(NotFoundError):
            action_service.update_action("risk", other.id, action.id, {"notes": "n"}, person.id)

    def test_list_ordered_by_due_date(self, risk, person):
        today = date.today()
        action_service.create_action("risk", risk.id, {"description": "undated"}, person.id)
        action_service.create_action(
            "risk", risk.id, {"description": "later", "due_date": (today + timedelta(days=9)).isoformat()}, person.id,
        )
        action_service.create_action(
            "risk", risk.id, {"description": "sooner", "due_date": (today + timedelta(days=1)).isoformat()}, person.id,
        )

        assert [a.description for a in action_service.list_actions("risk", risk.id)] == [
            "sooner", "later", "undated",
        ]
        assert action_service.list_actions("risk", risk.id, status="Completed") == []

    def test_overdue_flag(self, risk, person):
        action = action_service.create_action(
            "risk", risk.id,
            {"description": "late", "due_date": (date.today() - timedelta(days=1)).isoformat()},
            person.id,
        )
        assert action.to_dict()["is_overdue"] is True

    def test_delete_logs_removal(self, risk, person):
        action = action_service.create_action("risk", risk.id, {"description": "obsolete"}, person.id)
        action_service.delete_action("risk", risk.id, action.id, person.id)

        assert ActionItem.query.count() == 0
        assert workflow_service.list_log("risk", risk.id)[0].comments == "Action removed: obsolete"
