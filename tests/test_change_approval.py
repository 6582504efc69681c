"""Tests — change approval workflow (request review → approve / reject)."""

from datetime import date

import pytest

from app.core.exceptions import InvalidStateError, TransitionNotAuthorizedError
from app.models import db as _db
from app.models.audit import WorkflowLog
from app.models.workflow import Change
from app.services import change_approval, workflow_service


@pytest.fixture()
def change(project, person):
    return workflow_service.create_entity(
        "change", project.id,
        {"title": "Extend go-live by two weeks", "description": "Schedule change",
         "change_type": "Schedule", "schedule_impact_days": 14, "cost_impact": "12500.50"},
        actor_id=person.id,
    )


class TestChangeApproval:
    def test_full_approval_path(self, change, person, approver):
        change_approval.request_review(change.id, person.id)
        assert _db.session.get(Change, change.id).status == "Under Review"

        change_approval.approve_change(change.id, approver.id, "Sponsor agreed")

        reloaded = _db.session.get(Change, change.id)
        assert reloaded.status == "Approved"
        assert reloaded.approved_by_id == approver.id
        assert reloaded.approval_date == date.today()
        assert reloaded.to_dict()["cost_impact"] == 12500.5

        entries = (
            WorkflowLog.query.filter_by(entity_type="change", entity_id=change.id)
            .order_by(WorkflowLog.id).all()
        )
        assert [(e.log_type, e.previous_status, e.new_status) for e in entries] == [
            ("Created", None, "Requested"),
            ("Review", "Requested", "Under Review"),
            ("Approval", "Under Review", "Approved"),
        ]
        assert entries[-1].comments == "Sponsor agreed"

    def test_reject(self, change, person, approver):
        change_approval.request_review(change.id, person.id)
        change_approval.reject_change(change.id, approver.id, "No budget")

        reloaded = _db.session.get(Change, change.id)
        assert reloaded.status == "Rejected"
        assert reloaded.approved_by_id is None
        assert workflow_service.list_log("change", change.id)[0].comments == "No budget"

    def test_approve_requires_review(self, change, approver):
        with pytest.raises(InvalidStateError) as exc:
            change_approval.approve_change(change.id, approver.id)
        assert exc.value.current_state == "Requested"
        assert _db.session.get(Change, change.id).status == "Requested"

    def test_review_only_from_requested(self, change, person):
        change_approval.request_review(change.id, person.id)
        with pytest.raises(InvalidStateError):
            change_approval.request_review(change.id, person.id)

    def test_direct_approval_refused(self, change, person):
        change_approval.request_review(change.id, person.id)
        with pytest.raises(TransitionNotAuthorizedError):
            workflow_service.update_entity("change", change.id, {"status": "Approved"}, person.id)

    def test_implemented_stamps_date(self, change, person, approver):
        change_approval.request_review(change.id, person.id)
        change_approval.approve_change(change.id, approver.id)
        workflow_service.update_entity("change", change.id, {"status": "Implemented"}, person.id)

        assert _db.session.get(Change, change.id).implementation_date == date.today()
