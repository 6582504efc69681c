"""
Project Tracker
Tests — closure approval gate.

A risk or change reaches Closed only through request → approve. Covers the
request / approve / reject / re-request cycle, the single-pending rule,
preconditions, atomicity of approval and the audit entries written.
"""

from unittest import mock

import pytest

from app.core.exceptions import (
    ClosureNotAuthorizedError,
    InvalidStateError,
    NotFoundError,
    StaleVersionError,
    ValidationError,
)
from app.models import db as _db
from app.models.audit import WorkflowLog
from app.models.closure import ClosureRequest
from app.models.workflow import Change, Risk
from app.services import closure_gate, workflow_service


@pytest.fixture()
def risk(project, person):
    return workflow_service.create_entity(
        "risk", project.id,
        {"title": "Key supplier insolvency", "description": "Single-source supplier",
         "probability": "Medium", "impact": "Very High"},
        actor_id=person.id,
    )


def _log_types(entity_type, entity_id):
    rows = (
        WorkflowLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(WorkflowLog.id).all()
    )
    return [r.log_type for r in rows]


class TestClosureLifecycle:
    def test_request_then_approve_closes_risk(self, risk, person, approver):
        assert risk.risk_score == 15

        req = closure_gate.request_closure("risk", risk.id, person.id, "Supplier replaced")
        assert req.resolution == "Pending"
        assert closure_gate.closure_status("risk", risk.id)["resolution"] == "Pending"
        assert _db.session.get(Risk, risk.id).status == "Identified"

        closure_gate.approve_closure("risk", risk.id, approver.id, "Agreed")

        reloaded = _db.session.get(Risk, risk.id)
        assert reloaded.status == "Closed"
        state = closure_gate.closure_status("risk", risk.id)
        assert state["resolution"] == "Approved"
        assert state["current_request"]["decided_by_id"] == approver.id
        assert state["current_request"]["decision_comments"] == "Agreed"

    def test_approval_writes_single_status_entry(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id, "done")
        closure_gate.approve_closure("risk", risk.id, approver.id)

        closing = WorkflowLog.query.filter_by(
            entity_type="risk", entity_id=risk.id, new_status="Closed",
        ).all()
        assert len(closing) == 1
        assert closing[0].log_type == "Closure Approved"
        assert closing[0].previous_status == "Identified"
        assert closing[0].logged_by_id == approver.id
        assert _log_types("risk", risk.id) == ["Created", "Closure Requested", "Closure Approved"]

    def test_reject_keeps_status_and_allows_new_request(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id, "premature")
        closure_gate.reject_closure("risk", risk.id, approver.id, "Mitigation not verified")

        assert _db.session.get(Risk, risk.id).status == "Identified"
        assert closure_gate.closure_status("risk", risk.id)["resolution"] == "Rejected"

        with pytest.raises(ClosureNotAuthorizedError):
            workflow_service.update_entity("risk", risk.id, {"status": "Closed"}, person.id)

        closure_gate.request_closure("risk", risk.id, person.id, "verified now")
        closure_gate.approve_closure("risk", risk.id, approver.id)

        state = closure_gate.closure_status("risk", risk.id)
        assert state["resolution"] == "Approved"
        assert [h["resolution"] for h in state["history"]] == ["Approved", "Rejected"]
        assert _db.session.get(Risk, risk.id).status == "Closed"

    def test_no_request_state(self, risk):
        state = closure_gate.closure_status("risk", risk.id)
        assert state["resolution"] == "NoRequest"
        assert state["current_request"] is None
        assert state["history"] == []

    def test_reopen_after_closure(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)
        closure_gate.approve_closure("risk", risk.id, approver.id)

        workflow_service.update_entity("risk", risk.id, {"status": "Assessed"}, person.id)
        assert _db.session.get(Risk, risk.id).status == "Assessed"

        closure_gate.request_closure("risk", risk.id, person.id, "closing again")
        assert closure_gate.closure_status("risk", risk.id)["resolution"] == "Pending"

    def test_direct_close_refused_after_reopen(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)
        closure_gate.approve_closure("risk", risk.id, approver.id)
        workflow_service.update_entity("risk", risk.id, {"status": "Assessed"}, person.id)

        # The earlier approval was spent on the first closure.
        with pytest.raises(ClosureNotAuthorizedError):
            workflow_service.update_entity("risk", risk.id, {"status": "Closed"}, person.id)
        assert _db.session.get(Risk, risk.id).status == "Assessed"
        assert ClosureRequest.query.filter_by(entity_type="risk", entity_id=risk.id).count() == 1


class TestClosureRules:
    def test_direct_close_refused_without_request(self, risk, person):
        with pytest.raises(ClosureNotAuthorizedError):
            workflow_service.update_entity("risk", risk.id, {"status": "Closed"}, person.id)

    def test_direct_close_refused_while_pending(self, risk, person):
        closure_gate.request_closure("risk", risk.id, person.id)
        with pytest.raises(ClosureNotAuthorizedError):
            workflow_service.update_entity("risk", risk.id, {"status": "Closed"}, person.id)

    def test_second_pending_request_refused(self, risk, person):
        closure_gate.request_closure("risk", risk.id, person.id, "first")

        with pytest.raises(InvalidStateError) as exc:
            closure_gate.request_closure("risk", risk.id, person.id, "second")
        assert exc.value.current_state == "Pending"

        assert ClosureRequest.query.filter_by(entity_type="risk", entity_id=risk.id).count() == 1
        assert _log_types("risk", risk.id).count("Closure Requested") == 1

    def test_request_on_closed_entity_refused(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)
        closure_gate.approve_closure("risk", risk.id, approver.id)

        with pytest.raises(InvalidStateError):
            closure_gate.request_closure("risk", risk.id, person.id)

    def test_approve_without_pending_request(self, risk, approver):
        with pytest.raises(InvalidStateError) as exc:
            closure_gate.approve_closure("risk", risk.id, approver.id)
        assert exc.value.current_state == "NoRequest"

    def test_reject_after_approval_refused(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)
        closure_gate.approve_closure("risk", risk.id, approver.id)
        with pytest.raises(InvalidStateError):
            closure_gate.reject_closure("risk", risk.id, approver.id, "too late")

    def test_issue_has_no_closure_workflow(self, project, person):
        issue = workflow_service.create_entity("issue", project.id, {"title": "t", "description": "d"}, person.id)
        with pytest.raises(ValidationError):
            closure_gate.request_closure("issue", issue.id, person.id)

    def test_missing_entity(self, person):
        with pytest.raises(NotFoundError):
            closure_gate.request_closure("risk", 31337, person.id)

    def test_stale_version_on_request(self, risk, person):
        workflow_service.update_entity("risk", risk.id, {"title": "Renamed"}, person.id)
        with pytest.raises(StaleVersionError):
            closure_gate.request_closure("risk", risk.id, person.id, version=1)
        assert ClosureRequest.query.count() == 0

    def test_change_must_be_implemented(self, project, person, approver):
        from app.services import change_approval

        change = workflow_service.create_entity(
            "change", project.id, {"title": "Add SSO", "description": "Scope change"}, person.id,
        )
        with pytest.raises(InvalidStateError) as exc:
            closure_gate.request_closure("change", change.id, person.id)
        assert exc.value.current_state == "Requested"

        change_approval.request_review(change.id, person.id)
        change_approval.approve_change(change.id, approver.id)
        workflow_service.update_entity("change", change.id, {"status": "Implemented"}, person.id)

        closure_gate.request_closure("change", change.id, person.id, "Live since Monday")
        closure_gate.approve_closure("change", change.id, approver.id)
        assert _db.session.get(Change, change.id).status == "Closed"

        workflow_service.update_entity("change", change.id, {"status": "Implemented"}, person.id)
        with pytest.raises(ClosureNotAuthorizedError):
            workflow_service.update_entity("change", change.id, {"status": "Closed"}, person.id)
        assert _db.session.get(Change, change.id).status == "Implemented"


class TestClosureAtomicity:
    def test_failed_log_write_leaves_request_pending(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)

        with mock.patch(
            "app.services.workflow_service.write_log",
            side_effect=RuntimeError("log store unavailable"),
        ):
            with pytest.raises(RuntimeError):
                closure_gate.approve_closure("risk", risk.id, approver.id)

        assert _db.session.get(Risk, risk.id).status == "Identified"
        latest = ClosureRequest.latest_for("risk", risk.id)
        assert latest.resolution == "Pending"
        assert latest.decided_at is None
        assert "Closure Approved" not in _log_types("risk", risk.id)

    def test_closed_entity_has_earlier_approval(self, risk, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id)
        closure_gate.approve_closure("risk", risk.id, approver.id)
        _db.session.expire_all()

        entity = _db.session.get(Risk, risk.id)
        latest = ClosureRequest.latest_for("risk", risk.id)
        assert entity.status == "Closed"
        assert latest.resolution == "Approved"
        assert latest.decided_at <= entity.updated_at


class TestPendingList:
    def test_lists_pending_across_types(self, risk, project, person, approver):
        closure_gate.request_closure("risk", risk.id, person.id, "please")
        other = workflow_service.create_entity(
            "risk", project.id, {"title": "Other", "description": "d"}, person.id,
        )
        closure_gate.request_closure("risk", other.id, person.id)
        closure_gate.reject_closure("risk", other.id, approver.id)

        pending = closure_gate.list_pending_closures(project.id)
        assert [p["entity_id"] for p in pending] == [risk.id]
        assert pending[0]["number"] == risk.number
        assert closure_gate.list_pending_closures(project.id + 100) == []
