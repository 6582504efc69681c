"""
Project Tracker
Tests — projects, people and project reports API.
"""

from datetime import date, timedelta

from app.services import action_log_service, action_service, change_approval, closure_gate, workflow_service


def _entity(entity_type, project, person, **kw):
    data = {"title": "t", "description": "d"}
    data.update(kw)
    return workflow_service.create_entity(entity_type, project.id, data, person.id)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


class TestProjects:
    def test_create_and_get(self, client):
        res = client.post("/api/v1/projects", json={"project_code": "erp-2", "project_name": "ERP rollout"})
        assert res.status_code == 201
        data = res.get_json()
        assert data["project_code"] == "ERP-2"
        assert data["status"] == "Planning"

        res = client.get(f"/api/v1/projects/{data['id']}")
        assert res.get_json()["project_name"] == "ERP rollout"

    def test_required_fields(self, client):
        res = client.post("/api/v1/projects", json={"project_name": "No code"})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"project_code": "required"}

    def test_duplicate_code_409(self, client, project):
        res = client.post("/api/v1/projects", json={"project_code": "prj-001", "project_name": "Dup"})
        assert res.status_code == 409

    def test_update_and_list(self, client, project):
        res = client.put(f"/api/v1/projects/{project.id}", json={"status": "On Hold", "end_date": "2031-12-31"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "On Hold"

        data = client.get("/api/v1/projects?status=On%20Hold").get_json()
        assert data["total"] == 1

    def test_end_before_start_400(self, client, project):
        res = client.put(f"/api/v1/projects/{project.id}",
                         json={"start_date": "2030-06-01", "end_date": "2030-01-01"})
        assert res.status_code == 400

    def test_delete_empty_project(self, client, project):
        assert client.delete(f"/api/v1/projects/{project.id}").status_code == 200
        assert client.get(f"/api/v1/projects/{project.id}").status_code == 404

    def test_delete_refused_while_owning_entities(self, client, project, person):
        _entity("issue", project, person)
        res = client.delete(f"/api/v1/projects/{project.id}")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_delete_refused_while_owning_action_logs(self, client, project):
        action_log_service.create_action_log({"project_id": project.id, "log_name": "Kick-off"})
        res = client.delete(f"/api/v1/projects/{project.id}")
        assert res.status_code == 409
        assert "1 action_log" in res.get_json()["error"]


# ═════════════════════════════════════════════════════════════════════════════
# PEOPLE
# ═════════════════════════════════════════════════════════════════════════════


class TestPeople:
    def test_create_and_search(self, client, person):
        res = client.post("/api/v1/people", json={"username": "carol", "full_name": "Carol Sponsor"})
        assert res.status_code == 201

        data = client.get("/api/v1/people?search=sponsor").get_json()
        assert [p["username"] for p in data["items"]] == ["carol"]
        assert client.get("/api/v1/people").get_json()["total"] == 2

    def test_duplicate_username_409(self, client, person):
        res = client.post("/api/v1/people", json={"username": "alice", "full_name": "Other Alice"})
        assert res.status_code == 409

    def test_deactivate(self, client, person):
        res = client.put(f"/api/v1/people/{person.id}", json={"is_active": False})
        assert res.get_json()["is_active"] is False
        assert client.get("/api/v1/people?active=true").get_json()["total"] == 0

    def test_missing_person_404(self, client):
        assert client.get("/api/v1/people/999").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═════════════════════════════════════════════════════════════════════════════


class TestReports:
    def test_summary(self, client, project, person, approver):
        issue = _entity("issue", project, person)
        _entity("issue", project, person)
        workflow_service.update_entity("issue", issue.id, {"status": "Resolved"}, person.id)

        risk = _entity("risk", project, person, probability="Very High", impact="Very High")
        _entity("risk", project, person, probability="Low", impact="Low")
        closure_gate.request_closure("risk", risk.id, person.id)

        action_service.create_action(
            "issue", issue.id,
            {"description": "late", "due_date": (date.today() - timedelta(days=2)).isoformat()},
            person.id,
        )
        action_service.create_action("risk", risk.id, {"description": "done", "status": "Completed"}, person.id)

        res = client.get(f"/api/v1/projects/{project.id}/reports/summary")
        assert res.status_code == 200
        data = res.get_json()

        assert data["issues"] == {"total": 2, "open": 1, "by_status": {"Open": 1, "Resolved": 1}}
        assert data["risks"]["total"] == 2
        assert data["changes"]["total"] == 0
        assert data["risk_bands"] == {"low": 1, "medium": 0, "high": 0, "critical": 1}
        assert data["actions"] == {"total": 2, "open": 1, "overdue": 1}
        assert data["pending_approvals"] == {"closures": 1, "changes_under_review": 0}

    def test_risk_matrix(self, client, project, person):
        _entity("risk", project, person, probability="Medium", impact="Very High")
        _entity("risk", project, person, probability="Medium", impact="Very High")
        _entity("risk", project, person, probability="Very Low", impact="Low")

        data = client.get(f"/api/v1/projects/{project.id}/reports/risk-matrix").get_json()
        assert data["counts"][2][4] == 2
        assert data["counts"][0][1] == 1
        assert sum(sum(row) for row in data["counts"]) == 3
        assert data["matrix"][2][4][0]["risk_score"] == 15
        assert data["labels"]["probability"][0] == "Very Low"

    def test_report_missing_project_404(self, client):
        assert client.get("/api/v1/projects/999/reports/summary").status_code == 404

    def test_quick_stats(self, client, project, person, approver):
        _entity("issue", project, person, priority="Critical")
        done = _entity("issue", project, person)
        workflow_service.update_entity("issue", done.id, {"status": "Closed"}, person.id)

        risk = _entity("risk", project, person, probability="Very High", impact="High")
        _entity("risk", project, person, probability="Low", impact="Low")
        closure_gate.request_closure("risk", risk.id, person.id)

        change = _entity("change", project, person)
        change_approval.request_review(change.id, person.id)

        _entity("escalation", project, person)
        _entity("fault", project, person, severity="Blocking")
        _entity("fault", project, person, severity="Minor")

        action_log = action_log_service.create_action_log({"project_id": project.id, "log_name": "Review"})
        action_log_service.create_item(action_log.id, {"action_description": "open"})
        action_log_service.create_item(action_log.id, {"action_description": "done", "status": "Completed"})

        res = client.get(f"/api/v1/dashboard/quick-stats?project_id={project.id}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["open_issues"] == 1
        assert data["critical_issues"] == 1
        assert data["active_risks"] == 2
        assert data["high_risks"] == 1
        assert data["pending_change_approvals"] == 1
        assert data["pending_closures"] == 1
        assert data["active_escalations"] == 1
        assert data["critical_faults"] == 1
        assert data["open_action_log_items"] == 1

        # Without a project filter the same counters cover every project.
        assert client.get("/api/v1/dashboard/quick-stats").get_json()["open_issues"] == 1

    def test_quick_stats_missing_project_404(self, client):
        assert client.get("/api/v1/dashboard/quick-stats?project_id=999").status_code == 404
