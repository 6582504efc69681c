"""Read-only project reports.

- project_summary: per-type totals, open counts and status breakdown,
  risk bands, action totals, pending approvals
- risk_matrix: 5×5 probability × impact grid of open risks
- pending_approvals: closure requests awaiting a decision and changes
  under review
- quick_stats: lightweight open-work counters for dashboards that poll
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy import func

from app.models import db
from app.models.action_log import ActionLog, ActionLogItem
from app.models.project import Project
from app.models.workflow import (
    ACTION_OPEN_STATUSES,
    ENTITY_MODELS,
    RISK_LEVELS,
    ActionItem,
    Change,
    Fault,
    Issue,
    Risk,
    risk_band,
    risk_ordinal,
)
from app.services.closure_gate import list_pending_closures
from app.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

# Statuses that take an entity off the open list.
DONE_STATUSES = {
    "issue": ("Resolved", "Closed", "Cancelled"),
    "risk": ("Closed",),
    "change": ("Rejected", "Closed"),
    "escalation": ("Resolved", "Closed"),
    "fault": ("Resolved", "Closed"),
}

# Scores above the medium band (high and critical).
HIGH_RISK_THRESHOLD = 15


def _open_risks(project_id):
    return Risk.query.filter(
        Risk.project_id == project_id,
        Risk.status.notin_(DONE_STATUSES["risk"]),
    )


def _action_counts(project_id):
    total = open_ = overdue = 0
    today = date.today()
    for key, model in ENTITY_MODELS.items():
        base = (
            db.session.query(ActionItem)
            .join(model, model.id == ActionItem.entity_id)
            .filter(ActionItem.entity_type == key, model.project_id == project_id)
        )
        total += base.count()
        open_q = base.filter(ActionItem.status.in_(ACTION_OPEN_STATUSES))
        open_ += open_q.count()
        overdue += open_q.filter(ActionItem.due_date < today).count()
    return {"total": total, "open": open_, "overdue": overdue}


def pending_approvals(project_id=None):
    """Closure requests awaiting a decision plus changes under review."""
    q = Change.query.filter(Change.status == "Under Review")
    if project_id is not None:
        q = q.filter(Change.project_id == project_id)
    return {
        "closures": list_pending_closures(project_id),
        "changes_under_review": [c.to_dict() for c in q.order_by(Change.id).all()],
    }


def project_summary(project_id):
    """Aggregate counts for one project.

    Returns:
        dict keyed by entity type with total / open / by_status, plus
        risk_bands, actions and pending_approvals sections.
    """
    project = get_or_raise(Project, project_id, "Project")
    result = {"project_id": project.id, "project_code": project.project_code}

    for key, model in ENTITY_MODELS.items():
        rows = (
            db.session.query(model.status, func.count(model.id))
            .filter(model.project_id == project.id)
            .group_by(model.status)
            .all()
        )
        by_status = {status: n for status, n in rows}
        total = sum(by_status.values())
        done = sum(n for status, n in by_status.items() if status in DONE_STATUSES[key])
        result[f"{key}s"] = {
            "total": total,
            "open": total - done,
            "by_status": by_status,
        }

    bands = {"low": 0, "medium": 0, "high": 0, "critical": 0}
    for (score,) in _open_risks(project.id).with_entities(Risk.risk_score).all():
        bands[risk_band(score)] += 1
    result["risk_bands"] = bands

    result["actions"] = _action_counts(project.id)

    pending = pending_approvals(project.id)
    result["pending_approvals"] = {
        "closures": len(pending["closures"]),
        "changes_under_review": len(pending["changes_under_review"]),
    }
    return result


def risk_matrix(project_id):
    """5×5 grid of open risks: rows are probability, columns impact (Very Low first)."""
    project = get_or_raise(Project, project_id, "Project")

    matrix = [[[] for _ in range(5)] for _ in range(5)]
    for r in _open_risks(project.id).order_by(Risk.risk_score.desc(), Risk.id).all():
        p = risk_ordinal(r.probability) - 1
        i = risk_ordinal(r.impact) - 1
        matrix[p][i].append({
            "id": r.id, "number": r.number,
            "title": r.title, "risk_score": r.risk_score,
            "risk_band": risk_band(r.risk_score),
        })

    return {
        "project_id": project.id,
        "matrix": matrix,
        "counts": [[len(cell) for cell in row] for row in matrix],
        "labels": {
            "probability": list(RISK_LEVELS),
            "impact": list(RISK_LEVELS),
        },
    }


def quick_stats(project_id=None):
    """Headline open-work counters, across all projects or for one.

    Raises:
        NotFoundError: ``project_id`` given but no such project.
    """
    if project_id is not None:
        get_or_raise(Project, project_id, "Project")

    def _open(key):
        model = ENTITY_MODELS[key]
        q = model.query.filter(model.status.notin_(DONE_STATUSES[key]))
        if project_id is not None:
            q = q.filter(model.project_id == project_id)
        return q

    issues = _open("issue")
    risks = _open("risk")
    faults = _open("fault")
    changes = Change.query.filter(Change.status == "Under Review")
    if project_id is not None:
        changes = changes.filter(Change.project_id == project_id)

    return {
        "project_id": project_id,
        "open_issues": issues.count(),
        "critical_issues": issues.filter(Issue.priority == "Critical").count(),
        "active_risks": risks.count(),
        "high_risks": risks.filter(Risk.risk_score > HIGH_RISK_THRESHOLD).count(),
        "pending_change_approvals": changes.count(),
        "pending_closures": len(list_pending_closures(project_id)),
        "active_escalations": _open("escalation").count(),
        "critical_faults": faults.filter(Fault.severity.in_(("Blocking", "Critical"))).count(),
        "open_action_log_items": _open_action_log_items(project_id),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def _open_action_log_items(project_id):
    q = (
        db.session.query(ActionLogItem)
        .join(ActionLog, ActionLog.id == ActionLogItem.action_log_id)
        .filter(ActionLogItem.status.in_(ACTION_OPEN_STATUSES))
    )
    if project_id is not None:
        q = q.filter(ActionLog.project_id == project_id)
    return q.count()
