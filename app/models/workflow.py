"""
Project Tracker
Workflow domain models.

Models:
    - Issue: current problems requiring resolution
    - Risk: risks with probability × impact scoring
    - Change: change requests with review and approval
    - Escalation: items raised to a higher authority
    - Fault: defects reported against project deliverables
    - ActionItem: remediation / mitigation work linked to one workflow entity

Every workflow entity shares WorkflowEntityMixin: a human-readable number
unique per type, a status from the type's vocabulary, the people who raised
and own it, and a version counter used for optimistic concurrency.

Architecture chain: Project → Issue / Risk / Change / Escalation / Fault → ActionItem
"""

from datetime import date, datetime, timezone

from sqlalchemy.orm import declared_attr

from app.core.exceptions import ValidationError
from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ENTITY_TYPES = ("issue", "risk", "change", "escalation", "fault")

# First value of each tuple is the initial status.
ISSUE_STATUSES = ("Open", "In Progress", "Resolved", "Closed", "Cancelled")
RISK_STATUSES = ("Identified", "Assessed", "Mitigated", "Closed", "Occurred")
CHANGE_STATUSES = ("Requested", "Under Review", "Approved", "Rejected", "Implemented", "Closed")
ESCALATION_STATUSES = ("Raised", "Under Review", "Resolved", "Closed")
FAULT_STATUSES = ("Reported", "Investigating", "In Progress", "Resolved", "Closed", "Deferred")

CLOSED_STATUS = "Closed"

PRIORITY_LEVELS = ("Low", "Medium", "High", "Critical")
FAULT_SEVERITIES = ("Minor", "Major", "Critical", "Blocking")
RISK_LEVELS = ("Very Low", "Low", "Medium", "High", "Very High")
CHANGE_TYPES = ("Scope", "Schedule", "Cost", "Quality", "Resource", "Other")

ACTION_STATUSES = ("Pending", "In Progress", "Completed", "Cancelled", "On Hold")
ACTION_OPEN_STATUSES = ("Pending", "In Progress", "On Hold")


# ── Risk Scoring Matrix ─────────────────────────────────────────────────────

_RISK_ORDINALS = {label: idx for idx, label in enumerate(RISK_LEVELS, start=1)}

RISK_BANDS = (
    (6, "low"),
    (15, "medium"),
    (20, "high"),
    (25, "critical"),
)


def risk_ordinal(label: str) -> int:
    """Map a probability / impact label to 1-5."""
    try:
        return _RISK_ORDINALS[label]
    except KeyError:
        raise ValidationError(
            f"Invalid risk level {label!r}. Must be one of: {', '.join(RISK_LEVELS)}",
            details={"level": label},
        ) from None


def calculate_risk_score(probability: str, impact: str) -> int:
    """
    Calculate risk score: ordinal(probability) × ordinal(impact).
    Range: 1–25.
    """
    return risk_ordinal(probability) * risk_ordinal(impact)


def risk_band(score: int) -> str:
    """
    Reporting band for a risk score.
      1-6   → low
      7-15  → medium
      16-20 → high
      21-25 → critical
    """
    for upper, band in RISK_BANDS:
        if score <= upper:
            return band
    return "critical"


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
#  SHARED COLUMNS
# ═══════════════════════════════════════════════════════════════════════════

class WorkflowEntityMixin:
    """Columns and serialisation shared by every workflow entity table."""

    entity_type = None

    # Never reuse ids on SQLite: the audit trail outlives deleted entities.
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(50), unique=True, nullable=False, comment="e.g. RISK-0001")
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, index=True)
    raised_date = db.Column(db.Date, nullable=False, default=date.today)
    version = db.Column(db.Integer, nullable=False, default=1,
                        comment="Bumped on every mutation; optimistic concurrency")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @declared_attr
    def project_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False, index=True,
        )

    @declared_attr
    def raised_by_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"),
            nullable=True, comment="Reporter / identifier / requester",
        )

    @declared_attr
    def assigned_to_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"),
            nullable=True, index=True, comment="Assignee / owner / escalated-to",
        )

    @declared_attr
    def project(cls):
        return db.relationship("Project")

    @declared_attr
    def raised_by(cls):
        return db.relationship("Person", foreign_keys=f"{cls.__name__}.raised_by_id")

    @declared_attr
    def assigned_to(cls):
        return db.relationship("Person", foreign_keys=f"{cls.__name__}.assigned_to_id")

    def _base_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "project_id": self.project_id,
            "project_code": self.project.project_code if self.project else None,
            "project_name": self.project.project_name if self.project else None,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "raised_by_id": self.raised_by_id,
            "raised_by_name": self.raised_by.full_name if self.raised_by else None,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to.full_name if self.assigned_to else None,
            "raised_date": _iso(self.raised_date),
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_dict(self):
        return self._base_dict()

    def __repr__(self):
        return f"<{type(self).__name__} {self.number}: {(self.title or '')[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  ISSUE
# ═══════════════════════════════════════════════════════════════════════════

class Issue(WorkflowEntityMixin, db.Model):
    """A current problem / impediment affecting the project."""

    __tablename__ = "issues"
    entity_type = "issue"

    priority = db.Column(db.String(20), nullable=False, default="Medium", index=True)
    category = db.Column(db.String(100), default="")
    impact = db.Column(db.Text, default="")
    target_resolution_date = db.Column(db.Date, nullable=True)
    actual_resolution_date = db.Column(db.Date, nullable=True)

    def to_dict(self):
        d = self._base_dict()
        d.update({
            "priority": self.priority,
            "category": self.category,
            "impact": self.impact,
            "target_resolution_date": _iso(self.target_resolution_date),
            "actual_resolution_date": _iso(self.actual_resolution_date),
        })
        return d


# ═══════════════════════════════════════════════════════════════════════════
#  RISK
# ═══════════════════════════════════════════════════════════════════════════

class Risk(WorkflowEntityMixin, db.Model):
    """
    A risk identified and tracked for a project.

    Risk score = probability × impact (1-25). Status may only reach
    Closed through an approved closure request.
    """

    __tablename__ = "risks"
    entity_type = "risk"

    probability = db.Column(db.String(20), nullable=False, default="Medium")
    impact = db.Column(db.String(20), nullable=False, default="Medium")
    risk_score = db.Column(db.Integer, nullable=False, default=9, comment="probability × impact")
    category = db.Column(db.String(100), default="")
    review_date = db.Column(db.Date, nullable=True)
    mitigation_strategy = db.Column(db.Text, default="")
    contingency_plan = db.Column(db.Text, default="")

    def recalculate_score(self):
        """Recalculate risk_score from probability & impact."""
        self.risk_score = calculate_risk_score(self.probability, self.impact)

    def to_dict(self):
        d = self._base_dict()
        d.update({
            "probability": self.probability,
            "impact": self.impact,
            "risk_score": self.risk_score,
            "risk_band": risk_band(self.risk_score) if self.risk_score else None,
            "category": self.category,
            "review_date": _iso(self.review_date),
            "mitigation_strategy": self.mitigation_strategy,
            "contingency_plan": self.contingency_plan,
        })
        return d


# ═══════════════════════════════════════════════════════════════════════════
#  CHANGE
# ═══════════════════════════════════════════════════════════════════════════

class Change(WorkflowEntityMixin, db.Model):
    """A change request: reviewed, approved or rejected, implemented, closed."""

    __tablename__ = "changes"
    entity_type = "change"

    priority = db.Column(db.String(20), nullable=False, default="Medium", index=True)
    change_type = db.Column(db.String(20), nullable=False, default="Other")
    approved_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    approval_date = db.Column(db.Date, nullable=True)
    implementation_date = db.Column(db.Date, nullable=True)
    cost_impact = db.Column(db.Numeric(15, 2), nullable=True)
    schedule_impact_days = db.Column(db.Integer, nullable=True)
    justification = db.Column(db.Text, default="")
    impact_assessment = db.Column(db.Text, default="")

    approved_by = db.relationship("Person", foreign_keys=[approved_by_id])

    def to_dict(self):
        d = self._base_dict()
        d.update({
            "priority": self.priority,
            "change_type": self.change_type,
            "approved_by_id": self.approved_by_id,
            "approved_by_name": self.approved_by.full_name if self.approved_by else None,
            "approval_date": _iso(self.approval_date),
            "implementation_date": _iso(self.implementation_date),
            "cost_impact": float(self.cost_impact) if self.cost_impact is not None else None,
            "schedule_impact_days": self.schedule_impact_days,
            "justification": self.justification,
            "impact_assessment": self.impact_assessment,
        })
        return d


# ═══════════════════════════════════════════════════════════════════════════
#  ESCALATION
# ═══════════════════════════════════════════════════════════════════════════

class Escalation(WorkflowEntityMixin, db.Model):
    """A matter escalated to the person in ``assigned_to`` for a response."""

    __tablename__ = "escalations"
    entity_type = "escalation"

    severity = db.Column(db.String(20), nullable=False, default="Medium", index=True)
    escalation_type = db.Column(db.String(100), default="")
    target_response_date = db.Column(db.Date, nullable=True)
    actual_response_date = db.Column(db.Date, nullable=True)
    resolution_summary = db.Column(db.Text, default="")

    def to_dict(self):
        d = self._base_dict()
        d.update({
            "severity": self.severity,
            "escalation_type": self.escalation_type,
            "target_response_date": _iso(self.target_response_date),
            "actual_response_date": _iso(self.actual_response_date),
            "resolution_summary": self.resolution_summary,
        })
        return d


# ═══════════════════════════════════════════════════════════════════════════
#  FAULT
# ═══════════════════════════════════════════════════════════════════════════

class Fault(WorkflowEntityMixin, db.Model):
    """A defect reported against a project deliverable."""

    __tablename__ = "faults"
    entity_type = "fault"

    severity = db.Column(db.String(20), nullable=False, default="Major", index=True)
    fault_type = db.Column(db.String(100), default="")
    target_fix_date = db.Column(db.Date, nullable=True)
    actual_fix_date = db.Column(db.Date, nullable=True)
    root_cause = db.Column(db.Text, default="")
    resolution = db.Column(db.Text, default="")

    def to_dict(self):
        d = self._base_dict()
        d.update({
            "severity": self.severity,
            "fault_type": self.fault_type,
            "target_fix_date": _iso(self.target_fix_date),
            "actual_fix_date": _iso(self.actual_fix_date),
            "root_cause": self.root_cause,
            "resolution": self.resolution,
        })
        return d


ENTITY_MODELS = {
    "issue": Issue,
    "risk": Risk,
    "change": Change,
    "escalation": Escalation,
    "fault": Fault,
}


# ═══════════════════════════════════════════════════════════════════════════
#  ACTION ITEM
# ═══════════════════════════════════════════════════════════════════════════

class ActionItem(db.Model):
    """
    A remediation / mitigation task owned by exactly one workflow entity.

    Polymorphic parent: entity_type + entity_id. Rows are removed together
    with the parent entity.
    """

    __tablename__ = "action_items"
    __table_args__ = (
        db.Index("idx_action_items_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(20), nullable=False, comment="issue | risk | change | …")
    entity_id = db.Column(db.Integer, nullable=False)

    description = db.Column(db.Text, nullable=False)
    action_type = db.Column(db.String(100), default="")
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    created_date = db.Column(db.Date, nullable=False, default=date.today)
    due_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Pending", index=True)
    priority = db.Column(db.String(20), nullable=False, default="Medium")
    notes = db.Column(db.Text, default="")
    completion_notes = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    assigned_to = db.relationship("Person", foreign_keys=[assigned_to_id])
    created_by = db.relationship("Person", foreign_keys=[created_by_id])

    @property
    def is_overdue(self) -> bool:
        return (
            self.status in ACTION_OPEN_STATUSES
            and self.due_date is not None
            and self.due_date < date.today()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "action_type": self.action_type,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to.full_name if self.assigned_to else None,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.full_name if self.created_by else None,
            "created_date": _iso(self.created_date),
            "due_date": _iso(self.due_date),
            "completed_date": _iso(self.completed_date),
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "completion_notes": self.completion_notes,
            "is_overdue": self.is_overdue,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ActionItem {self.id} on {self.entity_type}/{self.entity_id}: {self.status}>"
