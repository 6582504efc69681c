"""
Project Tracker
Action log models: standalone meeting / working-session action registers.

Models:
    - ActionLog: a named register of actions owned by a project
    - ActionLogItem: one action recorded in a log
    - ActionRequirement: checklist step of an action item

Unlike ActionItem these are not attached to a workflow entity and write no
workflow log entries.

Architecture chain: Project → ActionLog → ActionLogItem → ActionRequirement
"""

from datetime import date, datetime, timezone

from app.models import db
from app.models.workflow import ACTION_OPEN_STATUSES, _iso


# ── Constants ────────────────────────────────────────────────────────────────

ACTION_LOG_STATUSES = ("Active", "Completed", "Archived")
REQUIREMENT_STATUSES = ("Pending", "Completed")
COMPLETED = "Completed"


class ActionLog(db.Model):
    """A numbered action register, e.g. the actions of a weekly review meeting."""

    __tablename__ = "action_logs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    log_number = db.Column(db.String(50), unique=True, nullable=False, comment="e.g. LOG-0001")
    log_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="Active", index=True)
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project")
    created_by = db.relationship("Person", foreign_keys=[created_by_id])
    items = db.relationship(
        "ActionLogItem", back_populates="action_log",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def item_counts(self):
        statuses = [i.status for i in self.items]
        return {
            "total_items": len(statuses),
            "completed_items": statuses.count(COMPLETED),
            "active_items": sum(1 for s in statuses if s in ACTION_OPEN_STATUSES),
        }

    def to_dict(self, items=None):
        """``items`` (already ordered) are embedded with their requirements when given."""
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "project_code": self.project.project_code if self.project else None,
            "project_name": self.project.project_name if self.project else None,
            "log_number": self.log_number,
            "log_name": self.log_name,
            "description": self.description,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.full_name if self.created_by else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            **self.item_counts(),
        }
        if items is not None:
            d["items"] = [i.to_dict(include_requirements=True) for i in items]
        return d

    def __repr__(self):
        return f"<ActionLog {self.log_number}>"


class ActionLogItem(db.Model):
    """One action in an action log. Completing it stamps completed_date."""

    __tablename__ = "action_log_items"

    id = db.Column(db.Integer, primary_key=True)
    action_log_id = db.Column(
        db.Integer, db.ForeignKey("action_logs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    action_number = db.Column(db.String(50), default="")
    action_description = db.Column(db.Text, nullable=False)
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

    action_log = db.relationship("ActionLog", back_populates="items")
    assigned_to = db.relationship("Person", foreign_keys=[assigned_to_id])
    created_by = db.relationship("Person", foreign_keys=[created_by_id])
    requirements = db.relationship(
        "ActionRequirement", back_populates="item",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by=lambda: [
            ActionRequirement.sequence_order.is_(None), ActionRequirement.sequence_order, ActionRequirement.id,
        ],
    )

    @property
    def is_overdue(self) -> bool:
        return (
            self.status in ACTION_OPEN_STATUSES
            and self.due_date is not None
            and self.due_date < date.today()
        )

    def to_dict(self, include_requirements=False):
        d = {
            "id": self.id,
            "action_log_id": self.action_log_id,
            "action_number": self.action_number,
            "action_description": self.action_description,
            "action_type": self.action_type,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to.full_name if self.assigned_to else None,
            "assigned_to_email": self.assigned_to.email if self.assigned_to else None,
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
        }
        if include_requirements:
            d["requirements"] = [r.to_dict() for r in self.requirements]
        return d


class ActionRequirement(db.Model):
    """Checklist step of an action log item."""

    __tablename__ = "action_requirements"

    id = db.Column(db.Integer, primary_key=True)
    action_item_id = db.Column(
        db.Integer, db.ForeignKey("action_log_items.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    requirement_description = db.Column(db.Text, nullable=False)
    sequence_order = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Pending")
    completed_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    completed_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, default="")

    item = db.relationship("ActionLogItem", back_populates="requirements")
    completed_by = db.relationship("Person", foreign_keys=[completed_by_id])

    def to_dict(self):
        return {
            "id": self.id,
            "action_item_id": self.action_item_id,
            "requirement_description": self.requirement_description,
            "sequence_order": self.sequence_order,
            "status": self.status,
            "completed_by_id": self.completed_by_id,
            "completed_by_name": self.completed_by.full_name if self.completed_by else None,
            "completed_date": _iso(self.completed_date),
            "notes": self.notes,
        }
