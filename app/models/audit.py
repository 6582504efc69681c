"""
Project Tracker
Audit domain model.

Models:
    - WorkflowLog: immutable, append-only trail of status changes and
      comments for every workflow entity.
"""

from datetime import datetime, timezone

from sqlalchemy import event

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

LOG_CREATED = "Created"
LOG_STATUS_CHANGE = "Status Change"
LOG_UPDATED = "Updated"
LOG_ASSESSMENT = "Assessment"
LOG_COMMENT = "Comment"
LOG_ACTION = "Action"
LOG_CLOSURE_REQUESTED = "Closure Requested"
LOG_CLOSURE_APPROVED = "Closure Approved"
LOG_CLOSURE_REJECTED = "Closure Rejected"
LOG_REVIEW = "Review"
LOG_APPROVAL = "Approval"
LOG_DELETED = "Deleted"

LOG_TYPES = {
    LOG_CREATED, LOG_STATUS_CHANGE, LOG_UPDATED, LOG_ASSESSMENT, LOG_COMMENT,
    LOG_ACTION, LOG_CLOSURE_REQUESTED, LOG_CLOSURE_APPROVED, LOG_CLOSURE_REJECTED,
    LOG_REVIEW, LOG_APPROVAL, LOG_DELETED,
}


class WorkflowLog(db.Model):
    """
    Immutable audit trail entry for one workflow entity.

    One row per event. ``previous_status`` / ``new_status`` are set only
    when the event moved the entity's status, so the rows with a
    ``new_status`` replay the entity's status history exactly.
    """

    __tablename__ = "workflow_logs"
    __table_args__ = (
        db.Index("idx_workflow_log_entity", "entity_type", "entity_id"),
        db.Index("idx_workflow_log_ts", "logged_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(db.String(20), nullable=False, comment="issue | risk | change | …")
    entity_id = db.Column(db.Integer, nullable=False)

    logged_by_id = db.Column(
        db.Integer,
        db.ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    log_type = db.Column(db.String(30), nullable=False, comment="Created | Status Change | Comment | …")
    previous_status = db.Column(db.String(30), nullable=True)
    new_status = db.Column(db.String(30), nullable=True)
    comments = db.Column(db.Text, default="")

    # Timestamp (immutable)
    logged_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    logged_by = db.relationship("Person", foreign_keys=[logged_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "logged_by_id": self.logged_by_id,
            "logged_by_name": self.logged_by.full_name if self.logged_by else None,
            "log_type": self.log_type,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "comments": self.comments,
            "logged_at": self.logged_at.isoformat() if self.logged_at else None,
        }

    def __repr__(self):
        return f"<WorkflowLog {self.id}: {self.log_type} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(WorkflowLog, "before_update")
def _block_log_update(mapper, connection, target) -> None:  # noqa: ANN001
    """Raise RuntimeError on any ORM UPDATE of an existing log row."""
    raise RuntimeError(
        f"workflow_logs is append-only; refusing to update entry {target.id}"
    )


@event.listens_for(WorkflowLog, "before_delete")
def _block_log_delete(mapper, connection, target) -> None:  # noqa: ANN001
    """Raise RuntimeError on any ORM DELETE of a log row."""
    raise RuntimeError(
        f"workflow_logs is append-only; refusing to delete entry {target.id}"
    )


# ── Convenience writer ───────────────────────────────────────────────────────

def write_log(
    *,
    entity_type: str,
    entity_id: int,
    log_type: str,
    logged_by_id: int | None = None,
    previous_status: str | None = None,
    new_status: str | None = None,
    comments: str = "",
) -> WorkflowLog:
    """
    Append a single log row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) WorkflowLog instance.
    """
    log = WorkflowLog(
        entity_type=entity_type,
        entity_id=entity_id,
        log_type=log_type,
        logged_by_id=logged_by_id,
        previous_status=previous_status,
        new_status=new_status,
        comments=comments or "",
    )
    db.session.add(log)
    db.session.flush()
    return log
