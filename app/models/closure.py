"""
Closure approval — ClosureRequest model.

Every request to close a gated entity (risks, changes) creates a new
record; the decision is written onto that same record once. The most
recent record for (entity_type, entity_id) is the entity's current closure
state; no record at all means no closure has been requested.

Polymorphic FK pattern:
    entity_type + entity_id together identify the entity.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

RESOLUTION_PENDING = "Pending"
RESOLUTION_APPROVED = "Approved"
RESOLUTION_REJECTED = "Rejected"

RESOLUTIONS = frozenset({RESOLUTION_PENDING, RESOLUTION_APPROVED, RESOLUTION_REJECTED})

# Reported when an entity has never had a closure request.
NO_REQUEST = "NoRequest"


class ClosureRequest(db.Model):
    """
    One closure request and its decision.

    Business rules:
    - At most one Pending request per entity at a time.
    - A Rejected request may be followed by a fresh request.
    - An entity's status may become Closed only when its latest request is
      Approved.
    """

    __tablename__ = "closure_requests"
    __table_args__ = (
        db.Index("idx_closure_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(20), nullable=False, comment="risk | change")
    entity_id = db.Column(db.Integer, nullable=False)

    requested_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    justification = db.Column(db.Text, default="")
    requested_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    resolution = db.Column(
        db.String(20), nullable=False, default=RESOLUTION_PENDING, index=True,
        comment="Pending | Approved | Rejected",
    )
    decided_by_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    decision_comments = db.Column(db.Text, default="")
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    requested_by = db.relationship("Person", foreign_keys=[requested_by_id])
    decided_by = db.relationship("Person", foreign_keys=[decided_by_id])

    @property
    def is_pending(self) -> bool:
        return self.resolution == RESOLUTION_PENDING

    @classmethod
    def latest_for(cls, entity_type: str, entity_id: int):
        """Most recent request for the entity, or None."""
        return (
            cls.query
            .filter_by(entity_type=entity_type, entity_id=entity_id)
            .order_by(cls.id.desc())
            .first()
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "requested_by_id": self.requested_by_id,
            "requested_by_name": self.requested_by.full_name if self.requested_by else None,
            "justification": self.justification,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "resolution": self.resolution,
            "decided_by_id": self.decided_by_id,
            "decided_by_name": self.decided_by.full_name if self.decided_by else None,
            "decision_comments": self.decision_comments,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self):
        return f"<ClosureRequest {self.id}: {self.entity_type}/{self.entity_id} {self.resolution}>"
