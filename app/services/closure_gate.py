"""Closure approval gate for risks and changes.

A gated entity reaches ``Closed`` only as the side effect of an approved
closure request:

    NoRequest ─request─▶ Pending ─approve─▶ Approved   (entity status → Closed)
                            │
                            └─reject──▶ Rejected ─request─▶ Pending …

Each request is its own ClosureRequest row; the latest row is the current
closure state. Every operation here is one unit of work and also claims the
entity version, so two concurrent requests cannot both open a Pending row.
"""
import logging
from datetime import datetime, timezone

from app.core.exceptions import InvalidStateError, ValidationError
from app.models import db
from app.models.audit import LOG_CLOSURE_APPROVED, LOG_CLOSURE_REJECTED, LOG_CLOSURE_REQUESTED, write_log
from app.models.closure import (
    NO_REQUEST,
    RESOLUTION_APPROVED,
    RESOLUTION_PENDING,
    RESOLUTION_REJECTED,
    ClosureRequest,
)
from app.models.workflow import CLOSED_STATUS
from app.services.workflow_service import (
    WORKFLOW_TYPES,
    claim_version,
    load_entity,
    resolve_actor,
    transition_status,
)
from app.utils.helpers import atomic

logger = logging.getLogger(__name__)

# Change requests must be implemented before they can be closed.
CLOSURE_PRECONDITIONS = {
    "change": ("Implemented",),
}


def _load_gated(entity_type, entity_id):
    wtype, entity = load_entity(entity_type, entity_id)
    if not wtype.closure_gated:
        raise ValidationError(
            f"{wtype.label} has no closure approval workflow",
            details={"entity_type": wtype.key},
        )
    return wtype, entity


def _require_pending(wtype, entity):
    latest = ClosureRequest.latest_for(wtype.key, entity.id)
    if latest is None or not latest.is_pending:
        state = latest.resolution if latest else NO_REQUEST
        logger.warning(
            "No pending closure request for %s %s (state %s)", wtype.label, entity.number, state,
            extra={"entity_type": wtype.key, "entity_id": entity.id, "event_type": "closure_invalid_state"},
        )
        raise InvalidStateError(
            f"{wtype.label} {entity.number} has no pending closure request",
            current_state=state,
        )
    return latest


def closure_status(entity_type, entity_id) -> dict:
    """Current closure state of a gated entity plus its request history."""
    wtype, entity = _load_gated(entity_type, entity_id)
    requests = (
        ClosureRequest.query
        .filter_by(entity_type=wtype.key, entity_id=entity.id)
        .order_by(ClosureRequest.id.desc())
        .all()
    )
    latest = requests[0] if requests else None
    return {
        "entity_type": wtype.key,
        "entity_id": entity.id,
        "number": entity.number,
        "status": entity.status,
        "resolution": latest.resolution if latest else NO_REQUEST,
        "current_request": latest.to_dict() if latest else None,
        "history": [r.to_dict() for r in requests],
    }


def request_closure(entity_type, entity_id, actor_id=None, justification="", version=None):
    """Open a Pending closure request.

    Raises:
        InvalidStateError: a request is already pending, the entity is
            already closed, or (changes) it is not yet Implemented.
    """
    wtype, entity = _load_gated(entity_type, entity_id)

    with atomic():
        actor_id = resolve_actor(actor_id)

        latest = ClosureRequest.latest_for(wtype.key, entity.id)
        if latest is not None and latest.is_pending:
            raise InvalidStateError(
                f"A closure request for {wtype.label} {entity.number} is already pending",
                current_state=RESOLUTION_PENDING,
            )
        if entity.status == CLOSED_STATUS:
            raise InvalidStateError(
                f"{wtype.label} {entity.number} is already closed", current_state=CLOSED_STATUS,
            )
        allowed_from = CLOSURE_PRECONDITIONS.get(wtype.key)
        if allowed_from and entity.status not in allowed_from:
            raise InvalidStateError(
                f"{wtype.label} must be {' or '.join(allowed_from)} to request closure. "
                f"Current status: {entity.status}",
                current_state=entity.status,
            )

        claim_version(entity, version)

        req = ClosureRequest(
            entity_type=wtype.key,
            entity_id=entity.id,
            requested_by_id=actor_id,
            justification=justification or "",
            resolution=RESOLUTION_PENDING,
        )
        db.session.add(req)
        db.session.flush()

        write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_CLOSURE_REQUESTED,
            logged_by_id=actor_id,
            comments=justification or "Closure requested",
        )

    logger.info(
        "Closure requested for %s %s", wtype.label, entity.number,
        extra={"entity_type": wtype.key, "entity_id": entity.id,
               "actor_id": actor_id, "event_type": "closure_requested"},
    )
    return req


def approve_closure(entity_type, entity_id, actor_id=None, comments="", version=None):
    """Approve the pending request and close the entity in the same commit.

    The status change bypasses the closure check (it *is* the approval) and
    is recorded by a single "Closure Approved" entry carrying the previous
    and new status.
    """
    wtype, entity = _load_gated(entity_type, entity_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        req = _require_pending(wtype, entity)
        claim_version(entity, version)

        req.resolution = RESOLUTION_APPROVED
        req.decided_by_id = actor_id
        req.decision_comments = comments or ""
        req.decided_at = datetime.now(timezone.utc)

        transition_status(
            wtype, entity, CLOSED_STATUS,
            actor_id=actor_id,
            log_type=LOG_CLOSURE_APPROVED,
            comments=comments or f"{wtype.label} closure approved",
        )

    logger.info(
        "Closure approved for %s %s", wtype.label, entity.number,
        extra={"entity_type": wtype.key, "entity_id": entity.id,
               "actor_id": actor_id, "event_type": "closure_approved"},
    )
    return req


def reject_closure(entity_type, entity_id, actor_id=None, reason="", version=None):
    """Reject the pending request. Entity status is left unchanged."""
    wtype, entity = _load_gated(entity_type, entity_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        req = _require_pending(wtype, entity)
        claim_version(entity, version)

        req.resolution = RESOLUTION_REJECTED
        req.decided_by_id = actor_id
        req.decision_comments = reason or ""
        req.decided_at = datetime.now(timezone.utc)

        write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_CLOSURE_REJECTED,
            logged_by_id=actor_id,
            comments=reason or f"{wtype.label} closure request rejected",
        )

    logger.info(
        "Closure rejected for %s %s", wtype.label, entity.number,
        extra={"entity_type": wtype.key, "entity_id": entity.id,
               "actor_id": actor_id, "event_type": "closure_rejected"},
    )
    return req


def list_pending_closures(project_id=None):
    """Pending closure requests across all gated types, oldest first."""
    rows = []
    for wtype in WORKFLOW_TYPES.values():
        if not wtype.closure_gated:
            continue
        q = (
            db.session.query(ClosureRequest, wtype.model)
            .join(wtype.model, wtype.model.id == ClosureRequest.entity_id)
            .filter(
                ClosureRequest.entity_type == wtype.key,
                ClosureRequest.resolution == RESOLUTION_PENDING,
            )
        )
        if project_id is not None:
            q = q.filter(wtype.model.project_id == project_id)
        for req, entity in q.all():
            d = req.to_dict()
            d.update({
                "number": entity.number,
                "title": entity.title,
                "status": entity.status,
                "project_id": entity.project_id,
            })
            rows.append(d)
    rows.sort(key=lambda r: (r["requested_at"] or "", r["id"]))
    return rows
