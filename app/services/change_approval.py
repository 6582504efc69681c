"""Change approval workflow.

    Requested ─request_review─▶ Under Review ─approve_change─▶ Approved
                                             └─reject_change──▶ Rejected

Approved and Rejected are reachable only through these functions; a direct
status update to either is refused by the workflow service.
"""
import logging
from datetime import date

from app.core.exceptions import InvalidStateError
from app.models.audit import LOG_APPROVAL, LOG_REVIEW
from app.services.workflow_service import (
    claim_version,
    load_entity,
    resolve_actor,
    transition_status,
)
from app.utils.helpers import atomic

logger = logging.getLogger(__name__)

STATUS_REQUESTED = "Requested"
STATUS_UNDER_REVIEW = "Under Review"
STATUS_APPROVED = "Approved"
STATUS_REJECTED = "Rejected"


def _decide(change_id, *, from_status, to_status, actor_id, log_type, comments, version, hint=""):
    wtype, change = load_entity("change", change_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        if change.status != from_status:
            logger.warning(
                "Change %s is %s, expected %s", change.number, change.status, from_status,
                extra={"entity_type": "change", "entity_id": change.id,
                       "event_type": "change_invalid_state"},
            )
            message = f"Change must be '{from_status}'. Current status: {change.status}"
            if hint:
                message += f". {hint}"
            raise InvalidStateError(message, current_state=change.status)

        claim_version(change, version)
        if to_status == STATUS_APPROVED:
            change.approved_by_id = actor_id
            change.approval_date = date.today()

        transition_status(
            wtype, change, to_status,
            actor_id=actor_id, log_type=log_type, comments=comments,
        )

    logger.info(
        "Change %s %s -> %s", change.number, from_status, to_status,
        extra={"entity_type": "change", "entity_id": change.id,
               "actor_id": actor_id, "event_type": log_type},
    )
    return change


def request_review(change_id, actor_id=None, comments="", version=None):
    """Submit a Requested change for review (Requested → Under Review)."""
    return _decide(
        change_id,
        from_status=STATUS_REQUESTED,
        to_status=STATUS_UNDER_REVIEW,
        actor_id=actor_id,
        log_type=LOG_REVIEW,
        comments=comments or "Change approval requested",
        version=version,
    )


def approve_change(change_id, actor_id=None, comments="", version=None):
    """Approve a change under review; records approver and approval date."""
    return _decide(
        change_id,
        from_status=STATUS_UNDER_REVIEW,
        to_status=STATUS_APPROVED,
        actor_id=actor_id,
        log_type=LOG_APPROVAL,
        comments=comments or "Change request approved",
        version=version,
        hint="Use request-approval first",
    )


def reject_change(change_id, actor_id=None, reason="", version=None):
    return _decide(
        change_id,
        from_status=STATUS_UNDER_REVIEW,
        to_status=STATUS_REJECTED,
        actor_id=actor_id,
        log_type=LOG_REVIEW,
        comments=reason or "Change request rejected",
        version=version,
        hint="Use request-approval first",
    )
