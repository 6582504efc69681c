"""Action items — remediation / mitigation tasks owned by one workflow entity.

Transaction policy: each function is one unit of work (``atomic()``).

Creating, deleting or changing the status of an action appends an "Action"
entry to the parent's log. Those entries carry no previous/new status, so
the parent's status history stays exact.
"""
import logging
from datetime import date

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import LOG_ACTION, write_log
from app.models.workflow import ACTION_STATUSES, PRIORITY_LEVELS, ActionItem
from app.services.workflow_service import load_entity, resolve_actor, resolve_person
from app.utils.helpers import atomic, parse_date_strict

logger = logging.getLogger(__name__)

ACTION_COMPLETED = "Completed"


def _get_action(wtype, entity, action_id):
    action = db.session.get(ActionItem, action_id)
    if action is None or action.entity_type != wtype.key or action.entity_id != entity.id:
        raise NotFoundError(resource="Action", resource_id=action_id)
    return action


def _check_choice(name, value, allowed):
    if value not in allowed:
        raise ValidationError(
            f"Invalid {name} {value!r}. Must be one of: {', '.join(allowed)}",
            details={name: value},
        )


def _apply(action, data):
    if "description" in data:
        if not str(data["description"] or "").strip():
            raise ValidationError("description cannot be empty",
                                  details={"description": "required"}, required=True)
        action.description = data["description"]
    for name in ("action_type", "notes", "completion_notes"):
        if name in data:
            setattr(action, name, data[name] or "")
    if "assigned_to_id" in data:
        action.assigned_to_id = resolve_person("assigned_to_id", data["assigned_to_id"])
    if "due_date" in data:
        action.due_date = parse_date_strict("due_date", data["due_date"])
    if "completed_date" in data:
        action.completed_date = parse_date_strict("completed_date", data["completed_date"])
    if data.get("priority") is not None:
        _check_choice("priority", data["priority"], PRIORITY_LEVELS)
        action.priority = data["priority"]
    if data.get("status") is not None:
        _check_choice("status", data["status"], ACTION_STATUSES)
        action.status = data["status"]
    if action.status == ACTION_COMPLETED and action.completed_date is None:
        action.completed_date = date.today()


def list_actions(entity_type, entity_id, status=None):
    """Actions of one entity ordered by due date (undated last)."""
    wtype, entity = load_entity(entity_type, entity_id)
    q = ActionItem.query.filter_by(entity_type=wtype.key, entity_id=entity.id)
    if status:
        q = q.filter(ActionItem.status == status)
    return q.order_by(ActionItem.due_date.is_(None), ActionItem.due_date, ActionItem.id).all()


def create_action(entity_type, entity_id, data, actor_id=None):
    """Create an action under the entity.

    Raises:
        NotFoundError: parent entity does not exist.
        ValidationError: description missing, bad status/priority/date,
            unknown person reference.
    """
    wtype, entity = load_entity(entity_type, entity_id)
    data = data or {}
    if not str(data.get("description") or "").strip():
        raise ValidationError("description is required",
                              details={"description": "required"}, required=True)

    with atomic():
        actor_id = resolve_actor(actor_id)
        action = ActionItem(
            entity_type=wtype.key,
            entity_id=entity.id,
            created_by_id=actor_id,
            status="Pending",
            priority="Medium",
        )
        _apply(action, data)
        db.session.add(action)
        db.session.flush()

        write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_ACTION,
            logged_by_id=actor_id,
            comments=f"Action added: {action.description}",
        )

    logger.info(
        "Action %s added to %s %s", action.id, wtype.label, entity.number,
        extra={"entity_type": wtype.key, "entity_id": entity.id,
               "actor_id": actor_id, "event_type": "action_created"},
    )
    return action


def update_action(entity_type, entity_id, action_id, data, actor_id=None):
    """Update an action; completing it stamps completed_date when empty."""
    wtype, entity = load_entity(entity_type, entity_id)
    action = _get_action(wtype, entity, action_id)
    data = data or {}

    with atomic():
        actor_id = resolve_actor(actor_id)
        old_status = action.status
        _apply(action, data)
        if action.status != old_status:
            write_log(
                entity_type=wtype.key,
                entity_id=entity.id,
                log_type=LOG_ACTION,
                logged_by_id=actor_id,
                comments=f"Action {action.id} status changed from {old_status} to {action.status}",
            )
    return action


def delete_action(entity_type, entity_id, action_id, actor_id=None):
    wtype, entity = load_entity(entity_type, entity_id)
    action = _get_action(wtype, entity, action_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_ACTION,
            logged_by_id=actor_id,
            comments=f"Action removed: {action.description}",
        )
        db.session.delete(action)

    logger.info(
        "Action %s removed from %s %s", action_id, wtype.label, entity.number,
        extra={"entity_type": wtype.key, "entity_id": entity.id,
               "actor_id": actor_id, "event_type": "action_deleted"},
    )
