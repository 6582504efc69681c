"""Action logs — project-level action registers with items and checklists.

An action log groups the actions agreed in a meeting or working session.
Each item carries an owner, due date, priority and status; each item may
carry an ordered checklist of requirements.

Transaction policy: each mutating function is one unit of work (``atomic()``).

Completion bookkeeping:
    - item status Completed stamps completed_date (when empty); leaving
      Completed clears it
    - requirement status Completed stamps completed_date and completed_by
      (the given ``completed_by_id`` or the acting person); reverting to
      Pending clears both
"""
import logging
from datetime import date

from flask import current_app
from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.action_log import (
    ACTION_LOG_STATUSES,
    COMPLETED,
    REQUIREMENT_STATUSES,
    ActionLog,
    ActionLogItem,
    ActionRequirement,
)
from app.models.project import Project
from app.models.workflow import ACTION_STATUSES, PRIORITY_LEVELS
from app.services.workflow_service import resolve_actor, resolve_person
from app.utils.helpers import atomic, get_or_raise, parse_date_strict

logger = logging.getLogger(__name__)

# Pending work first, finished work last.
ITEM_STATUS_ORDER = ("Pending", "In Progress", "On Hold", "Completed", "Cancelled")


def _require(data, *fields):
    missing = [f for f in fields if not str(data.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
            required=True,
        )


def _check_choice(name, value, allowed):
    if value not in allowed:
        raise ValidationError(
            f"Invalid {name} {value!r}. Must be one of: {', '.join(allowed)}",
            details={name: value},
        )


def _require_changes(data, fields):
    if not any(f in data for f in fields):
        raise ValidationError("No fields to update", details={"fields": sorted(fields)})


def _not_blank(data, name):
    if name in data and not str(data[name] or "").strip():
        raise ValidationError(f"{name} cannot be empty", details={name: "required"}, required=True)


def _to_int(name, value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={name: value}) from None


# ── Action logs ──────────────────────────────────────────────────────────


LOG_FIELDS = {"log_number", "log_name", "description", "status"}


def next_log_number():
    """Next free ``LOG-<n>`` number."""
    prefix = current_app.config["NUMBER_PREFIXES"]["action_log"]
    num = ActionLog.query.count() + 1
    while ActionLog.query.filter_by(log_number=f"{prefix}-{num:04d}").first():
        num += 1
    return f"{prefix}-{num:04d}"


def list_action_logs(project_id=None, status=None, search=None):
    """Action logs newest first, filtered by project, status or free text."""
    q = ActionLog.query
    if project_id is not None:
        q = q.filter(ActionLog.project_id == project_id)
    if status:
        q = q.filter(ActionLog.status == status)
    if search:
        term = f"%{search}%"
        q = q.filter(or_(
            ActionLog.log_name.ilike(term),
            ActionLog.log_number.ilike(term),
            ActionLog.description.ilike(term),
        ))
    return q.order_by(ActionLog.id.desc())


def get_action_log(log_id):
    return get_or_raise(ActionLog, log_id, "Action log")


def action_log_detail(log_id):
    """The log with its items (work-queue order) and their requirements."""
    action_log = get_action_log(log_id)
    return action_log.to_dict(items=list_items(action_log.id))


def create_action_log(data, actor_id=None):
    """Create an action log. ``log_number`` defaults to the next LOG-nnnn.

    Raises:
        ValidationError: project_id / log_name missing, bad status.
        NotFoundError: project does not exist.
        ConflictError: log_number already used.
    """
    data = data or {}
    _require(data, "project_id", "log_name")
    number = str(data.get("log_number") or "").strip()

    try:
        with atomic():
            project = get_or_raise(Project, _to_int("project_id", data["project_id"]), "Project")
            actor_id = resolve_actor(actor_id if actor_id is not None else data.get("created_by_id"))
            number = number or next_log_number()
            if ActionLog.query.filter_by(log_number=number).first():
                raise ConflictError("Action log", "log_number", number)

            status = data.get("status") or "Active"
            _check_choice("status", status, ACTION_LOG_STATUSES)
            action_log = ActionLog(
                project_id=project.id,
                log_number=number,
                log_name=str(data["log_name"]).strip(),
                description=data.get("description") or "",
                status=status,
                created_by_id=actor_id,
            )
            db.session.add(action_log)
            db.session.flush()
    except IntegrityError:
        raise ConflictError("Action log", "log_number", number) from None

    logger.info(
        "Created action log %s", number,
        extra={"project_id": action_log.project_id, "actor_id": actor_id,
               "event_type": "action_log_created"},
    )
    return action_log


def update_action_log(log_id, data):
    action_log = get_action_log(log_id)
    data = data or {}
    _require_changes(data, LOG_FIELDS)
    _not_blank(data, "log_name")

    with atomic():
        if data.get("log_number") and data["log_number"] != action_log.log_number:
            clash = ActionLog.query.filter(
                ActionLog.log_number == data["log_number"], ActionLog.id != action_log.id,
            ).first()
            if clash:
                raise ConflictError("Action log", "log_number", data["log_number"])
            action_log.log_number = data["log_number"]
        if "log_name" in data:
            action_log.log_name = str(data["log_name"]).strip()
        if "description" in data:
            action_log.description = data["description"] or ""
        if data.get("status") is not None:
            _check_choice("status", data["status"], ACTION_LOG_STATUSES)
            action_log.status = data["status"]
    return action_log


def delete_action_log(log_id):
    """Delete the log together with its items and their requirements."""
    action_log = get_action_log(log_id)
    number = action_log.log_number
    with atomic():
        db.session.delete(action_log)
    logger.info("Deleted action log %s", number, extra={"event_type": "action_log_deleted"})


# ── Items ────────────────────────────────────────────────────────────────


ITEM_FIELDS = {
    "action_number", "action_description", "action_type", "assigned_to_id",
    "due_date", "status", "priority", "notes", "completion_notes",
}


def _get_item(action_log, item_id):
    item = db.session.get(ActionLogItem, item_id)
    if item is None or item.action_log_id != action_log.id:
        raise NotFoundError(resource="Action item", resource_id=item_id)
    return item


def _apply_item(item, data):
    for name in ("action_number", "action_type", "notes", "completion_notes"):
        if name in data:
            setattr(item, name, data[name] or "")
    if "action_description" in data:
        item.action_description = str(data["action_description"]).strip()
    if "assigned_to_id" in data:
        item.assigned_to_id = resolve_person("assigned_to_id", data["assigned_to_id"])
    if "due_date" in data:
        item.due_date = parse_date_strict("due_date", data["due_date"])
    if "created_date" in data and data["created_date"]:
        item.created_date = parse_date_strict("created_date", data["created_date"])
    if data.get("priority") is not None:
        _check_choice("priority", data["priority"], PRIORITY_LEVELS)
        item.priority = data["priority"]
    if data.get("status") is not None:
        _check_choice("status", data["status"], ACTION_STATUSES)
        item.status = data["status"]
    if item.status == COMPLETED:
        if item.completed_date is None:
            item.completed_date = date.today()
    else:
        item.completed_date = None


def list_items(log_id, status=None):
    """Items of one log: Pending, In Progress, On Hold, Completed, Cancelled; then by due date."""
    action_log = get_action_log(log_id)
    q = ActionLogItem.query.filter_by(action_log_id=action_log.id)
    if status:
        q = q.filter(ActionLogItem.status == status)
    status_rank = case(
        {s: idx for idx, s in enumerate(ITEM_STATUS_ORDER)},
        value=ActionLogItem.status,
        else_=len(ITEM_STATUS_ORDER),
    )
    return q.order_by(
        status_rank, ActionLogItem.due_date.is_(None), ActionLogItem.due_date, ActionLogItem.id,
    ).all()


def create_item(log_id, data, actor_id=None):
    """Add an item to the log.

    Raises:
        NotFoundError: log does not exist.
        ValidationError: action_description missing, bad status/priority/date,
            unknown person reference.
    """
    action_log = get_action_log(log_id)
    data = data or {}
    _require(data, "action_description")

    with atomic():
        actor_id = resolve_actor(actor_id if actor_id is not None else data.get("created_by_id"))
        item = ActionLogItem(
            action_log_id=action_log.id,
            created_by_id=actor_id,
            status="Pending",
            priority="Medium",
        )
        _apply_item(item, data)
        db.session.add(item)
        db.session.flush()

    logger.info(
        "Action item %s added to action log %s", item.id, action_log.log_number,
        extra={"actor_id": actor_id, "event_type": "action_log_item_created"},
    )
    return item


def update_item(log_id, item_id, data):
    action_log = get_action_log(log_id)
    item = _get_item(action_log, item_id)
    data = data or {}
    _require_changes(data, ITEM_FIELDS)
    _not_blank(data, "action_description")

    with atomic():
        old_status = item.status
        _apply_item(item, data)
    if item.status != old_status:
        logger.info(
            "Action item %s status %s -> %s", item.id, old_status, item.status,
            extra={"event_type": "action_log_item_status"},
        )
    return item


def delete_item(log_id, item_id):
    action_log = get_action_log(log_id)
    item = _get_item(action_log, item_id)
    with atomic():
        db.session.delete(item)


# ── Requirements ─────────────────────────────────────────────────────────


REQUIREMENT_FIELDS = {"requirement_description", "sequence_order", "status", "notes"}


def _get_requirement(item, requirement_id):
    requirement = db.session.get(ActionRequirement, requirement_id)
    if requirement is None or requirement.action_item_id != item.id:
        raise NotFoundError(resource="Requirement", resource_id=requirement_id)
    return requirement


def _apply_requirement(requirement, data, actor_id):
    if "requirement_description" in data:
        requirement.requirement_description = str(data["requirement_description"]).strip()
    if "notes" in data:
        requirement.notes = data["notes"] or ""
    if "sequence_order" in data:
        value = data["sequence_order"]
        requirement.sequence_order = _to_int("sequence_order", value) if value not in (None, "") else None
    if data.get("status") is not None:
        _check_choice("status", data["status"], REQUIREMENT_STATUSES)
        if data["status"] == COMPLETED and requirement.status != COMPLETED:
            completed_by = data.get("completed_by_id")
            requirement.completed_by_id = (
                resolve_person("completed_by_id", completed_by) if completed_by else actor_id
            )
            requirement.completed_date = date.today()
        elif data["status"] != COMPLETED:
            requirement.completed_by_id = None
            requirement.completed_date = None
        requirement.status = data["status"]


def list_requirements(log_id, item_id):
    item = _get_item(get_action_log(log_id), item_id)
    return list(item.requirements)


def create_requirement(log_id, item_id, data, actor_id=None):
    item = _get_item(get_action_log(log_id), item_id)
    data = data or {}
    _require(data, "requirement_description")

    with atomic():
        actor_id = resolve_actor(actor_id)
        requirement = ActionRequirement(action_item_id=item.id, status="Pending")
        _apply_requirement(requirement, data, actor_id)
        db.session.add(requirement)
        db.session.flush()
    return requirement


def update_requirement(log_id, item_id, requirement_id, data, actor_id=None):
    item = _get_item(get_action_log(log_id), item_id)
    requirement = _get_requirement(item, requirement_id)
    data = data or {}
    _require_changes(data, REQUIREMENT_FIELDS)
    _not_blank(data, "requirement_description")

    with atomic():
        actor_id = resolve_actor(actor_id)
        _apply_requirement(requirement, data, actor_id)
    return requirement


def delete_requirement(log_id, item_id, requirement_id):
    item = _get_item(get_action_log(log_id), item_id)
    requirement = _get_requirement(item, requirement_id)
    with atomic():
        db.session.delete(requirement)
