"""Workflow service — one lifecycle for Issue, Risk, Change, Escalation, Fault.

Each entity type is described by a ``WorkflowType`` (model, statuses,
editable fields, gated statuses); every operation below is written once
against that description.

Transaction policy: each public mutating function is one unit of work
(``atomic()``). It commits on success; on any exception the session is
rolled back and the exception re-raised, so the entity row and its log rows
are written together or not at all.

The module is the only writer of entity ``status``. ``transition_status``
and ``claim_version`` are the building blocks the closure gate and the
change approval workflow use inside their own units of work.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    ClosureNotAuthorizedError,
    DuplicateNumberError,
    StaleVersionError,
    TransitionNotAuthorizedError,
    ValidationError,
)
from app.models import db
from app.models.audit import (
    LOG_ASSESSMENT,
    LOG_COMMENT,
    LOG_CREATED,
    LOG_DELETED,
    LOG_STATUS_CHANGE,
    LOG_UPDATED,
    WorkflowLog,
    write_log,
)
from app.models.closure import ClosureRequest
from app.models.project import Person, Project
from app.models.workflow import (
    CHANGE_STATUSES,
    CHANGE_TYPES,
    CLOSED_STATUS,
    ESCALATION_STATUSES,
    FAULT_SEVERITIES,
    FAULT_STATUSES,
    ISSUE_STATUSES,
    PRIORITY_LEVELS,
    RISK_LEVELS,
    RISK_STATUSES,
    ActionItem,
    Change,
    Escalation,
    Fault,
    Issue,
    Risk,
    risk_band,
)
from app.utils.helpers import atomic, get_or_raise, parse_date_strict

logger = logging.getLogger(__name__)

RECENT_LOG_LIMIT = 20
GENERATED_NUMBER_ATTEMPTS = 2


# ── Type descriptors ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class WorkflowType:
    """Everything the generic lifecycle needs to know about one entity type."""

    key: str
    model: type
    label: str
    statuses: tuple
    text_fields: tuple = ()
    date_fields: tuple = ()
    int_fields: tuple = ()
    decimal_fields: tuple = ()
    enum_fields: dict = field(default_factory=dict)
    grade_field: str | None = None
    # Statuses reachable only through the change approval workflow
    gated_statuses: tuple = ()
    gated_hint: str = ""
    # Closed reachable only through an approved closure request
    closure_gated: bool = False
    # status -> date column stamped with today when first reached
    status_dates: dict = field(default_factory=dict)

    @property
    def initial_status(self) -> str:
        return self.statuses[0]


WORKFLOW_TYPES = {
    "issue": WorkflowType(
        key="issue",
        model=Issue,
        label="Issue",
        statuses=ISSUE_STATUSES,
        text_fields=("category", "impact"),
        date_fields=("target_resolution_date", "actual_resolution_date"),
        enum_fields={"priority": PRIORITY_LEVELS},
        grade_field="priority",
        status_dates={"Resolved": "actual_resolution_date", "Closed": "actual_resolution_date"},
    ),
    "risk": WorkflowType(
        key="risk",
        model=Risk,
        label="Risk",
        statuses=RISK_STATUSES,
        text_fields=("category", "mitigation_strategy", "contingency_plan"),
        date_fields=("review_date",),
        enum_fields={"probability": RISK_LEVELS, "impact": RISK_LEVELS},
        closure_gated=True,
    ),
    "change": WorkflowType(
        key="change",
        model=Change,
        label="Change",
        statuses=CHANGE_STATUSES,
        text_fields=("justification", "impact_assessment"),
        date_fields=("implementation_date",),
        int_fields=("schedule_impact_days",),
        decimal_fields=("cost_impact",),
        enum_fields={"priority": PRIORITY_LEVELS, "change_type": CHANGE_TYPES},
        grade_field="priority",
        gated_statuses=("Approved", "Rejected"),
        gated_hint="Use the change approval workflow (request-approval, approve, reject)",
        closure_gated=True,
        status_dates={"Implemented": "implementation_date"},
    ),
    "escalation": WorkflowType(
        key="escalation",
        model=Escalation,
        label="Escalation",
        statuses=ESCALATION_STATUSES,
        text_fields=("escalation_type", "resolution_summary"),
        date_fields=("target_response_date", "actual_response_date"),
        enum_fields={"severity": PRIORITY_LEVELS},
        grade_field="severity",
        status_dates={"Resolved": "actual_response_date"},
    ),
    "fault": WorkflowType(
        key="fault",
        model=Fault,
        label="Fault",
        statuses=FAULT_STATUSES,
        text_fields=("fault_type", "root_cause", "resolution"),
        date_fields=("target_fix_date", "actual_fix_date"),
        enum_fields={"severity": FAULT_SEVERITIES},
        grade_field="severity",
        status_dates={"Resolved": "actual_fix_date"},
    ),
}


def get_workflow_type(entity_type) -> WorkflowType:
    """Return the descriptor for ``entity_type`` or raise ValidationError."""
    if isinstance(entity_type, WorkflowType):
        return entity_type
    try:
        return WORKFLOW_TYPES[entity_type]
    except KeyError:
        raise ValidationError(
            f"Unknown entity type {entity_type!r}. Must be one of: {', '.join(WORKFLOW_TYPES)}",
            details={"entity_type": entity_type},
        ) from None


def load_entity(entity_type, entity_id):
    """Return ``(workflow_type, entity)`` or raise NotFoundError."""
    wtype = get_workflow_type(entity_type)
    return wtype, get_or_raise(wtype.model, entity_id, wtype.label)


# ── Validation helpers ───────────────────────────────────────────────────


def _log_extra(wtype, entity_id, actor_id, event_type):
    return {
        "entity_type": wtype.key,
        "entity_id": entity_id,
        "actor_id": actor_id,
        "event_type": event_type,
    }


def _to_int(field_name, value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be an integer", details={field_name: value},
        ) from None


def resolve_person(field_name, person_id):
    """Validate an optional person reference; returns the id or None."""
    if person_id in (None, ""):
        return None
    person_id = _to_int(field_name, person_id)
    if db.session.get(Person, person_id) is None:
        raise ValidationError(
            f"{field_name} references unknown person {person_id}",
            details={field_name: person_id},
        )
    return person_id


def resolve_actor(actor_id):
    """Validate the acting person of a mutating call."""
    return resolve_person("actor_id", actor_id)


def _check_enum(field_name, value, allowed):
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field_name} {value!r}. Must be one of: {', '.join(allowed)}",
            details={field_name: value},
        )


def _check_status(wtype, status):
    _check_enum("status", status, wtype.statuses)


def _apply_fields(wtype, entity, data):
    """Copy editable, non-status fields from ``data`` onto ``entity``."""
    if "title" in data:
        title = str(data["title"] or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"}, required=True)
        entity.title = title
    if "description" in data:
        entity.description = data["description"] or ""
    if "raised_date" in data:
        entity.raised_date = parse_date_strict("raised_date", data["raised_date"]) or entity.raised_date
    if "raised_by_id" in data:
        entity.raised_by_id = resolve_person("raised_by_id", data["raised_by_id"])
    if "assigned_to_id" in data:
        entity.assigned_to_id = resolve_person("assigned_to_id", data["assigned_to_id"])

    for name in wtype.text_fields:
        if name in data:
            setattr(entity, name, data[name] or "")
    for name in wtype.date_fields:
        if name in data:
            setattr(entity, name, parse_date_strict(name, data[name]))
    for name in wtype.int_fields:
        if name in data:
            setattr(entity, name, None if data[name] in (None, "") else _to_int(name, data[name]))
    for name in wtype.decimal_fields:
        if name in data:
            value = data[name]
            if value in (None, ""):
                setattr(entity, name, None)
                continue
            try:
                setattr(entity, name, Decimal(str(value)))
            except InvalidOperation:
                raise ValidationError(f"{name} must be a number", details={name: value}) from None
    for name, allowed in wtype.enum_fields.items():
        if name in data and data[name] is not None:
            _check_enum(name, data[name], allowed)
            setattr(entity, name, data[name])


# ── Numbers ──────────────────────────────────────────────────────────────


def _number_taken(wtype, number, exclude_id=None):
    q = wtype.model.query.filter(wtype.model.number == number)
    if exclude_id is not None:
        q = q.filter(wtype.model.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def next_number(entity_type) -> str:
    """Generate the next free ``<PREFIX>-<n>`` number, e.g. RISK-0007."""
    wtype = get_workflow_type(entity_type)
    prefix = current_app.config["NUMBER_PREFIXES"][wtype.key]
    full_prefix = prefix + "-"
    last = (
        wtype.model.query
        .filter(wtype.model.number.like(f"{full_prefix}%"))
        .order_by(wtype.model.id.desc())
        .first()
    )
    num = 1
    if last:
        try:
            num = int(last.number[len(full_prefix):]) + 1
        except ValueError:
            num = wtype.model.query.count() + 1
    # Caller-supplied numbers may already occupy the slot.
    while _number_taken(wtype, f"{prefix}-{num:04d}"):
        num += 1
    return f"{prefix}-{num:04d}"


# ── Internal building blocks ─────────────────────────────────────────────


def claim_version(entity, expected=None):
    """Bump ``entity.version`` with a conditional UPDATE.

    ``expected`` is the version the caller last read (defaults to the version
    loaded in this session). Raises StaleVersionError when another writer
    got there first. Must run inside the caller's unit of work.
    """
    model = type(entity)
    current = entity.version
    if expected is not None:
        expected = _to_int("version", expected)
        if expected != current:
            logger.warning(
                "Stale version for %s %s: expected %s, found %s",
                model.__name__, entity.id, expected, current,
                extra={"entity_type": entity.entity_type, "entity_id": entity.id},
            )
            raise StaleVersionError(model.__name__, entity.id, expected, current)

    result = db.session.execute(
        update(model)
        .where(model.id == entity.id, model.version == current)
        .values(version=current + 1)
    )
    if result.rowcount != 1:
        logger.warning(
            "Lost version race on %s %s at version %s", model.__name__, entity.id, current,
            extra={"entity_type": entity.entity_type, "entity_id": entity.id},
        )
        raise StaleVersionError(model.__name__, entity.id, current, None)
    entity.version = current + 1
    return entity.version


def transition_status(entity_type, entity, new_status, *, actor_id=None,
                      log_type=LOG_STATUS_CHANGE, comments=None):
    """Move ``entity`` to ``new_status`` and append the matching log entry.

    No gate check: callers decide whether the transition is allowed. Does
    not commit.
    """
    wtype = get_workflow_type(entity_type)
    _check_status(wtype, new_status)
    old_status = entity.status
    entity.status = new_status

    date_field = wtype.status_dates.get(new_status)
    if date_field and getattr(entity, date_field) is None:
        setattr(entity, date_field, date.today())

    write_log(
        entity_type=wtype.key,
        entity_id=entity.id,
        log_type=log_type,
        logged_by_id=actor_id,
        previous_status=old_status,
        new_status=new_status,
        comments=comments or f"Status changed from {old_status} to {new_status}",
    )
    logger.info(
        "%s %s status %s -> %s", wtype.label, entity.number, old_status, new_status,
        extra=_log_extra(wtype, entity.id, actor_id, log_type),
    )
    return entity


def _authorize_direct_transition(wtype, entity, new_status):
    """Refuse statuses that only an approval workflow may set.

    ``entity`` is None when checking the initial status of a new entity.
    """
    entity_id = entity.id if entity is not None else None
    number = entity.number if entity is not None else "(new)"
    if new_status in wtype.gated_statuses:
        logger.warning(
            "Refused direct transition of %s %s to %s", wtype.label, number, new_status,
            extra=_log_extra(wtype, entity_id, None, "transition_refused"),
        )
        raise TransitionNotAuthorizedError(wtype.label, entity_id, new_status, wtype.gated_hint)
    if wtype.closure_gated and new_status == CLOSED_STATUS:
        # Closed is only reachable through approve_closure, even after a reopen.
        latest = ClosureRequest.latest_for(wtype.key, entity_id) if entity_id else None
        logger.warning(
            "Refused direct closure of %s %s (closure state %s)",
            wtype.label, number, latest.resolution if latest else "NoRequest",
            extra=_log_extra(wtype, entity_id, None, "closure_refused"),
        )
        raise ClosureNotAuthorizedError(wtype.label, entity_id)


def _created_comment(wtype, entity):
    if wtype.key == "risk":
        return f"Risk identified with score {entity.risk_score} ({risk_band(entity.risk_score)})"
    return f"{wtype.label} {entity.number} created"


# ── Public operations ────────────────────────────────────────────────────


def create_entity(entity_type, project_id, data, actor_id=None):
    """Create a workflow entity and its "Created" log entry.

    Raises:
        ValidationError: missing title/description/project_id, bad enum value,
            unknown actor or person reference.
        NotFoundError: project does not exist.
        DuplicateNumberError: number already used by this entity type.
        TransitionNotAuthorizedError: initial status is gated.
    """
    wtype = get_workflow_type(entity_type)
    data = data or {}

    missing = [f for f in ("title", "description") if not str(data.get(f) or "").strip()]
    if project_id in (None, ""):
        missing.insert(0, "project_id")
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
            required=True,
        )

    supplied = str(data.get("number") or "").strip()
    attempts = 1 if supplied else GENERATED_NUMBER_ATTEMPTS
    for attempt in range(1, attempts + 1):
        number = supplied or None
        try:
            with atomic():
                get_or_raise(Project, _to_int("project_id", project_id), "Project")
                actor_id = resolve_actor(actor_id)

                status = data.get("status") or wtype.initial_status
                _check_status(wtype, status)
                _authorize_direct_transition(wtype, None, status)

                if supplied and _number_taken(wtype, supplied):
                    raise DuplicateNumberError(wtype.label, supplied)
                number = supplied or next_number(wtype)

                entity = _insert_entity(wtype, project_id, number, status, data, actor_id)
            break
        except IntegrityError:
            # A concurrent create took the generated number between lookup and flush.
            if attempt == attempts:
                raise DuplicateNumberError(wtype.label, number) from None
            logger.warning(
                "Generated %s number %s already taken, retrying", wtype.label, number,
                extra=_log_extra(wtype, None, actor_id, "number_retry"),
            )

    logger.info(
        "Created %s %s", wtype.label, number,
        extra=_log_extra(wtype, entity.id, actor_id, "created"),
    )
    return entity


def _insert_entity(wtype, project_id, number, status, data, actor_id):
    entity = wtype.model(
        project_id=int(project_id),
        number=number,
        status=status,
        raised_by_id=actor_id,
    )
    if wtype.key == "risk":
        entity.probability = "Medium"
        entity.impact = "Medium"
    _apply_fields(wtype, entity, data)
    if wtype.key == "risk":
        entity.recalculate_score()

    date_field = wtype.status_dates.get(status)
    if date_field and getattr(entity, date_field) is None:
        setattr(entity, date_field, date.today())

    db.session.add(entity)
    db.session.flush()

    write_log(
        entity_type=wtype.key,
        entity_id=entity.id,
        log_type=LOG_CREATED,
        logged_by_id=actor_id,
        new_status=status,
        comments=_created_comment(wtype, entity),
    )
    return entity


def update_entity(entity_type, entity_id, data, actor_id=None):
    """Apply field changes and, when ``status`` changes, log the transition.

    ``data`` may carry ``version`` (the version the caller read) and
    ``status_comment`` (comment for the status change entry).

    Raises:
        NotFoundError, ValidationError, StaleVersionError,
        ClosureNotAuthorizedError, TransitionNotAuthorizedError.
    """
    wtype, entity = load_entity(entity_type, entity_id)
    data = data or {}

    with atomic():
        actor_id = resolve_actor(actor_id)

        old_status = entity.status
        new_status = data.get("status") or old_status
        if new_status != old_status:
            _check_status(wtype, new_status)
            _authorize_direct_transition(wtype, entity, new_status)

        if data.get("number") and data["number"] != entity.number:
            if _number_taken(wtype, data["number"], exclude_id=entity.id):
                raise DuplicateNumberError(wtype.label, data["number"])
            entity.number = data["number"]

        claim_version(entity, data.get("version"))

        old_assignee = entity.assigned_to_id
        old_grading = (entity.probability, entity.impact, entity.risk_score) if wtype.key == "risk" else None

        _apply_fields(wtype, entity, data)

        if wtype.key == "risk" and (entity.probability, entity.impact) != old_grading[:2]:
            entity.recalculate_score()
            write_log(
                entity_type=wtype.key,
                entity_id=entity.id,
                log_type=LOG_ASSESSMENT,
                logged_by_id=actor_id,
                comments=(
                    f"Risk reassessed: probability {old_grading[0]} -> {entity.probability}, "
                    f"impact {old_grading[1]} -> {entity.impact}, "
                    f"score {old_grading[2]} -> {entity.risk_score}"
                ),
            )

        if entity.assigned_to_id != old_assignee:
            assignee = db.session.get(Person, entity.assigned_to_id) if entity.assigned_to_id else None
            write_log(
                entity_type=wtype.key,
                entity_id=entity.id,
                log_type=LOG_UPDATED,
                logged_by_id=actor_id,
                comments=f"Assigned to {assignee.full_name}" if assignee else "Assignment cleared",
            )

        if new_status != old_status:
            transition_status(
                wtype, entity, new_status,
                actor_id=actor_id, comments=data.get("status_comment"),
            )

    return entity


def add_log_entry(entity_type, entity_id, actor_id, comments):
    """Append a "Comment" entry to the entity's log. An empty comment is stored as ""."""
    wtype, entity = load_entity(entity_type, entity_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        log = write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_COMMENT,
            logged_by_id=actor_id,
            comments=comments or "",
        )
    return log


def delete_entity(entity_type, entity_id, actor_id=None):
    """Delete the entity with its action items and closure requests.

    The log is append-only and survives the entity; a final "Deleted"
    entry records who removed it.
    """
    wtype, entity = load_entity(entity_type, entity_id)

    with atomic():
        actor_id = resolve_actor(actor_id)
        ActionItem.query.filter_by(entity_type=wtype.key, entity_id=entity.id).delete()
        ClosureRequest.query.filter_by(entity_type=wtype.key, entity_id=entity.id).delete()
        write_log(
            entity_type=wtype.key,
            entity_id=entity.id,
            log_type=LOG_DELETED,
            logged_by_id=actor_id,
            previous_status=entity.status,
            comments=f"{wtype.label} {entity.number} deleted",
        )
        db.session.delete(entity)

    logger.info(
        "Deleted %s %s", wtype.label, entity_id,
        extra=_log_extra(wtype, entity_id, actor_id, "deleted"),
    )


# ── Reads ────────────────────────────────────────────────────────────────


def log_query(entity_type, entity_id):
    """Log rows of one entity, newest first."""
    return (
        WorkflowLog.query
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(WorkflowLog.logged_at.desc(), WorkflowLog.id.desc())
    )


def list_log(entity_type, entity_id, limit=None):
    wtype, entity = load_entity(entity_type, entity_id)
    q = log_query(wtype.key, entity.id)
    if limit:
        q = q.limit(limit)
    return q.all()


def serialize_entity(entity_type, entity, include_children=True):
    """Entity dict with person names, and optionally actions, recent log and closure state."""
    wtype = get_workflow_type(entity_type)
    d = entity.to_dict()
    if not include_children:
        return d

    actions = (
        ActionItem.query
        .filter_by(entity_type=wtype.key, entity_id=entity.id)
        .order_by(ActionItem.due_date.is_(None), ActionItem.due_date, ActionItem.id)
        .all()
    )
    d["actions"] = [a.to_dict() for a in actions]
    d["recent_log"] = [
        entry.to_dict() for entry in log_query(wtype.key, entity.id).limit(RECENT_LOG_LIMIT)
    ]
    if wtype.closure_gated:
        latest = ClosureRequest.latest_for(wtype.key, entity.id)
        d["closure"] = latest.to_dict() if latest else None
    return d


def get_entity(entity_type, entity_id):
    """Return the full entity dict or raise NotFoundError."""
    wtype, entity = load_entity(entity_type, entity_id)
    return serialize_entity(wtype, entity)


def list_entities(entity_type, filters=None):
    """Build the filtered, ordered list query for one entity type.

    Supported filters: project_id, status, priority / severity (whichever
    the type has), assigned_to, raised_by, search, and for risks
    risk_score_min / risk_score_max. Returns a query; callers paginate.
    """
    wtype = get_workflow_type(entity_type)
    model = wtype.model
    filters = filters or {}
    q = model.query

    if filters.get("project_id") not in (None, ""):
        q = q.filter(model.project_id == _to_int("project_id", filters["project_id"]))
    if filters.get("status"):
        q = q.filter(model.status == filters["status"])
    if wtype.grade_field and filters.get(wtype.grade_field):
        q = q.filter(getattr(model, wtype.grade_field) == filters[wtype.grade_field])
    if filters.get("assigned_to") not in (None, ""):
        q = q.filter(model.assigned_to_id == _to_int("assigned_to", filters["assigned_to"]))
    if filters.get("raised_by") not in (None, ""):
        q = q.filter(model.raised_by_id == _to_int("raised_by", filters["raised_by"]))
    if filters.get("search"):
        term = f"%{filters['search']}%"
        q = q.filter(or_(
            model.title.ilike(term),
            model.number.ilike(term),
            model.description.ilike(term),
        ))

    if wtype.key == "risk":
        if filters.get("risk_score_min") not in (None, ""):
            q = q.filter(model.risk_score >= _to_int("risk_score_min", filters["risk_score_min"]))
        if filters.get("risk_score_max") not in (None, ""):
            q = q.filter(model.risk_score <= _to_int("risk_score_max", filters["risk_score_max"]))
        return q.order_by(model.risk_score.desc(), model.id.desc())

    return q.order_by(model.raised_date.desc(), model.id.desc())
