"""Project and people directory service.

Projects own every workflow entity; people are the actors and assignees
referenced by entities, actions and log entries. Each mutating function is
one unit of work (``atomic()``).
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, InvalidStateError, ValidationError
from app.models import db
from app.models.action_log import ActionLog
from app.models.project import PROJECT_STATUSES, Person, Project
from app.models.workflow import ENTITY_MODELS
from app.utils.helpers import atomic, get_or_raise, parse_date_strict

logger = logging.getLogger(__name__)


def _require(data: dict, *fields: str) -> None:
    missing = [f for f in fields if not str(data.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
            required=True,
        )


# ── Projects ─────────────────────────────────────────────────────────────


def _apply_project(project: Project, data: dict) -> None:
    for name in ("project_name", "description", "project_manager", "client_name"):
        if name in data:
            setattr(project, name, data[name] or "")
    if "status" in data and data["status"] is not None:
        if data["status"] not in PROJECT_STATUSES:
            raise ValidationError(
                f"Invalid status {data['status']!r}. Must be one of: {', '.join(PROJECT_STATUSES)}",
                details={"status": data["status"]},
            )
        project.status = data["status"]
    for name in ("start_date", "end_date"):
        if name in data:
            setattr(project, name, parse_date_strict(name, data[name]))
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationError("end_date must not be before start_date",
                              details={"end_date": project.end_date.isoformat()})


def list_projects(status: str | None = None, search: str | None = None) -> list[Project]:
    q = Project.query
    if status:
        q = q.filter(Project.status == status)
    if search:
        term = f"%{search}%"
        q = q.filter(or_(Project.project_name.ilike(term), Project.project_code.ilike(term)))
    return q.order_by(Project.project_code).all()


def get_project(project_id: int) -> Project:
    return get_or_raise(Project, project_id, "Project")


def create_project(data: dict) -> Project:
    """Create a project. ``project_code`` is normalised to upper case.

    Raises:
        ValidationError: project_code / project_name missing or bad values.
        ConflictError: project_code already used.
    """
    data = data or {}
    _require(data, "project_code", "project_name")
    code = str(data["project_code"]).strip().upper()

    try:
        with atomic():
            if Project.query.filter_by(project_code=code).first():
                raise ConflictError("Project", "project_code", code)
            project = Project(project_code=code, project_name=str(data["project_name"]).strip())
            _apply_project(project, data)
            db.session.add(project)
            db.session.flush()
    except IntegrityError:
        raise ConflictError("Project", "project_code", code) from None

    logger.info("Created project %s", code, extra={"project_id": project.id, "event_type": "project_created"})
    return project


def update_project(project_id: int, data: dict) -> Project:
    project = get_project(project_id)
    data = data or {}
    if "project_name" in data and not str(data["project_name"] or "").strip():
        raise ValidationError("project_name cannot be empty",
                              details={"project_name": "required"}, required=True)

    with atomic():
        if data.get("project_code"):
            code = str(data["project_code"]).strip().upper()
            clash = Project.query.filter(Project.project_code == code, Project.id != project.id).first()
            if clash:
                raise ConflictError("Project", "project_code", code)
            project.project_code = code
        _apply_project(project, data)
    return project


def delete_project(project_id: int) -> None:
    """Delete a project that no longer owns any workflow entity or action log.

    Raises:
        InvalidStateError: the project still has workflow entities or
            action logs.
    """
    project = get_project(project_id)
    owned = {
        key: model.query.filter_by(project_id=project.id).count()
        for key, model in ENTITY_MODELS.items()
    }
    owned["action_log"] = ActionLog.query.filter_by(project_id=project.id).count()
    if any(owned.values()):
        summary = ", ".join(f"{n} {key}" for key, n in owned.items() if n)
        raise InvalidStateError(
            f"Project {project.project_code} still owns tracked work ({summary})",
            current_state=project.status,
        )
    with atomic():
        db.session.delete(project)
    logger.info("Deleted project %s", project_id, extra={"project_id": project_id, "event_type": "project_deleted"})


# ── People ───────────────────────────────────────────────────────────────


def _apply_person(person: Person, data: dict) -> None:
    for name in ("full_name", "email", "role", "department"):
        if name in data:
            setattr(person, name, data[name] or "")
    if "is_active" in data:
        person.is_active = bool(data["is_active"])


def list_people(active_only: bool = False, search: str | None = None) -> list[Person]:
    q = Person.query
    if active_only:
        q = q.filter(Person.is_active.is_(True))
    if search:
        term = f"%{search}%"
        q = q.filter(or_(Person.full_name.ilike(term), Person.username.ilike(term),
                         Person.email.ilike(term)))
    return q.order_by(Person.full_name).all()


def get_person(person_id: int) -> Person:
    return get_or_raise(Person, person_id, "Person")


def create_person(data: dict) -> Person:
    data = data or {}
    _require(data, "username", "full_name")
    username = str(data["username"]).strip()

    try:
        with atomic():
            if Person.query.filter_by(username=username).first():
                raise ConflictError("Person", "username", username)
            person = Person(username=username, full_name=str(data["full_name"]).strip())
            _apply_person(person, data)
            db.session.add(person)
            db.session.flush()
    except IntegrityError:
        raise ConflictError("Person", "username", username) from None
    return person


def update_person(person_id: int, data: dict) -> Person:
    person = get_person(person_id)
    data = data or {}
    if "full_name" in data and not str(data["full_name"] or "").strip():
        raise ValidationError("full_name cannot be empty",
                              details={"full_name": "required"}, required=True)

    with atomic():
        if data.get("username") and data["username"] != person.username:
            clash = Person.query.filter(Person.username == data["username"], Person.id != person.id).first()
            if clash:
                raise ConflictError("Person", "username", data["username"])
            person.username = data["username"]
        _apply_person(person, data)
    return person
