"""Shared utility functions used by the service layer.

get_or_raise:  primary-key lookup raising NotFoundError
parse_date:    lenient date parsing (returns None on bad input)
parse_date_strict: same formats, raises ValidationError on bad input
atomic:        one commit-or-rollback unit of work around service writes
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_strict(field, value):
    """Parse a date like ``parse_date`` but raise ValidationError on bad input.

    Empty values still return None so optional dates can be cleared.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid date for {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: value},
        )
    return parsed


# ── Transaction helper ──────────────────────────────────────────────────────

@contextmanager
def atomic():
    """Run the enclosed writes as one unit of work.

    Commits on normal exit. On any exception the session is rolled back
    and the exception re-raised, so a failed service call leaves the
    database exactly as it found it.

    Usage::

        with atomic():
            entity.status = new_status
            write_log(...)

    IntegrityError / OperationalError are logged here; domain exceptions
    from app.core.exceptions are left to the caller.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        raise
    except Exception:
        db.session.rollback()
        raise
