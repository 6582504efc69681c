"""
Platform-wide exception hierarchy.

Services raise these types; the app factory registers one error handler
per type so every endpoint returns the same status code and error code
for the same failure.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Risk", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced entity, action, project or person does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model/entity name (e.g. "Risk", "Action").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing a required field or carries an invalid value.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
        required: True when the failure is a missing required field.
    """

    def __init__(self, message: str, details: dict | None = None, required: bool = False) -> None:
        self.details = details or {}
        self.required = required
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness constraint.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DuplicateNumberError(ConflictError):
    """Raised when a workflow entity number is already taken for its type."""

    def __init__(self, resource: str, number: str) -> None:
        super().__init__(resource, "number", number)


class StaleVersionError(ConflictError):
    """Raised when an update was based on an outdated read of the entity.

    Maps to HTTP 409. The caller should reload and retry with the new version.
    """

    def __init__(self, resource: str, resource_id: int, expected: int | None, actual: int | None) -> None:
        self.resource = resource
        self.field = "version"
        self.value = expected
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        Exception.__init__(
            self,
            f"{resource} id={resource_id} was modified concurrently "
            f"(expected version {expected}, found {actual})",
        )


class InvalidStateError(Exception):
    """Raised when a workflow operation is not allowed from the current state.

    E.g. requesting closure while a request is already pending, or approving
    a change that is not under review. Maps to HTTP 409.
    """

    def __init__(self, message: str, current_state: str | None = None) -> None:
        self.current_state = current_state
        super().__init__(message)


class TransitionNotAuthorizedError(Exception):
    """Raised when a status may only be reached through an approval workflow.

    Maps to HTTP 403 so callers can branch on it separately from
    validation and not-found failures.
    """

    def __init__(self, resource: str, resource_id: int | None, status: str, hint: str = "") -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.status = status
        self.hint = hint
        msg = f"Cannot set {resource} id={resource_id} to {status!r} directly"
        if hint:
            msg += f". {hint}"
        super().__init__(msg)


class ClosureNotAuthorizedError(TransitionNotAuthorizedError):
    """Raised on a direct attempt to close an entity without an approved closure request."""

    def __init__(self, resource: str, resource_id: int | None, hint: str = "") -> None:
        super().__init__(
            resource, resource_id, "Closed",
            hint or "Use the closure approval workflow (request-closure, approve-closure)",
        )
