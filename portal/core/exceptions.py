"""
Portal-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``portal.utils.errors.register_error_handlers``) and get consistent
HTTP status codes everywhere.

Usage:
    from portal.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="Project", resource_id=42)
    raise InvalidStateError("Project is not in brand_collection", current="in_progress")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Also used when the caller has no visibility into the resource, so a
    404 never confirms that the row exists.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "PipelineJob").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
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
    """Raised when input is well-formed but fails a business rule.

    Examples: unknown action, missing rejection notes, illegal promotion path.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when an entity is not in a state that permits the operation.

    Args:
        message: Human-readable explanation.
        current: The state the entity was observed in.
        allowed: Optional list of states that would have been accepted.
    """

    def __init__(self, message: str, current: str | None = None, allowed=None) -> None:
        self.current = current
        self.allowed = sorted(allowed) if allowed else []
        super().__init__(message)


class AlreadyReviewedError(Exception):
    """Raised when a compare-and-set on a review artifact matches no row.

    Another reviewer decided first. Nothing was changed by this request.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} id={resource_id} has already been reviewed")


class ForbiddenError(Exception):
    """Raised when the caller lacks the required role or ownership."""

    def __init__(self, message: str = "Forbidden", required: str | None = None) -> None:
        self.required = required
        super().__init__(message)


class UpstreamFailure(Exception):
    """Raised when a multi-step operation fails after partial writes.

    Compensation has already run (or been attempted) by the time this
    propagates. ``step`` names the step that failed.
    """

    def __init__(self, message: str, step: str | None = None) -> None:
        self.step = step
        super().__init__(message)
