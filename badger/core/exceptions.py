"""
Platform-wide exception hierarchy.

Every engine operation reports failure by raising exactly one of these
types.  Blueprints register one handler per type and map it to an HTTP
status, so callers never have to parse messages to tell failures apart.

Usage:
    from badger.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="Promotion", resource_id=promotion_id)
    raise InvalidStateError("Promotion", promotion_id, action="submit",
                            current_status="approved")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's scope.

    Used for genuinely missing rows, for promotions a non-admin caller may
    not see, and for batch ids that are absent from the expected set.

    Args:
        resource: Human-readable entity name (e.g. "Promotion", "BadgeApplication").
        resource_id: The id that was looked up.
        reason: Optional extra context (e.g. "not reserved by this promotion").
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.reason = reason
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the caller's identity or role does not permit the action.

    Covers "not the promotion owner", "not the badge owner" and
    "not an administrator".

    Args:
        user_id: The caller that was refused.
        action: The operation attempted (e.g. "add_badges", "approve").
        reason: Human-readable explanation.
    """

    def __init__(self, user_id: str | None, action: str, reason: str) -> None:
        self.user_id = user_id
        self.action = action
        self.reason = reason
        super().__init__(f"User {user_id} may not '{action}': {reason}")


class InvalidStateError(Exception):
    """Raised when a status-machine precondition fails.

    Always carries the entity's *current* status so the caller can refresh.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str,
        action: str,
        current_status: str,
        expected: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.action = action
        self.current_status = current_status
        self.expected = expected
        msg = f"Cannot '{action}' {resource} {resource_id} (status={current_status})"
        if expected:
            msg += f"; requires status={expected}"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ValidationFailedError(Exception):
    """Raised when a promotion does not meet its template at submit time.

    ``missing`` lists exactly the unsatisfied rules, each with the required
    count, the allocated count and the deficit.
    """

    def __init__(self, promotion_id: str, missing: list[dict]) -> None:
        self.promotion_id = promotion_id
        self.missing = missing
        parts = ", ".join(
            f"{m['category']}:{m['level']} {m['satisfied_count']}/{m['required']}"
            for m in missing
        )
        super().__init__(f"Promotion {promotion_id} does not meet template requirements: {parts}")


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    For reservations this names the offending badge application id and why
    it cannot be reserved (already reserved, not accepted).

    Args:
        resource: Model name.
        field: The field carrying the conflicting value.
        value: The conflicting value.
        reason: Short machine-friendly reason.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.reason = reason
        msg = f"{resource} with {field}={value!r} conflicts"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
