"""Scenario service exception hierarchy.

The service layer raises these; the API layer maps them to HTTP once:

    NotFoundError   -> 404
    ValidationError -> 422
    ConflictError   -> 409
"""


class ScenarioError(Exception):
    """Base class for scenario service errors."""


class NotFoundError(ScenarioError):
    """A scenario, line item, or plan does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Scenario", "Plan").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: object | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id}"
        msg += " not found."
        super().__init__(msg)


class ValidationError(ScenarioError):
    """Input was well-formed but violates a business rule.

    Args:
        message: Human-readable explanation.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(ScenarioError):
    """The operation clashes with the scenario's current state.

    Raised for invalid status transitions, repeated promotion, edits on a
    terminal or still-copying scenario, and lost concurrent-update races.
    """
