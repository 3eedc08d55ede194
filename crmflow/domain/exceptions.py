"""Error taxonomy of rule evaluation and action execution.

Inside the engine these are caught, classified and written to the execution
log. Only the HTTP layer turns them into responses.
"""

from typing import Any


class CrmflowException(Exception):
    """Root of the engine's error taxonomy.

    error_code defaults to the class name; details carries structured context
    (field, action_id) that ends up in log entry details or the HTTP body.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or type(self).__name__
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message, "details": self.details}


class ValidationException(CrmflowException):
    """Raised when a condition or action payload is malformed.

    Isolated to the single rule or action that carries the payload; sibling
    rules and actions keep processing.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or payload key that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class ConditionEvaluationError(CrmflowException):
    """Raised when a condition cannot be evaluated against a snapshot.

    Missing field, type mismatch, or an operand the operator cannot use.
    The owning rule is treated as non-matching; this is never an engine failure.
    """

    def __init__(self, field: str, operator: str, reason: str) -> None:
        super().__init__(
            f"Cannot evaluate condition on '{field}' ({operator}): {reason}",
            "CONDITION_EVALUATION_ERROR",
            {"field": field, "operator": operator, "reason": reason},
        )


class ActionExecutionError(CrmflowException):
    """Base for action handler failures. Use a Transient or Permanent subtype."""

    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "ACTION_EXECUTION_ERROR", details)


class TransientActionError(ActionExecutionError):
    """Network error or timeout; eligible for bounded retry on a later due pass."""

    retryable = True


class PermanentActionError(ActionExecutionError):
    """Failure that will not succeed on retry (bad config, missing target field, 4xx)."""


class StateChangedError(CrmflowException):
    """Raised when a workflow, rule or action was deactivated or deleted before execution.

    Results in a Skipped log entry, not Failed.
    """

    def __init__(self, kind: str, resource_id: str, state: str = "inactive") -> None:
        """Initialize with the resource that changed.

        Args:
            kind: 'workflow', 'rule' or 'action'.
            resource_id: Id of the resource.
            state: 'inactive' or 'deleted'.
        """
        super().__init__(
            f"{kind} {resource_id} is {state}",
            "STATE_CHANGED",
            {"kind": kind, "resource_id": resource_id, "state": state},
        )


class ResourceNotFoundException(CrmflowException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class SqlNotConfiguredException(CrmflowException):
    """Raised when an operation requires Postgres but DATABASE_URL is not set."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
