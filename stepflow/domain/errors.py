"""Domain errors raised by the workflow engine."""

from typing import Any, Dict, List, Optional


class WorkflowEngineError(Exception):
    """Base error for all workflow engine failures."""

    error_code: str = "WORKFLOW_ENGINE_ERROR"
    http_status: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class WorkflowValidationError(WorkflowEngineError):
    """Raised when a workflow definition is malformed."""
    error_code = "WORKFLOW_VALIDATION_ERROR"


class DefinitionNotFoundError(WorkflowEngineError):
    """Raised when a workflow type has no definition."""
    error_code = "DEFINITION_NOT_FOUND"
    http_status = 404

    def __init__(self, workflow_type: str):
        self.workflow_type = workflow_type
        super().__init__(
            f"Workflow type {workflow_type} not found",
            details={"workflow_type": workflow_type},
        )


class WorkflowNotFoundError(WorkflowEngineError):
    """Raised when a workflow instance id is unknown."""
    error_code = "WORKFLOW_NOT_FOUND"
    http_status = 404

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(
            f"Workflow {workflow_id} not found",
            details={"workflow_id": workflow_id},
        )


class InvalidTransitionError(WorkflowEngineError):
    """Raised when the target step is not reachable from the current step."""
    error_code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(
        self,
        from_step: str,
        to_step: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(
            message or f"Invalid transition from {from_step} to {to_step}",
            details={"from_step": from_step, "to_step": to_step, **(details or {})},
        )


class RequirementNotMetError(InvalidTransitionError):
    """Raised when blocking requirement checks are enabled and fail."""
    error_code = "REQUIREMENT_NOT_MET"

    def __init__(self, from_step: str, to_step: str, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            from_step,
            to_step,
            message=f"Requirements not met for step {to_step}: {', '.join(missing)}",
            details={"missing": self.missing},
        )


class PermissionDeniedError(WorkflowEngineError):
    """Raised when an actor lacks the permission for a workflow action."""
    error_code = "PERMISSION_DENIED"
    http_status = 403

    def __init__(self, actor: str, action: str, role: Optional[str] = None):
        self.actor = actor
        self.action = action
        self.role = role
        super().__init__(
            f"Actor {actor} is not allowed to perform workflow:{action}",
            details={"actor": actor, "action": action, "role": role},
        )


class ActionExecutionError(WorkflowEngineError):
    """
    Wraps a failure raised by an onEnter action handler.

    Never propagated out of the dispatcher: it is logged and the next
    action runs.
    """
    error_code = "ACTION_EXECUTION_ERROR"
    http_status = 500

    def __init__(self, action: str, workflow_id: str, cause: Exception):
        self.action = action
        self.workflow_id = workflow_id
        self.cause = cause
        super().__init__(
            f"Failed to execute action {action} for workflow {workflow_id}: {cause}",
            details={"action": action, "workflow_id": workflow_id, "error_type": type(cause).__name__},
        )
