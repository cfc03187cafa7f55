# Domain models
from .enums import ActorType, HistoryAction, SYSTEM_ACTOR
from .entities import (
    WorkflowStep,
    WorkflowDefinition,
    WorkflowState,
    WorkflowHistoryEntry,
    TimeoutPolicy,
    utcnow,
)
from .errors import (
    WorkflowEngineError,
    WorkflowValidationError,
    DefinitionNotFoundError,
    WorkflowNotFoundError,
    InvalidTransitionError,
    RequirementNotMetError,
    PermissionDeniedError,
    ActionExecutionError,
)
from .state_machine import WorkflowStateMachine

__all__ = [
    "ActorType",
    "HistoryAction",
    "SYSTEM_ACTOR",
    "WorkflowStep",
    "WorkflowDefinition",
    "WorkflowState",
    "WorkflowHistoryEntry",
    "TimeoutPolicy",
    "utcnow",
    "WorkflowEngineError",
    "WorkflowValidationError",
    "DefinitionNotFoundError",
    "WorkflowNotFoundError",
    "InvalidTransitionError",
    "RequirementNotMetError",
    "PermissionDeniedError",
    "ActionExecutionError",
    "WorkflowStateMachine",
]
