"""
Domain enums for workflow orchestration.

These enums define who may drive a workflow step and which kind of event
produced a history entry.
"""

from enum import Enum


class ActorType(str, Enum):
    """
    Kind of actor expected to drive a workflow step.

    - CUSTOMER: The customer acts on the step (e.g. approving a design)
    - INTERNAL_STAFF: Staff members act on the step (design, production)
    - SYSTEM: The engine or a background process acts on the step
    """
    CUSTOMER = "customer"
    INTERNAL_STAFF = "internal_staff"
    SYSTEM = "system"


class HistoryAction(str, Enum):
    """
    Event recorded in a workflow history entry.

    - WORKFLOW_INITIALIZED: Instance created at its entry step
    - STEP_TRANSITION: Instance moved to another step
    """
    WORKFLOW_INITIALIZED = "workflow_initialized"
    STEP_TRANSITION = "step_transition"


SYSTEM_ACTOR = ActorType.SYSTEM.value
