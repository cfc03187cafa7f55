"""
Domain entities for workflow orchestration.

These are the core domain objects that represent workflow definitions,
running workflow instances and their history. They are independent of
any persistence mechanism.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .enums import ActorType, HistoryAction, SYSTEM_ACTOR


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class WorkflowStep:
    """
    Represents a single step in a workflow definition.

    `transitions` lists the step ids reachable from this step, `on_enter`
    the actions fired when an instance enters it and `requirements` the
    named preconditions for entering it.
    """
    id: str
    name: str
    actor: ActorType
    on_enter: List[str] = field(default_factory=list)
    transitions: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        """Build a step from its configuration mapping (camelCase keys)."""
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            actor=ActorType(data.get("actor", ActorType.SYSTEM.value)),
            on_enter=list(data.get("onEnter", [])),
            transitions=list(data.get("transitions", [])),
            requirements=list(data.get("requirements", [])),
        )

    @property
    def is_terminal(self) -> bool:
        """A step without outgoing transitions ends the workflow."""
        return not self.transitions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor": self.actor.value,
            "onEnter": list(self.on_enter),
            "transitions": list(self.transitions),
            "requirements": list(self.requirements),
        }


@dataclass
class WorkflowDefinition:
    """
    Represents a named workflow graph.

    The first step in `steps` is the sole entry point of the workflow.
    """
    workflow_type: str
    steps: List[WorkflowStep] = field(default_factory=list)
    name: str = ""
    description: str = ""

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    @property
    def entry_step(self) -> Optional[WorkflowStep]:
        return self.steps[0] if self.steps else None

    @property
    def terminal_steps(self) -> List[str]:
        return [step.id for step in self.steps if step.is_terminal]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.workflow_type,
            "name": self.name,
            "description": self.description,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass
class TimeoutPolicy:
    """
    Dwell-time budget for a step.

    When an instance stays in `step_id` longer than `timeout_seconds`, the
    `timeout_action` is fired and, if set, the instance is moved to
    `auto_transition_target`.
    """
    step_id: str
    timeout_seconds: float
    timeout_action: Optional[str] = None
    auto_transition_target: Optional[str] = None

    @classmethod
    def from_dict(cls, step_id: str, data: Dict[str, Any]) -> "TimeoutPolicy":
        return cls(
            step_id=step_id,
            timeout_seconds=float(data["timeoutSeconds"]),
            timeout_action=data.get("timeoutAction"),
            auto_transition_target=data.get("autoTransitionTarget"),
        )


@dataclass
class WorkflowHistoryEntry:
    """
    Audit record of a step entered by a workflow instance.

    One entry is written when the instance is created and one per
    successful transition.
    """
    step_id: str
    timestamp: datetime
    actor: str
    action: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        step_id: str,
        actor: str,
        action: HistoryAction,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> "WorkflowHistoryEntry":
        """Factory method to create a new history entry."""
        return cls(
            step_id=step_id,
            timestamp=timestamp or utcnow(),
            actor=actor,
            action=action.value,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepId": self.step_id,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "action": self.action,
            "metadata": self.metadata,
        }


@dataclass
class WorkflowState:
    """
    Represents one running workflow instance tied to a business entity.

    `workflow_id` never changes after creation and `history` only grows.
    """
    workflow_id: str
    workflow_type: str
    current_step: str
    entity_id: str
    entity_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    history: List[WorkflowHistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        workflow_id: str,
        workflow_type: str,
        entry_step: str,
        entity_id: str,
        entity_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> "WorkflowState":
        """Factory method to create an instance positioned at its entry step."""
        now = now or utcnow()
        return cls(
            workflow_id=workflow_id,
            workflow_type=workflow_type,
            current_step=entry_step,
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=dict(metadata or {}),
            history=[
                WorkflowHistoryEntry.create(
                    step_id=entry_step,
                    actor=SYSTEM_ACTOR,
                    action=HistoryAction.WORKFLOW_INITIALIZED,
                    timestamp=now,
                )
            ],
            created_at=now,
            updated_at=now,
        )

    def advanced_to(
        self,
        target_step: str,
        actor: str,
        transition_metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> "WorkflowState":
        """
        Return a copy of this state moved to `target_step`.

        The copy carries the merged metadata and one extra history entry;
        the receiver is left untouched so a failed commit changes nothing.
        """
        transition_metadata = dict(transition_metadata or {})
        # History timestamps never go backwards even if the clock does.
        now = max(now or utcnow(), self.updated_at, self.last_entry_at or self.created_at)

        advanced = self.copy()
        advanced.current_step = target_step
        advanced.metadata.update(transition_metadata)
        advanced.history.append(
            WorkflowHistoryEntry.create(
                step_id=target_step,
                actor=actor,
                action=HistoryAction.STEP_TRANSITION,
                metadata=transition_metadata,
                timestamp=now,
            )
        )
        advanced.updated_at = now
        return advanced

    @property
    def last_entry_at(self) -> Optional[datetime]:
        """Timestamp of the most recent history entry."""
        return self.history[-1].timestamp if self.history else None

    @property
    def transition_count(self) -> int:
        return max(len(self.history) - 1, 0)

    def copy(self) -> "WorkflowState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "workflowType": self.workflow_type,
            "currentStep": self.current_step,
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "metadata": self.metadata,
            "history": [entry.to_dict() for entry in self.history],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
