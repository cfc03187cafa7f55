"""
State machine over a workflow definition's step graph.

Enforces that an instance only moves along the edges declared in its
definition. Permission checks are layered on top by the engine; this
module only knows about the graph.
"""

from collections import deque
from typing import List, Optional, Set

from .entities import WorkflowDefinition
from .errors import InvalidTransitionError


class WorkflowStateMachine:
    """
    State machine for a single workflow definition.

    Valid transitions are exactly the `transitions` lists of the steps.
    Terminal steps are the ones with no outgoing transitions.
    """

    def __init__(self, definition: WorkflowDefinition):
        self.definition = definition

    def can_transition(self, from_step: str, to_step: str) -> bool:
        """Check if a transition is declared in the graph."""
        step = self.definition.get_step(from_step)
        if step is None:
            return False
        return to_step in step.transitions and self.definition.get_step(to_step) is not None

    def validate_transition(self, from_step: str, to_step: str) -> None:
        """Validate a transition, raising an error if invalid."""
        if not self.can_transition(from_step, to_step):
            raise InvalidTransitionError(
                from_step,
                to_step,
                details={"allowed": sorted(self.get_valid_transitions(from_step))},
            )

    def is_terminal(self, step_id: str) -> bool:
        """Check if a step is terminal (no further transitions possible)."""
        step = self.definition.get_step(step_id)
        return step is not None and step.is_terminal

    def get_valid_transitions(self, step_id: str) -> Set[str]:
        """Get all valid transitions from a given step."""
        step = self.definition.get_step(step_id)
        return set(step.transitions) if step else set()

    def get_transition_path(self, from_step: str, to_step: str) -> Optional[List[str]]:
        """
        Find a valid path between two steps using BFS.

        Returns the path as a list of step ids, or None if no path exists.
        """
        if from_step == to_step:
            return [from_step]

        queue = deque([(from_step, [from_step])])
        visited = {from_step}

        while queue:
            current, path = queue.popleft()

            step = self.definition.get_step(current)
            for next_step in (step.transitions if step else []):
                if next_step == to_step:
                    return path + [next_step]

                if next_step not in visited:
                    visited.add(next_step)
                    queue.append((next_step, path + [next_step]))

        return None

    def unreachable_steps(self) -> Set[str]:
        """Steps that cannot be reached from the entry step."""
        entry = self.definition.entry_step
        if entry is None:
            return set()
        return {
            step_id for step_id in self.definition.step_ids
            if self.get_transition_path(entry.id, step_id) is None
        }
