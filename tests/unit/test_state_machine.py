"""
Unit tests for the state machine.
"""

import pytest

from stepflow.domain import InvalidTransitionError
from stepflow.domain.state_machine import WorkflowStateMachine


@pytest.fixture
def machine(definition_store):
    return WorkflowStateMachine(definition_store.get_definition("review"))


class TestWorkflowStateMachine:
    """Tests for WorkflowStateMachine."""

    def test_valid_transition_new_to_design(self, machine):
        """Test new → design is declared."""
        assert machine.can_transition("new", "design")

    def test_loop_back_transition(self, machine):
        """Test review → design is allowed as a loop back."""
        assert machine.can_transition("review", "design")

    def test_undeclared_transition(self, machine):
        """Test new cannot skip straight to approved."""
        assert not machine.can_transition("new", "approved")

    def test_unknown_source_step(self, machine):
        """Test transitions from an unknown step are rejected."""
        assert not machine.can_transition("archived", "design")

    def test_terminal_step_has_no_transitions(self, machine):
        """Test approved and cancelled are terminal."""
        assert machine.is_terminal("approved")
        assert machine.is_terminal("cancelled")
        assert not machine.is_terminal("new")
        assert machine.get_valid_transitions("approved") == set()

    def test_validate_transition_raises(self, machine):
        """Test validate_transition raises with the allowed targets."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.validate_transition("new", "approved")

        assert exc_info.value.from_step == "new"
        assert exc_info.value.to_step == "approved"
        assert exc_info.value.details["allowed"] == ["cancelled", "design"]

    def test_validate_transition_passes(self, machine):
        """Test validate_transition returns quietly for a declared edge."""
        machine.validate_transition("design", "review")

    def test_get_valid_transitions(self, machine):
        """Test getting valid transitions from a step."""
        assert machine.get_valid_transitions("review") == {"approved", "design", "cancelled"}


class TestTransitionPath:
    """Tests for path finding over the step graph."""

    def test_path_to_terminal_step(self, machine):
        """Test the shortest path from new to approved."""
        assert machine.get_transition_path("new", "approved") == [
            "new", "design", "review", "approved",
        ]

    def test_path_to_self(self, machine):
        """Test a step reaches itself trivially."""
        assert machine.get_transition_path("review", "review") == ["review"]

    def test_no_path_out_of_terminal(self, machine):
        """Test nothing is reachable from a terminal step."""
        assert machine.get_transition_path("cancelled", "new") is None

    def test_all_steps_reachable(self, machine):
        """Test every step is reachable from the entry step."""
        assert machine.unreachable_steps() == set()
