"""
Unit tests for the timeout supervisor.
"""

import time
from datetime import timedelta

import pytest

from stepflow.config import TestConfig
from stepflow.domain import InvalidTransitionError, TimeoutPolicy
from stepflow.services import build_engine
from stepflow.worker import TimeoutSupervisor


@pytest.fixture
def supervisor(engine, clock):
    return TimeoutSupervisor(engine, clock=clock)


@pytest.fixture
def in_review(engine, review_workflow, clock):
    """Review instance moved into the step guarded by a timeout."""
    workflow_id = review_workflow.workflow_id
    engine.transition_workflow(workflow_id, "design", "system")
    clock.advance(minutes=1)
    return engine.transition_workflow(workflow_id, "review", "system")


class TestScanOnce:
    """Tests for a single supervisor sweep."""

    def test_policies_from_definitions(self, supervisor):
        assert set(supervisor.policies) == {"review"}

    def test_nothing_before_deadline(self, supervisor, in_review, clock):
        """Test an instance inside its dwell budget is left alone."""
        clock.advance(minutes=59)

        assert supervisor.scan_once() == []
        assert supervisor.engine.get_workflow_state(in_review.workflow_id).current_step == "review"

    def test_auto_transition_after_deadline(self, supervisor, engine, in_review, clock):
        """Test an expired step runs its action and moves to the target."""
        clock.advance(seconds=3601)

        assert supervisor.scan_once() == [in_review.workflow_id]

        state = engine.get_workflow_state(in_review.workflow_id)
        assert state.current_step == "cancelled"
        assert state.metadata["reminded"] is True
        last = state.history[-1]
        assert last.actor == "system"
        assert last.step_id == "cancelled"
        assert last.metadata == {"timeout": True, "timedOutStep": "review"}

    def test_explicit_now(self, supervisor, engine, in_review):
        """Test the sweep time can be passed in."""
        entered_at = in_review.last_entry_at

        supervisor.scan_once(now=entered_at + timedelta(hours=2))

        assert engine.get_workflow_state(in_review.workflow_id).current_step == "cancelled"

    def test_steps_without_policy_ignored(self, supervisor, engine, review_workflow, clock):
        clock.advance(days=30)

        assert supervisor.scan_once() == []
        assert engine.get_workflow_state(review_workflow.workflow_id).current_step == "new"

    def test_action_only_policy_fires_once(self, engine, in_review, clock):
        """Test a policy without a target fires once per step visit."""
        calls = []
        engine.dispatcher.registry.register_function("escalate", lambda s: calls.append(s.workflow_id))
        supervisor = TimeoutSupervisor(
            engine,
            policies={"review": TimeoutPolicy("review", 60, timeout_action="escalate")},
            clock=clock,
        )

        clock.advance(minutes=5)
        assert supervisor.scan_once() == [in_review.workflow_id]
        clock.advance(minutes=5)
        assert supervisor.scan_once() == []

        assert calls == [in_review.workflow_id]
        assert supervisor.get_stats()["tracked_visits"] == 1

    def test_new_visit_fires_again(self, engine, in_review, clock):
        """Test re-entering the step starts a fresh dwell budget."""
        calls = []
        engine.dispatcher.registry.register_function("escalate", lambda s: calls.append(s.current_step))
        supervisor = TimeoutSupervisor(
            engine,
            policies={"review": TimeoutPolicy("review", 60, timeout_action="escalate")},
            clock=clock,
        )

        clock.advance(minutes=5)
        supervisor.scan_once()
        engine.transition_workflow(in_review.workflow_id, "design", "system")
        clock.advance(minutes=1)
        engine.transition_workflow(in_review.workflow_id, "review", "system")
        clock.advance(minutes=5)
        supervisor.scan_once()

        assert calls == ["review", "review"]

    def test_stale_state_is_not_forced(self, engine, in_review, clock):
        """Test an instance that already moved on is not forced again."""
        supervisor = TimeoutSupervisor(engine, clock=clock)
        stale = engine.get_workflow_state(in_review.workflow_id)
        engine.transition_workflow(in_review.workflow_id, "approved", "system")

        with pytest.raises(InvalidTransitionError):
            supervisor.handle_step_timeout(stale, supervisor.policies["review"])

        assert engine.get_workflow_state(in_review.workflow_id).current_step == "approved"


class TestSupervisorLifecycle:
    """Tests for the background sweep thread."""

    def test_start_and_stop(self, engine):
        supervisor = TimeoutSupervisor(engine, interval=0.01)

        supervisor.start()
        assert supervisor.is_running
        supervisor.stop(timeout=1)

        assert not supervisor.is_running
        assert supervisor.get_stats()["running"] is False

    def test_background_sweep_handles_timeouts(self):
        """Test the sweep thread cancels an overdue payment."""
        engine = build_engine(TestConfig())
        state = engine.initialize_workflow("orderFulfillment", "order-9", "order")
        engine.transition_workflow(state.workflow_id, "payment_pending", "system")

        entered_at = engine.get_workflow_state(state.workflow_id).last_entry_at
        overdue = entered_at + timedelta(seconds=259200 + 1)
        supervisor = TimeoutSupervisor(engine, interval=0.01, clock=lambda: overdue)

        supervisor.start()
        try:
            deadline = time.monotonic() + 2
            while time.monotonic() < deadline:
                if engine.get_workflow_state(state.workflow_id).current_step == "cancelled":
                    break
                time.sleep(0.01)
        finally:
            supervisor.stop(timeout=1)

        final = engine.get_workflow_state(state.workflow_id)
        assert final.current_step == "cancelled"
        assert final.history[-1].actor == "system"
        assert final.history[-1].metadata["timeout"] is True
