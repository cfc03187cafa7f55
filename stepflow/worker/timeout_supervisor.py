"""
Background supervisor for step timeouts.

Periodically sweeps all workflow instances and handles the ones that
have stayed in a step longer than the step's timeout policy allows.
Forced moves go through WorkflowEngine.transition_workflow, the same
locked path request handlers use.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from stepflow.domain import (
    SYSTEM_ACTOR,
    TimeoutPolicy,
    WorkflowEngineError,
    WorkflowState,
    utcnow,
)
from stepflow.services import WorkflowEngine

logger = logging.getLogger(__name__)

# (workflow_id, step_id, time the step was entered)
_VisitKey = Tuple[str, str, datetime]


class TimeoutSupervisor:
    """
    Periodic sweep over instances for expired step dwell times.

    For an expired step the policy's timeout action runs first; then, if
    the policy names an auto-transition target, the instance is moved
    there by the `system` actor. Each step visit is handled at most once,
    so a policy with only an action does not fire on every sweep.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        policies: Optional[Mapping[str, TimeoutPolicy]] = None,
        interval: float = 60.0,
        clock: Callable = utcnow,
    ):
        self.engine = engine
        self.policies: Dict[str, TimeoutPolicy] = dict(
            policies if policies is not None else engine.definitions.timeout_policies
        )
        self.interval = interval
        self._clock = clock

        self._handled: Set[_VisitKey] = set()
        self._handled_lock = threading.Lock()
        self._running = False
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start sweeping on a daemon thread."""
        if self._running:
            return
        self._running = True
        self._shutdown_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop, name="timeout-supervisor", daemon=True
        )
        self._thread.start()
        logger.info(
            f"Timeout supervisor started (interval {self.interval}s, "
            f"{len(self.policies)} step policies)"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the sweep loop and wait for the thread to exit."""
        logger.info("Stopping timeout supervisor...")
        self._running = False
        self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._running

    def _sweep_loop(self) -> None:
        while not self._shutdown_event.wait(self.interval):
            try:
                handled = self.scan_once()
                if handled:
                    logger.info(f"Handled {len(handled)} step timeouts")
            except Exception as e:
                logger.exception(f"Error in timeout sweep: {e}")

    def scan_once(self, now: Optional[datetime] = None) -> List[str]:
        """
        Run one sweep.

        Returns the ids of the workflows whose timeout was handled.
        """
        now = now or self._clock()
        handled: List[str] = []
        visits: Set[_VisitKey] = set()

        for state in self.engine.list_workflows():
            policy = self.policies.get(state.current_step)
            entered_at = state.last_entry_at
            if policy is None or entered_at is None:
                continue

            key = (state.workflow_id, state.current_step, entered_at)
            visits.add(key)
            if (now - entered_at).total_seconds() < policy.timeout_seconds:
                continue

            with self._handled_lock:
                if key in self._handled:
                    continue
                self._handled.add(key)

            try:
                self.handle_step_timeout(state, policy)
                handled.append(state.workflow_id)
            except WorkflowEngineError as e:
                logger.warning(
                    f"Timeout handling for workflow {state.workflow_id} "
                    f"at step {state.current_step} failed: {e}"
                )
            except Exception as e:
                logger.exception(f"Unexpected error handling timeout for {state.workflow_id}: {e}")

        # Drop visits that have ended.
        with self._handled_lock:
            self._handled &= visits

        return handled

    def handle_step_timeout(self, state: WorkflowState, policy: TimeoutPolicy) -> None:
        """Fire the timeout action and the auto-transition for one instance."""
        logger.info(f"Step timeout reached for workflow {state.workflow_id}, step {state.current_step}")

        if policy.timeout_action:
            self.engine.execute_action(state.workflow_id, policy.timeout_action)

        if policy.auto_transition_target:
            self.engine.transition_workflow(
                state.workflow_id,
                policy.auto_transition_target,
                SYSTEM_ACTOR,
                {"timeout": True, "timedOutStep": state.current_step},
                expected_step=state.current_step,
            )

    def get_stats(self) -> dict:
        """Get supervisor statistics."""
        with self._handled_lock:
            tracked = len(self._handled)
        return {
            "running": self._running,
            "interval": self.interval,
            "policies": sorted(self.policies),
            "tracked_visits": tracked,
        }
