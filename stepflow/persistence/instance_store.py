"""
Instance store for live workflow states.

The store is the only place workflow instances live. The in-memory
implementation keeps everything in process memory: instances are lost on
restart and there is no durability. A database-backed store only has to
honour the `InstanceStore` contract.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from stepflow.domain import WorkflowState

logger = logging.getLogger(__name__)


class InstanceStore(ABC):
    """
    Storage contract for workflow instances.

    `lock(workflow_id)` guards one instance; everything that reads a state,
    validates a change and writes it back must happen inside it.
    `compare_and_swap` lets stores without in-process locks detect a lost
    race on `current_step`.
    """

    @abstractmethod
    def get(self, workflow_id: str) -> Optional[WorkflowState]:
        """Return a snapshot of the instance, or None if unknown."""

    @abstractmethod
    def add(self, state: WorkflowState) -> bool:
        """Insert a new instance. Returns False if the id is already taken."""

    @abstractmethod
    def put(self, state: WorkflowState) -> None:
        """Insert or replace an instance."""

    @abstractmethod
    def compare_and_swap(
        self,
        workflow_id: str,
        expected_step: str,
        new_state: WorkflowState,
    ) -> bool:
        """Replace the instance only if its current step is still `expected_step`."""

    @abstractmethod
    def list(self, workflow_type: Optional[str] = None) -> List[WorkflowState]:
        """Snapshots of all instances, optionally filtered by type."""

    @abstractmethod
    def lock(self, workflow_id: str):
        """Context manager holding the per-instance lock."""

    def __contains__(self, workflow_id: str) -> bool:
        return self.get(workflow_id) is not None


class InMemoryInstanceStore(InstanceStore):
    """
    Thread-safe in-memory store.

    States are copied on the way in and on the way out, so callers never
    share objects with the store and a reader always sees a committed
    state.
    """

    def __init__(self):
        self._states: Dict[str, WorkflowState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, workflow_id: str) -> Optional[WorkflowState]:
        with self._guard:
            state = self._states.get(workflow_id)
            return state.copy() if state else None

    def add(self, state: WorkflowState) -> bool:
        with self._guard:
            if state.workflow_id in self._states:
                return False
            self._states[state.workflow_id] = state.copy()
            return True

    def put(self, state: WorkflowState) -> None:
        with self._guard:
            self._states[state.workflow_id] = state.copy()

    def compare_and_swap(
        self,
        workflow_id: str,
        expected_step: str,
        new_state: WorkflowState,
    ) -> bool:
        with self._guard:
            current = self._states.get(workflow_id)
            if current is None or current.current_step != expected_step:
                return False
            self._states[workflow_id] = new_state.copy()
            return True

    def list(self, workflow_type: Optional[str] = None) -> List[WorkflowState]:
        with self._guard:
            return [
                state.copy() for state in self._states.values()
                if workflow_type is None or state.workflow_type == workflow_type
            ]

    @contextmanager
    def lock(self, workflow_id: str) -> Iterator[None]:
        with self._guard:
            instance_lock = self._locks.setdefault(workflow_id, threading.RLock())
        with instance_lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._states)
