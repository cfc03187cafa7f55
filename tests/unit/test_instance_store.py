"""
Unit tests for the in-memory instance store.
"""

import threading

from stepflow.domain import WorkflowState
from stepflow.persistence import InMemoryInstanceStore


def make_state(workflow_id="w1", workflow_type="review", step="new") -> WorkflowState:
    return WorkflowState.create(
        workflow_id=workflow_id,
        workflow_type=workflow_type,
        entry_step=step,
        entity_id="doc-1",
        entity_type="document",
    )


class TestInMemoryInstanceStore:
    """Tests for InMemoryInstanceStore."""

    def test_add_and_get(self):
        store = InMemoryInstanceStore()

        assert store.add(make_state())
        assert "w1" in store
        assert store.get("w1").current_step == "new"
        assert store.get("missing") is None

    def test_add_rejects_taken_id(self):
        """Test add never overwrites an existing instance."""
        store = InMemoryInstanceStore()
        store.add(make_state())

        assert not store.add(make_state(step="other"))
        assert store.get("w1").current_step == "new"

    def test_get_returns_copies(self):
        """Test mutating a snapshot does not change the stored state."""
        store = InMemoryInstanceStore()
        store.add(make_state())

        snapshot = store.get("w1")
        snapshot.current_step = "hacked"
        snapshot.metadata["x"] = 1

        assert store.get("w1").current_step == "new"
        assert store.get("w1").metadata == {}

    def test_compare_and_swap(self):
        """Test the swap only applies when the step still matches."""
        store = InMemoryInstanceStore()
        state = make_state()
        store.add(state)
        advanced = state.advanced_to("design", "system")

        assert not store.compare_and_swap("w1", "design", advanced)
        assert store.compare_and_swap("w1", "new", advanced)
        assert store.get("w1").current_step == "design"
        assert not store.compare_and_swap("missing", "new", advanced)

    def test_list_filters_by_type(self):
        store = InMemoryInstanceStore()
        store.add(make_state("w1", "review"))
        store.add(make_state("w2", "order"))

        assert len(store) == 2
        assert [s.workflow_id for s in store.list("order")] == ["w2"]
        assert len(store.list()) == 2

    def test_lock_is_reentrant(self):
        """Test the same thread can take an instance lock twice."""
        store = InMemoryInstanceStore()
        with store.lock("w1"):
            with store.lock("w1"):
                pass

    def test_lock_excludes_other_threads(self):
        """Test a second thread waits for the instance lock."""
        store = InMemoryInstanceStore()
        entered = threading.Event()

        def contender():
            with store.lock("w1"):
                entered.set()

        with store.lock("w1"):
            thread = threading.Thread(target=contender)
            thread.start()
            assert not entered.wait(0.1)

        thread.join(1)
        assert entered.is_set()
