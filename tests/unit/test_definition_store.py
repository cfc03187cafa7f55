"""
Unit tests for the definition store and configuration loading.
"""

import pytest

from stepflow.config import TestConfig
from stepflow.domain import DefinitionNotFoundError, WorkflowValidationError
from stepflow.persistence import DefinitionStore, load_json_config


class TestLoadJsonConfig:
    """Tests for reading JSON configuration files."""

    def test_strips_comment_lines(self, tmp_path):
        """Test lines starting with // are ignored."""
        path = tmp_path / "routes.json"
        path.write_text('// header\n{\n  // inline\n  "version": "2"\n}\n')

        assert load_json_config(path) == {"version": "2"}

    def test_invalid_json(self, tmp_path):
        """Test malformed files raise a validation error."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(WorkflowValidationError):
            load_json_config(path)


class TestDefinitionStore:
    """Tests for DefinitionStore."""

    def test_from_config_strips_suffix(self, definition_store):
        """Test reviewWorkflow is registered as review."""
        assert definition_store.list_types() == ["review"]
        assert definition_store.has_definition("review")
        assert definition_store.get_definition("review").entry_step.id == "new"

    def test_timeout_policies(self, definition_store):
        """Test the timeouts section becomes per-step policies."""
        policy = definition_store.timeout_policies["review"]
        assert policy.timeout_seconds == 3600
        assert policy.auto_transition_target == "cancelled"

    def test_unknown_type(self, definition_store):
        """Test looking up an unknown type raises."""
        with pytest.raises(DefinitionNotFoundError):
            definition_store.get_definition("payroll")

    def test_entries_without_steps_ignored(self):
        """Test non-definition keys are skipped."""
        store = DefinitionStore.from_config({
            "version": "1.0.0",
            "metadata": {"owner": "ops"},
            "simple": {"steps": [{"id": "only"}]},
        })
        assert store.list_types() == ["simple"]

    def test_duplicate_type(self):
        """Test a type defined with and without the suffix is rejected."""
        with pytest.raises(WorkflowValidationError):
            DefinitionStore.from_config({
                "order": {"steps": [{"id": "a"}]},
                "orderWorkflow": {"steps": [{"id": "a"}]},
            })

    def test_unknown_transition_target(self):
        """Test transitions must point at declared steps."""
        with pytest.raises(WorkflowValidationError) as exc_info:
            DefinitionStore.from_config({
                "broken": {"steps": [{"id": "a", "transitions": ["b"]}]},
            })
        assert exc_info.value.details["unknown"] == ["b"]

    def test_duplicate_step_id(self):
        """Test step ids must be unique within a definition."""
        with pytest.raises(WorkflowValidationError):
            DefinitionStore.from_config({
                "broken": {"steps": [{"id": "a"}, {"id": "a"}]},
            })

    def test_invalid_actor(self):
        """Test an unknown actor kind is a validation error."""
        with pytest.raises(WorkflowValidationError):
            DefinitionStore.from_config({
                "broken": {"steps": [{"id": "a", "actor": "robot"}]},
            })

    def test_step_without_id(self):
        """Test every step needs an id."""
        with pytest.raises(WorkflowValidationError):
            DefinitionStore.from_config({"broken": {"steps": [{"name": "nameless"}]}})

    def test_bundled_definitions(self):
        """Test the bundled routes file loads all three workflows."""
        store = DefinitionStore.from_json_file(TestConfig().workflow_routes_file)

        assert store.list_types() == [
            "customClothingProduction",
            "orderFulfillment",
            "supportTicket",
        ]
        assert store.get_definition("orderFulfillment").entry_step.id == "new"
        assert store.timeout_policies["payment_pending"].timeout_action == "send_payment_reminder"
        assert store.timeout_policies["design"].auto_transition_target is None
