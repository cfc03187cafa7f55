"""
Test configuration and fixtures.

Provides common fixtures for unit and integration tests.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

# Set test environment before importing app modules
os.environ["FLASK_ENV"] = "testing"
os.environ["TIMEOUT_SUPERVISOR_ENABLED"] = "false"

from stepflow.config import TestConfig
from stepflow.persistence import DefinitionStore, InMemoryInstanceStore
from stepflow.services import (
    ActionDispatcher,
    ActionHandlerRegistry,
    PermissionEvaluator,
    RequirementEvaluator,
    WorkflowEngine,
    build_engine,
)


class FakeClock:
    """Controllable UTC clock for deterministic timestamps."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A fake clock starting at 2024-01-01 09:00 UTC."""
    return FakeClock()


@pytest.fixture
def routes_config():
    """Small workflow routes mapping with one timeout policy."""
    return {
        "version": "1.0.0",
        "reviewWorkflow": {
            "name": "Review",
            "steps": [
                {"id": "new", "name": "New", "actor": "customer",
                 "onEnter": ["tag_entity"], "transitions": ["design", "cancelled"],
                 "requirements": []},
                {"id": "design", "name": "Design", "actor": "internal_staff",
                 "onEnter": ["notify_design_team"], "transitions": ["review", "cancelled"],
                 "requirements": ["designer_assigned"]},
                {"id": "review", "name": "Review", "actor": "customer",
                 "onEnter": [], "transitions": ["approved", "design", "cancelled"],
                 "requirements": []},
                {"id": "approved", "name": "Approved", "actor": "system",
                 "onEnter": [], "transitions": [], "requirements": []},
                {"id": "cancelled", "name": "Cancelled", "actor": "system",
                 "onEnter": [], "transitions": [], "requirements": []},
            ],
        },
        "timeouts": {
            "review": {
                "timeoutSeconds": 3600,
                "timeoutAction": "send_review_reminder",
                "autoTransitionTarget": "cancelled",
            },
        },
    }


@pytest.fixture
def security_policies():
    """RBAC roles mirroring the bundled security policies."""
    return {
        "rbac": {
            "roles": {
                "admin": {"permissions": ["workflow:*"]},
                "staff": {"permissions": ["workflow:transition"]},
                "designer": {"permissions": ["workflow:transition", "view_designs"]},
                "salesperson": {"permissions": ["create_orders", "edit_orders"]},
                "customer": {"permissions": ["view_own_orders"]},
            }
        },
        "actorRoles": {"alice": "designer", "bob": "salesperson"},
    }


@pytest.fixture
def definition_store(routes_config):
    return DefinitionStore.from_config(routes_config)


@pytest.fixture
def permissions(security_policies):
    return PermissionEvaluator.from_security_policies(security_policies, default_role="customer")


@pytest.fixture
def notify_handler():
    """Mock handler standing in for the design team notification."""
    handler = MagicMock()
    handler.action_name = "notify_design_team"
    handler.execute.return_value = None
    return handler


@pytest.fixture
def registry(notify_handler):
    """Registry with a mock notification and two function handlers."""
    registry = ActionHandlerRegistry()
    registry.register(notify_handler)
    registry.register_function("tag_entity", lambda state: {"tag": state.entity_id})
    registry.register_function("send_review_reminder", lambda state: {"reminded": True})
    return registry


@pytest.fixture
def instances():
    return InMemoryInstanceStore()


@pytest.fixture
def engine(definition_store, permissions, registry, instances, clock):
    """Engine over the small review workflow with a fake clock."""
    return WorkflowEngine(
        definitions=definition_store,
        permissions=permissions,
        dispatcher=ActionDispatcher(registry),
        requirements=RequirementEvaluator(),
        instances=instances,
        clock=clock,
    )


@pytest.fixture
def review_workflow(engine):
    """A review workflow instance at its entry step."""
    return engine.initialize_workflow("review", "doc-1", "document", {"owner": "carol"})


# ============================================
# Integration Test Fixtures
# ============================================

@pytest.fixture
def default_engine():
    """Engine built from the bundled configuration files."""
    return build_engine(TestConfig())


@pytest.fixture
def app(default_engine):
    """Create Flask test application."""
    from stepflow.api.app import create_app

    app = create_app(TestConfig(), engine=default_engine)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
