"""
Action handlers for onEnter side effects.

Each handler implements one named action fired when a workflow instance
enters a step. The registry maps action names to handlers so new actions
can be added without touching the engine.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from stepflow.domain import WorkflowState

logger = logging.getLogger(__name__)


class ActionHandler(ABC):
    """
    Base class for action handlers.

    Handlers receive a snapshot of the workflow state. They must not
    mutate it; metadata changes are returned as a dict and merged into
    the instance by the engine.
    """

    @property
    @abstractmethod
    def action_name(self) -> str:
        """Return the action name this handler processes."""
        pass

    @abstractmethod
    def execute(self, state: WorkflowState) -> Optional[Dict[str, Any]]:
        """
        Execute the action.

        Args:
            state: Snapshot of the workflow instance that entered the step

        Returns:
            Metadata updates for the instance, or None

        Raises:
            Exception: On any failure
        """
        pass


class FunctionActionHandler(ActionHandler):
    """Adapts a plain callable to the handler interface."""

    def __init__(self, action_name: str, func: Callable[[WorkflowState], Optional[Dict[str, Any]]]):
        self._action_name = action_name
        self._func = func

    @property
    def action_name(self) -> str:
        return self._action_name

    def execute(self, state: WorkflowState) -> Optional[Dict[str, Any]]:
        return self._func(state)


class ActionHandlerRegistry:
    """
    Registry for action handlers.

    Allows dynamic registration and lookup of handlers by action name.
    """

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """Register an action handler, replacing any previous one."""
        self._handlers[handler.action_name] = handler
        logger.info(f"Registered handler for action: {handler.action_name}")

    def register_function(
        self,
        action_name: str,
        func: Callable[[WorkflowState], Optional[Dict[str, Any]]],
    ) -> None:
        """Register a plain function as an action handler."""
        self.register(FunctionActionHandler(action_name, func))

    def get_handler(self, action_name: str) -> Optional[ActionHandler]:
        """Get a handler for an action name."""
        return self._handlers.get(action_name)

    def list_actions(self) -> List[str]:
        """List all registered action names."""
        return list(self._handlers.keys())


# ============================================
# BUILT-IN ACTION HANDLERS
# ============================================

class NotificationHandler(ActionHandler):
    """
    Handler for notification-style actions.

    Delivery transports (email, chat) live outside the engine; this
    handler records the notification in the log. The message may use
    any WorkflowState attribute as a placeholder, e.g. "{entity_id}".
    """

    def __init__(self, action_name: str, message: str, level: str = "info"):
        self._action_name = action_name
        self.message = message
        self.level = level

    @property
    def action_name(self) -> str:
        return self._action_name

    def execute(self, state: WorkflowState) -> Optional[Dict[str, Any]]:
        message = self.message.format(**vars(state))
        log_func = getattr(logger, self.level, logger.info)
        log_func(f"[{state.workflow_id}] {message}")
        return None


class AssignOrderIdHandler(ActionHandler):
    """
    Assigns an order id of the form ORD-<epoch millis>.

    An instance that already carries an `orderId` keeps it.
    """

    @property
    def action_name(self) -> str:
        return "assign_order_id"

    def execute(self, state: WorkflowState) -> Optional[Dict[str, Any]]:
        if state.metadata.get("orderId"):
            return None
        order_id = f"ORD-{int(time.time() * 1000)}"
        logger.info(f"Assigned order ID {order_id} to {state.entity_id}")
        return {"orderId": order_id}


class UpdateStatusHandler(ActionHandler):
    """Mirrors the current step into the entity status kept in metadata."""

    @property
    def action_name(self) -> str:
        return "update_status"

    def execute(self, state: WorkflowState) -> Optional[Dict[str, Any]]:
        logger.info(
            f"Updating status for {state.entity_type} {state.entity_id} to {state.current_step}"
        )
        return {"entityStatus": state.current_step}


def create_default_registry() -> ActionHandlerRegistry:
    """Create a registry with all built-in handlers."""
    registry = ActionHandlerRegistry()

    registry.register(AssignOrderIdHandler())
    registry.register(UpdateStatusHandler())
    registry.register(NotificationHandler(
        "send_confirmation_email",
        "Sending confirmation email for {entity_type} {entity_id}",
    ))
    registry.register(NotificationHandler(
        "notify_design_team",
        "Notifying design team for {entity_type} {entity_id}",
    ))
    registry.register(NotificationHandler(
        "schedule_production",
        "Scheduling production for {entity_type} {entity_id}",
    ))

    # Timeout actions
    registry.register(NotificationHandler(
        "send_payment_reminder",
        "Sending payment reminder for {entity_type} {entity_id}",
    ))
    registry.register(NotificationHandler(
        "escalate_to_design_manager",
        "Escalating {entity_type} {entity_id} to the design manager",
        level="warning",
    ))
    registry.register(NotificationHandler(
        "close_for_no_response",
        "Closing {entity_type} {entity_id} for lack of response",
    ))
    registry.register(NotificationHandler(
        "auto_close_satisfied",
        "Auto-closing {entity_type} {entity_id} as satisfied",
    ))
    registry.register(NotificationHandler(
        "notify_delay",
        "Notifying customer of a delay on {entity_type} {entity_id}",
        level="warning",
    ))

    return registry
