"""
Dispatches onEnter actions to their registered handlers.

Side effects are best effort: an unknown action is skipped, a failing
handler is logged and the next action still runs. Nothing here ever
rolls back a transition that has already been committed.
"""

import logging
from typing import Any, Dict, List, Optional

from stepflow.domain import ActionExecutionError, WorkflowState, WorkflowStep
from .action_handlers import ActionHandlerRegistry

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Runs named actions through an ActionHandlerRegistry."""

    def __init__(self, registry: Optional[ActionHandlerRegistry] = None):
        self.registry = registry or ActionHandlerRegistry()

    def execute_on_enter_actions(self, step: WorkflowStep, state: WorkflowState) -> Dict[str, Any]:
        """
        Execute a step's onEnter actions in declared order.

        Returns the metadata updates produced by the handlers, merged in
        action order.
        """
        return self.execute_actions(step.on_enter, state)

    def execute_actions(self, actions: List[str], state: WorkflowState) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        for action in actions:
            output = self.execute_action(action, state)
            if output:
                updates.update(output)
        return updates

    def execute_action(self, action: str, state: WorkflowState) -> Optional[Dict[str, Any]]:
        """
        Execute a single action.

        Returns the handler's metadata updates, or None when the action is
        unknown or failed.
        """
        handler = self.registry.get_handler(action)
        if handler is None:
            logger.info(f"Action {action} not implemented, skipping...")
            return None

        try:
            output = handler.execute(state)
        except Exception as e:
            error = ActionExecutionError(action, state.workflow_id, e)
            logger.error(error.message, exc_info=True)
            return None

        if output is not None and not isinstance(output, dict):
            logger.warning(
                f"Action {action} returned {type(output).__name__} instead of a dict, ignoring output"
            )
            return None

        logger.debug(f"Action {action} completed for workflow {state.workflow_id}")
        return output
