"""
Workflow engine - the core state machine service.

Initializes workflow instances, validates and applies transitions, and
hands entered steps to the action dispatcher.

Concurrency model:
- Validation, state change and history append for one instance run
  inside that instance's lock and are committed with a compare-and-swap
  on the current step
- onEnter actions run after the lock is released, so slow side effects
  never block other transitions
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from stepflow.config import Config, get_config
from stepflow.domain import (
    WorkflowDefinition,
    WorkflowState,
    WorkflowStep,
    WorkflowStateMachine,
    DefinitionNotFoundError,
    WorkflowNotFoundError,
    InvalidTransitionError,
    RequirementNotMetError,
    utcnow,
)
from stepflow.persistence import (
    DefinitionStore,
    InstanceStore,
    InMemoryInstanceStore,
    load_json_config,
)
from .action_dispatcher import ActionDispatcher
from .action_handlers import ActionHandlerRegistry, create_default_registry
from .analytics import AnalyticsEngine
from .permissions import PermissionEvaluator
from .requirements import RequirementCheck, RequirementEvaluator

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Orchestrates workflow instances over their definitions.

    The engine is a plain object: build it once at process start and
    pass it to whatever needs it (HTTP handlers, the timeout supervisor).
    """

    def __init__(
        self,
        definitions: DefinitionStore,
        permissions: PermissionEvaluator,
        dispatcher: Optional[ActionDispatcher] = None,
        requirements: Optional[RequirementEvaluator] = None,
        instances: Optional[InstanceStore] = None,
        analytics: Optional[AnalyticsEngine] = None,
        enforce_requirements: bool = False,
        clock: Callable = utcnow,
    ):
        self.definitions = definitions
        self.permissions = permissions
        self.dispatcher = dispatcher or ActionDispatcher(create_default_registry())
        self.requirements = requirements or RequirementEvaluator()
        self.instances = instances if instances is not None else InMemoryInstanceStore()
        self.analytics = analytics or AnalyticsEngine(self.instances, definitions=definitions, clock=clock)
        self.enforce_requirements = enforce_requirements
        self._clock = clock

    # ============================================
    # LIFECYCLE
    # ============================================

    def initialize_workflow(
        self,
        workflow_type: str,
        entity_id: str,
        entity_type: str,
        initial_metadata: Optional[Dict[str, Any]] = None,
    ) -> WorkflowState:
        """
        Create a new workflow instance at the definition's first step.

        The entry step's onEnter actions run before this returns.
        """
        definition = self.definitions.get_definition(workflow_type)
        entry_step = definition.entry_step
        if entry_step is None:
            raise DefinitionNotFoundError(workflow_type)

        now = self._clock()
        base_id = f"{workflow_type}_{entity_id}_{int(now.timestamp() * 1000)}"
        state = WorkflowState.create(
            workflow_id=base_id,
            workflow_type=workflow_type,
            entry_step=entry_step.id,
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=initial_metadata,
            now=now,
        )

        suffix = 1
        while not self.instances.add(state):
            suffix += 1
            state.workflow_id = f"{base_id}_{suffix}"

        logger.info(
            f"Initialized workflow {state.workflow_id} for {entity_type} {entity_id} "
            f"at step {entry_step.id}"
        )

        self._run_on_enter_actions(entry_step, state)
        return self.get_workflow_state(state.workflow_id) or state

    def transition_workflow(
        self,
        workflow_id: str,
        target_step: str,
        actor: str,
        transition_metadata: Optional[Dict[str, Any]] = None,
        expected_step: Optional[str] = None,
    ) -> WorkflowState:
        """
        Move an instance to `target_step`.

        Raises WorkflowNotFoundError, PermissionDeniedError or
        InvalidTransitionError; on any failure the stored state is left
        unchanged. `expected_step`, when given, must match the current
        step or the call fails as an invalid transition.
        """
        transition_metadata = dict(transition_metadata or {})

        with self.instances.lock(workflow_id):
            state = self._get_state_or_raise(workflow_id)
            from_step = state.current_step

            if expected_step is not None and expected_step != from_step:
                raise InvalidTransitionError(
                    from_step,
                    target_step,
                    message=f"Workflow {workflow_id} is at {from_step}, expected {expected_step}",
                )

            definition = self.definitions.get_definition(state.workflow_type)
            self.validate_transition(
                from_step, target_step, actor, state, transition_metadata, definition=definition
            )

            new_state = state.advanced_to(target_step, actor, transition_metadata, now=self._clock())
            if not self.instances.compare_and_swap(workflow_id, from_step, new_state):
                raise InvalidTransitionError(
                    from_step,
                    target_step,
                    message=f"Workflow {workflow_id} was modified concurrently",
                )

        logger.info(f"Workflow {workflow_id} transitioned {from_step} -> {target_step} by {actor}")

        step = definition.get_step(target_step)
        if step is not None:
            self._run_on_enter_actions(step, new_state)

        return self.get_workflow_state(workflow_id) or new_state

    def validate_transition(
        self,
        from_step: str,
        to_step: str,
        actor: str,
        state: WorkflowState,
        transition_metadata: Optional[Dict[str, Any]] = None,
        definition: Optional[WorkflowDefinition] = None,
    ) -> bool:
        """
        Validate a transition without changing anything.

        Permission is checked first, then the step graph edge, then (only
        when enforcement is enabled) the target step's requirements.
        """
        self.permissions.require(actor, "transition")

        if definition is None:
            definition = self.definitions.get_definition(state.workflow_type)
        WorkflowStateMachine(definition).validate_transition(from_step, to_step)

        if self.enforce_requirements:
            step = definition.get_step(to_step)
            context = {**state.metadata, **(transition_metadata or {})}
            check = self.requirements.validate_step_requirements(step.requirements, context)
            if not check.valid:
                raise RequirementNotMetError(from_step, to_step, check.missing)

        return True

    # ============================================
    # QUERIES
    # ============================================

    def get_workflow_state(self, workflow_id: str) -> Optional[WorkflowState]:
        """Get a snapshot of an instance, or None if it is unknown."""
        return self.instances.get(workflow_id)

    def get_workflow_history(self, workflow_id: str) -> list:
        """Get an instance's history; empty for unknown instances."""
        state = self.instances.get(workflow_id)
        return state.history if state else []

    def get_step_requirements(self, workflow_id: str, step_id: str) -> List[str]:
        """Requirement names declared on a step of the instance's definition."""
        state = self._get_state_or_raise(workflow_id)
        step = self.get_definition_for(state).get_step(step_id)
        return list(step.requirements) if step else []

    def validate_step_requirements(
        self,
        workflow_id: str,
        step_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> RequirementCheck:
        """
        Check a step's requirements against the instance metadata.

        Fields in `context` override metadata fields of the same name.
        """
        state = self._get_state_or_raise(workflow_id)
        requirements = self.get_step_requirements(workflow_id, step_id)
        return self.requirements.validate_step_requirements(
            requirements, {**state.metadata, **(context or {})}
        )

    def get_available_transitions(self, workflow_id: str) -> List[str]:
        """Steps reachable in one transition from the current step."""
        state = self._get_state_or_raise(workflow_id)
        step = self.get_definition_for(state).get_step(state.current_step)
        return list(step.transitions) if step else []

    def check_actor_permissions(self, actor: str, action: str = "transition") -> bool:
        return self.permissions.is_allowed(actor, action)

    def list_workflows(self, workflow_type: Optional[str] = None) -> List[WorkflowState]:
        return self.instances.list(workflow_type)

    def get_definition_for(self, state: WorkflowState) -> WorkflowDefinition:
        return self.definitions.get_definition(state.workflow_type)

    def get_workflow_metrics(self, workflow_type: str, start_date=None, end_date=None) -> Dict[str, Any]:
        return self.analytics.get_workflow_metrics(workflow_type, start_date, end_date)

    def get_workflow_analytics(self, workflow_type: str, start_date=None, end_date=None) -> Dict[str, Any]:
        return self.analytics.get_workflow_analytics(workflow_type, start_date, end_date)

    # ============================================
    # ACTIONS
    # ============================================

    def execute_action(self, workflow_id: str, action: str) -> Optional[Dict[str, Any]]:
        """Run one named action against an instance outside any transition."""
        state = self._get_state_or_raise(workflow_id)
        output = self.dispatcher.execute_action(action, state)
        if output:
            self._apply_action_updates(state, output)
        return output

    def _run_on_enter_actions(self, step: WorkflowStep, state: WorkflowState) -> None:
        updates = self.dispatcher.execute_on_enter_actions(step, state)
        if updates:
            self._apply_action_updates(state, updates)

    def _apply_action_updates(self, source: WorkflowState, updates: Dict[str, Any]) -> None:
        """
        Merge handler output into instance metadata; no history entry.

        `source` is the snapshot the handlers ran against. The output is
        dropped when the instance has taken another transition since that
        snapshot.
        """
        workflow_id = source.workflow_id
        with self.instances.lock(workflow_id):
            state = self.instances.get(workflow_id)
            if state is None:
                return
            if len(state.history) != len(source.history):
                logger.info(
                    f"Dropping action output for workflow {workflow_id}: entered at "
                    f"{source.current_step}, now at {state.current_step}"
                )
                return
            state.metadata.update(updates)
            state.updated_at = max(self._clock(), state.updated_at)
            self.instances.put(state)

    def _get_state_or_raise(self, workflow_id: str) -> WorkflowState:
        state = self.instances.get(workflow_id)
        if state is None:
            raise WorkflowNotFoundError(workflow_id)
        return state


def build_engine(
    config: Optional[Config] = None,
    registry: Optional[ActionHandlerRegistry] = None,
    instances: Optional[InstanceStore] = None,
) -> WorkflowEngine:
    """Build an engine from the configured workflow routes and security policies."""
    config = config or get_config()

    definitions = DefinitionStore.from_json_file(config.workflow_routes_file)
    policies = load_json_config(config.security_policies_file)
    permissions = PermissionEvaluator.from_security_policies(
        policies, default_role=config.DEFAULT_ACTOR_ROLE
    )
    if instances is None:
        instances = InMemoryInstanceStore()

    return WorkflowEngine(
        definitions=definitions,
        permissions=permissions,
        dispatcher=ActionDispatcher(registry or create_default_registry()),
        requirements=RequirementEvaluator(),
        instances=instances,
        analytics=AnalyticsEngine(
            instances,
            definitions=definitions,
            bottleneck_threshold_seconds=config.BOTTLENECK_THRESHOLD_SECONDS,
        ),
        enforce_requirements=config.ENFORCE_STEP_REQUIREMENTS,
    )
