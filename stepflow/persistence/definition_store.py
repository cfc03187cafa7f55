"""
Definition store for workflow graphs.

Definitions are loaded once from the external workflow routes
configuration and are read-only for the lifetime of the process. A
reload means building a new store from freshly fetched configuration.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from stepflow.domain import (
    ActorType,
    TimeoutPolicy,
    WorkflowDefinition,
    WorkflowStep,
    DefinitionNotFoundError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)

DEFINITION_KEY_SUFFIX = "Workflow"
TIMEOUTS_KEY = "timeouts"


def load_json_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a JSON configuration file.

    Lines whose first non-blank characters are `//` are treated as
    comments and dropped before parsing.
    """
    with open(path, "r", encoding="utf-8") as fh:
        lines = [line for line in fh if not line.strip().startswith("//")]
    try:
        return json.loads("".join(lines))
    except json.JSONDecodeError as e:
        raise WorkflowValidationError(
            f"Invalid JSON in configuration file {path}: {e}",
            details={"path": str(path)},
        ) from e


class DefinitionStore:
    """Read-only registry of workflow definitions keyed by workflow type."""

    def __init__(
        self,
        definitions: Optional[Mapping[str, WorkflowDefinition]] = None,
        timeout_policies: Optional[Mapping[str, TimeoutPolicy]] = None,
    ):
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in (definitions or {}).values():
            self._validate(definition)
            self._definitions[definition.workflow_type] = definition
        self._timeout_policies: Dict[str, TimeoutPolicy] = dict(timeout_policies or {})

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DefinitionStore":
        """
        Build a store from a workflow routes mapping.

        Each definition is either keyed by its type (`orderFulfillment`)
        or by the type plus a `Workflow` suffix (`orderFulfillmentWorkflow`)
        and holds a `steps` list. Entries without `steps` are ignored.
        """
        definitions: Dict[str, WorkflowDefinition] = {}

        for key, value in config.items():
            if key == TIMEOUTS_KEY or not isinstance(value, Mapping) or "steps" not in value:
                continue

            workflow_type = key
            if key.endswith(DEFINITION_KEY_SUFFIX) and len(key) > len(DEFINITION_KEY_SUFFIX):
                workflow_type = key[: -len(DEFINITION_KEY_SUFFIX)]

            if workflow_type in definitions:
                raise WorkflowValidationError(
                    f"Workflow type {workflow_type} is defined more than once",
                    details={"workflow_type": workflow_type},
                )
            definitions[workflow_type] = cls._parse_definition(workflow_type, value)

        timeout_policies = {
            step_id: TimeoutPolicy.from_dict(step_id, policy)
            for step_id, policy in (config.get(TIMEOUTS_KEY) or {}).items()
        }

        store = cls(definitions, timeout_policies)
        logger.info(f"Loaded {len(definitions)} workflow definitions: {', '.join(store.list_types())}")
        return store

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "DefinitionStore":
        """Build a store from a workflow routes JSON file."""
        logger.info(f"Loading workflow definitions from {path}")
        return cls.from_config(load_json_config(path))

    @staticmethod
    def _parse_definition(workflow_type: str, data: Mapping[str, Any]) -> WorkflowDefinition:
        steps = data.get("steps") or []
        if not isinstance(steps, list):
            raise WorkflowValidationError(
                f"Steps of workflow {workflow_type} must be a list",
                details={"workflow_type": workflow_type},
            )

        parsed: List[WorkflowStep] = []
        for raw in steps:
            if not isinstance(raw, Mapping) or not raw.get("id"):
                raise WorkflowValidationError(
                    f"Every step of workflow {workflow_type} needs an id",
                    details={"workflow_type": workflow_type},
                )
            try:
                parsed.append(WorkflowStep.from_dict(raw))
            except ValueError as e:
                valid = ", ".join(a.value for a in ActorType)
                raise WorkflowValidationError(
                    f"Step {raw['id']} of workflow {workflow_type} has an invalid actor "
                    f"(expected one of {valid})",
                    details={"workflow_type": workflow_type, "step_id": raw["id"]},
                ) from e

        return WorkflowDefinition(
            workflow_type=workflow_type,
            steps=parsed,
            name=data.get("name", workflow_type),
            description=data.get("description", ""),
        )

    @staticmethod
    def _validate(definition: WorkflowDefinition) -> None:
        """Check step id uniqueness and that every reference resolves."""
        workflow_type = definition.workflow_type
        if not definition.steps:
            logger.warning(f"Workflow {workflow_type} has no steps and cannot be initialized")
            return

        seen = set()
        for step in definition.steps:
            if step.id in seen:
                raise WorkflowValidationError(
                    f"Duplicate step id {step.id} in workflow {workflow_type}",
                    details={"workflow_type": workflow_type, "step_id": step.id},
                )
            seen.add(step.id)

        for step in definition.steps:
            unknown = [target for target in step.transitions if target not in seen]
            if unknown:
                raise WorkflowValidationError(
                    f"Step {step.id} of workflow {workflow_type} transitions to unknown "
                    f"steps: {', '.join(unknown)}",
                    details={"workflow_type": workflow_type, "step_id": step.id, "unknown": unknown},
                )
            bad = [r for r in step.requirements if not isinstance(r, str) or not r]
            if bad:
                raise WorkflowValidationError(
                    f"Step {step.id} of workflow {workflow_type} has invalid requirement names",
                    details={"workflow_type": workflow_type, "step_id": step.id},
                )

    def get_definition(self, workflow_type: str) -> WorkflowDefinition:
        """Get a definition by type, raising if it is unknown."""
        definition = self._definitions.get(workflow_type)
        if definition is None:
            raise DefinitionNotFoundError(workflow_type)
        return definition

    def has_definition(self, workflow_type: str) -> bool:
        return workflow_type in self._definitions

    def list_types(self) -> List[str]:
        return sorted(self._definitions)

    @property
    def timeout_policies(self) -> Dict[str, TimeoutPolicy]:
        """Per-step timeout policies declared next to the definitions."""
        return dict(self._timeout_policies)
