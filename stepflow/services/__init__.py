# Service layer
from .action_handlers import ActionHandler, ActionHandlerRegistry, create_default_registry
from .action_dispatcher import ActionDispatcher
from .analytics import AnalyticsEngine
from .permissions import PermissionEvaluator
from .requirements import RequirementCheck, RequirementEvaluator
from .engine import WorkflowEngine, build_engine

__all__ = [
    "ActionHandler",
    "ActionHandlerRegistry",
    "create_default_registry",
    "ActionDispatcher",
    "AnalyticsEngine",
    "PermissionEvaluator",
    "RequirementCheck",
    "RequirementEvaluator",
    "WorkflowEngine",
    "build_engine",
]
