"""
Requirement evaluation for step entry preconditions.

Each requirement name maps to a predicate over a context built from the
workflow metadata plus caller-supplied fields. Unknown names fall back to
the truthy presence of a context field with the same name.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

RequirementPredicate = Callable[[Mapping[str, Any]], Any]


@dataclass
class RequirementCheck:
    """Outcome of a requirements check; advisory, never raised."""
    valid: bool
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "missing": list(self.missing)}


def _has_id(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value.get("id"))


DEFAULT_PREDICATES: Dict[str, RequirementPredicate] = {
    "customer_contact_info": lambda ctx: ctx.get("customerEmail") and ctx.get("customerPhone"),
    "basic_design_specs": lambda ctx: isinstance(ctx.get("designSpecs"), Mapping) and len(ctx["designSpecs"]) > 0,
    "payment_confirmation": lambda ctx: ctx.get("paymentStatus") == "confirmed",
    "designer_assigned": lambda ctx: _has_id(ctx.get("assignedDesigner")),
    "customer_approval": lambda ctx: ctx.get("customerApprovalStatus") == "approved",
    "final_payment": lambda ctx: ctx.get("finalPaymentStatus") == "completed",
    "manufacturer_assigned": lambda ctx: _has_id(ctx.get("assignedManufacturer")),
    "inspection_complete": lambda ctx: (
        isinstance(ctx.get("qualityInspection"), Mapping)
        and ctx["qualityInspection"].get("status") == "complete"
    ),
    "packaging_complete": lambda ctx: ctx.get("packagingStatus") == "complete",
    "tracking_number": lambda ctx: bool(ctx.get("trackingNumber")),
    "delivery_confirmation": lambda ctx: ctx.get("deliveryStatus") == "confirmed",
}


class RequirementEvaluator:
    """
    Evaluates named requirements against a context mapping.

    Predicates that raise are treated as unmet.
    """

    def __init__(self, predicates: Optional[Mapping[str, RequirementPredicate]] = None):
        self._predicates: Dict[str, RequirementPredicate] = dict(DEFAULT_PREDICATES)
        if predicates:
            self._predicates.update(predicates)

    def register(self, name: str, predicate: RequirementPredicate) -> None:
        """Register or replace a named predicate."""
        self._predicates[name] = predicate

    def is_known(self, name: str) -> bool:
        return name in self._predicates

    def check_requirement(self, requirement: str, context: Mapping[str, Any]) -> bool:
        predicate = self._predicates.get(requirement)
        if predicate is None:
            return bool(context.get(requirement))

        try:
            return bool(predicate(context))
        except Exception as e:
            logger.warning(f"Requirement {requirement} evaluation failed: {e}")
            return False

    def validate_step_requirements(
        self,
        requirements: List[str],
        context: Optional[Mapping[str, Any]] = None,
    ) -> RequirementCheck:
        """Check every requirement and report the ones that are not met."""
        context = context or {}
        missing = [r for r in requirements if not self.check_requirement(r, context)]
        return RequirementCheck(valid=not missing, missing=missing)
