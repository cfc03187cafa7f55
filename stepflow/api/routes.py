"""
API routes for the workflow engine.

Thin REST adapter over WorkflowEngine; all workflow semantics live in
the engine.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, Blueprint, current_app, request, jsonify

from stepflow.domain import (
    DefinitionNotFoundError,
    InvalidTransitionError,
    PermissionDeniedError,
    WorkflowEngineError,
    WorkflowNotFoundError,
)
from stepflow.services import WorkflowEngine

logger = logging.getLogger(__name__)

# Create blueprints
workflows_bp = Blueprint("workflows", __name__, url_prefix="/api/v1/workflows")
analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/v1/analytics")


def get_engine() -> WorkflowEngine:
    """Get the workflow engine from Flask app config."""
    return current_app.config["WORKFLOW_ENGINE"]


def error_response(e: WorkflowEngineError):
    return jsonify({"error": str(e), "code": e.error_code, "details": e.details}), e.http_status


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 query parameter; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def type_error(data: dict, expected: dict) -> Optional[str]:
    """Message for the first present field whose value has the wrong type."""
    for field, (types, description) in expected.items():
        value = data.get(field)
        if value is not None and (not isinstance(value, types) or isinstance(value, bool)):
            return f"{field} must be {description}"
    return None


# ============================================
# WORKFLOW ENDPOINTS
# ============================================

@workflows_bp.route("", methods=["POST"])
def initialize_workflow():
    """
    Initialize a workflow instance.

    Request body:
    {
        "workflowType": "orderFulfillment",
        "entityId": "order-1",
        "entityType": "order",
        "metadata": {}
    }

    Response: 201 Created
    """
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data:
        return jsonify({"error": "Request body required"}), 400

    for field in ("workflowType", "entityId", "entityType"):
        if not data.get(field):
            return jsonify({"error": f"{field} is required"}), 400

    error = type_error(data, {
        "workflowType": (str, "a string"),
        "entityId": ((str, int), "a string or integer"),
        "entityType": (str, "a string"),
        "metadata": (dict, "an object"),
    })
    if error:
        return jsonify({"error": error}), 400

    try:
        state = get_engine().initialize_workflow(
            workflow_type=data["workflowType"],
            entity_id=str(data["entityId"]),
            entity_type=data["entityType"],
            initial_metadata=data.get("metadata") or {},
        )
        return jsonify(state.to_dict()), 201

    except DefinitionNotFoundError as e:
        return error_response(e)


@workflows_bp.route("", methods=["GET"])
def list_workflows():
    """
    List workflow instances.

    Query params:
    - type: Filter by workflow type

    Response: 200 OK
    """
    workflow_type = request.args.get("type")
    workflows = get_engine().list_workflows(workflow_type)

    return jsonify({
        "workflows": [w.to_dict() for w in workflows],
        "count": len(workflows),
    }), 200


@workflows_bp.route("/<workflow_id>", methods=["GET"])
def get_workflow(workflow_id: str):
    """
    Get the current state of a workflow instance.

    Response: 200 OK
    """
    engine = get_engine()
    state = engine.get_workflow_state(workflow_id)

    if state is None:
        return jsonify({"error": f"Workflow {workflow_id} not found"}), 404

    payload = state.to_dict()
    payload["availableTransitions"] = engine.get_available_transitions(workflow_id)
    return jsonify(payload), 200


@workflows_bp.route("/<workflow_id>/history", methods=["GET"])
def get_workflow_history(workflow_id: str):
    """
    Get the history of a workflow instance.

    Response: 200 OK
    """
    history = get_engine().get_workflow_history(workflow_id)

    return jsonify({
        "workflowId": workflow_id,
        "history": [entry.to_dict() for entry in history],
        "count": len(history),
    }), 200


@workflows_bp.route("/<workflow_id>/transitions", methods=["POST"])
def transition_workflow(workflow_id: str):
    """
    Transition a workflow instance to another step.

    Request body:
    {
        "targetStep": "design",
        "actor": "designer",
        "metadata": {},
        "expectedStep": "new"   (optional)
    }

    Response: 200 OK, 403 not allowed, 409 not possible
    """
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data:
        return jsonify({"error": "Request body required"}), 400

    for field in ("targetStep", "actor"):
        if not data.get(field):
            return jsonify({"error": f"{field} is required"}), 400

    error = type_error(data, {
        "targetStep": (str, "a string"),
        "actor": (str, "a string"),
        "metadata": (dict, "an object"),
        "expectedStep": (str, "a string"),
    })
    if error:
        return jsonify({"error": error}), 400

    try:
        state = get_engine().transition_workflow(
            workflow_id,
            data["targetStep"],
            data["actor"],
            data.get("metadata") or {},
            expected_step=data.get("expectedStep"),
        )
        return jsonify(state.to_dict()), 200

    except (WorkflowNotFoundError, PermissionDeniedError, InvalidTransitionError) as e:
        logger.info(f"Transition of {workflow_id} to {data['targetStep']} rejected: {e}")
        return error_response(e)


@workflows_bp.route("/<workflow_id>/check-permissions", methods=["POST"])
def check_permissions(workflow_id: str):
    """
    Check whether an actor may act on a workflow instance.

    Request body:
    {
        "actor": "designer",
        "action": "transition"
    }

    Response: 200 OK
    """
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data.get("actor"):
        return jsonify({"error": "actor is required"}), 400

    error = type_error(data, {"actor": (str, "a string"), "action": (str, "a string")})
    if error:
        return jsonify({"error": error}), 400

    engine = get_engine()
    if engine.get_workflow_state(workflow_id) is None:
        return jsonify({"error": f"Workflow {workflow_id} not found"}), 404

    action = data.get("action", "transition")
    return jsonify({
        "workflowId": workflow_id,
        "actor": data["actor"],
        "action": action,
        "hasPermission": engine.check_actor_permissions(data["actor"], action),
    }), 200


@workflows_bp.route("/<workflow_id>/steps/<step_id>/requirements", methods=["GET"])
def get_step_requirements(workflow_id: str, step_id: str):
    """
    Get the requirements declared on a step.

    Response: 200 OK
    """
    try:
        requirements = get_engine().get_step_requirements(workflow_id, step_id)
    except WorkflowNotFoundError as e:
        return error_response(e)

    return jsonify({
        "workflowId": workflow_id,
        "stepId": step_id,
        "requirements": requirements,
    }), 200


@workflows_bp.route("/<workflow_id>/steps/<step_id>/requirements/validate", methods=["POST"])
def validate_step_requirements(workflow_id: str, step_id: str):
    """
    Check a step's requirements against instance metadata plus a context.

    Request body:
    {
        "context": {"paymentStatus": "confirmed"}
    }

    Response: 200 OK with {"valid": bool, "missing": [...]}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400

    error = type_error(data, {"context": (dict, "an object")})
    if error:
        return jsonify({"error": error}), 400

    try:
        check = get_engine().validate_step_requirements(
            workflow_id, step_id, data.get("context") or {}
        )
    except WorkflowNotFoundError as e:
        return error_response(e)

    return jsonify({"workflowId": workflow_id, "stepId": step_id, **check.to_dict()}), 200


# ============================================
# ANALYTICS ENDPOINTS
# ============================================

@analytics_bp.route("/<workflow_type>/metrics", methods=["GET"])
def get_workflow_metrics(workflow_type: str):
    """
    Get completion metrics for a workflow type.

    Query params:
    - startDate, endDate: ISO-8601 creation window

    Response: 200 OK
    """
    metrics = get_engine().get_workflow_metrics(
        workflow_type,
        parse_date(request.args.get("startDate")),
        parse_date(request.args.get("endDate")),
    )
    return jsonify({"workflowType": workflow_type, **metrics}), 200


@analytics_bp.route("/<workflow_type>", methods=["GET"])
def get_workflow_analytics(workflow_type: str):
    """
    Get metrics, bottlenecks and recommendations for a workflow type.

    Response: 200 OK
    """
    analytics = get_engine().get_workflow_analytics(
        workflow_type,
        parse_date(request.args.get("startDate")),
        parse_date(request.args.get("endDate")),
    )
    return jsonify({"workflowType": workflow_type, **analytics}), 200


@analytics_bp.route("/<workflow_type>/transitions", methods=["GET"])
def get_transition_patterns(workflow_type: str):
    """
    Get step-to-step transition counts for a workflow type.

    Response: 200 OK
    """
    engine = get_engine()
    return jsonify({
        "workflowType": workflow_type,
        **engine.analytics.analyze_transition_patterns(workflow_type),
        "stuckWorkflows": engine.analytics.find_stuck_workflows(workflow_type),
    }), 200


@analytics_bp.route("/<workflow_type>/predictions", methods=["GET"])
def get_predictions(workflow_type: str):
    """
    Get estimated completion and risk level for open instances.

    Response: 200 OK
    """
    return jsonify(get_engine().analytics.generate_predictive_analytics(workflow_type)), 200


def register_routes(app: Flask) -> None:
    """Register all blueprints with the app."""
    app.register_blueprint(workflows_bp)
    app.register_blueprint(analytics_bp)
