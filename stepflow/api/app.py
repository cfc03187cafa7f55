"""
Flask application factory.

Creates and configures the Flask application around a workflow engine
and, when enabled, starts the timeout supervisor for that engine.
"""

import logging
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from stepflow.config import get_config
from stepflow.domain import WorkflowEngineError
from stepflow.services import WorkflowEngine, build_engine
from stepflow.worker import TimeoutSupervisor

logger = logging.getLogger(__name__)


def create_app(config=None, engine: Optional[WorkflowEngine] = None) -> Flask:
    """
    Application factory for creating Flask app.

    Args:
        config: Optional configuration object
        engine: Optional prebuilt engine; built from config when omitted

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Enable CORS for all routes
    CORS(app)

    # Load configuration
    app_config = config or get_config()
    app.config["SECRET_KEY"] = app_config.SECRET_KEY
    app.config["DEBUG"] = app_config.FLASK_DEBUG

    # Store config for access in routes
    app.config["APP_CONFIG"] = app_config

    # One engine per process, shared by every request
    engine = engine or build_engine(app_config)
    app.config["WORKFLOW_ENGINE"] = engine

    supervisor = TimeoutSupervisor(engine, interval=app_config.TIMEOUT_SCAN_INTERVAL)
    app.config["TIMEOUT_SUPERVISOR"] = supervisor
    if app_config.TIMEOUT_SUPERVISOR_ENABLED:
        supervisor.start()

    # Register error handlers
    register_error_handlers(app)

    # Register routes
    from .routes import register_routes
    register_routes(app)

    # Health check endpoint
    @app.route("/health")
    def health_check():
        """Health check endpoint."""
        engine = app.config["WORKFLOW_ENGINE"]
        supervisor = app.config["TIMEOUT_SUPERVISOR"]

        return jsonify({
            "status": "healthy",
            "workflow_types": engine.definitions.list_types(),
            "instances": len(engine.list_workflows()),
            "timeout_supervisor": "running" if supervisor.is_running else "stopped",
        }), 200

    logger.info("Flask application created")
    return app


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the application."""

    @app.errorhandler(WorkflowEngineError)
    def handle_engine_error(e: WorkflowEngineError):
        """Handle domain errors not caught by a route."""
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        """Handle HTTP exceptions."""
        response = {
            "error": {
                "code": e.code,
                "name": e.name,
                "message": e.description,
            }
        }
        return jsonify(response), e.code

    @app.errorhandler(ValueError)
    def handle_value_error(e: ValueError):
        """Handle validation errors."""
        return jsonify({
            "error": {
                "code": 400,
                "name": "Bad Request",
                "message": str(e),
            }
        }), 400

    @app.errorhandler(Exception)
    def handle_generic_exception(e: Exception):
        """Handle unexpected errors."""
        logger.exception(f"Unhandled exception: {e}")
        return jsonify({
            "error": {
                "code": 500,
                "name": "Internal Server Error",
                "message": "An unexpected error occurred",
            }
        }), 500


def run_server() -> None:
    """Entry point for running the API server with the timeout supervisor."""
    config = get_config()
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    app = create_app(config)
    # Instance state is per process: no reloader.
    app.run(host="0.0.0.0", port=5000, debug=config.FLASK_DEBUG, use_reloader=False)


if __name__ == "__main__":
    run_server()
