"""
Application configuration management.

Supports environment-based configuration with sensible defaults.
Workflow graphs and RBAC policies are loaded from JSON files; an empty
path selects the definitions bundled with the package.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


DEFAULTS_DIR = Path(__file__).parent / "defaults"


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass
class Config:
    """Application configuration container."""

    # Flask settings
    FLASK_ENV: str = "development"
    FLASK_DEBUG: bool = True
    SECRET_KEY: str = "dev-secret-key-change-in-production"

    # External configuration sources
    WORKFLOW_ROUTES_PATH: str = ""
    SECURITY_POLICIES_PATH: str = ""

    # Engine settings
    ENFORCE_STEP_REQUIREMENTS: bool = False
    DEFAULT_ACTOR_ROLE: str = "staff"

    # Timeout supervisor settings
    TIMEOUT_SUPERVISOR_ENABLED: bool = True
    TIMEOUT_SCAN_INTERVAL: float = 60.0  # Seconds between sweeps

    # Analytics settings
    BOTTLENECK_THRESHOLD_SECONDS: float = 24 * 60 * 60

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            FLASK_ENV=os.getenv("FLASK_ENV", cls.FLASK_ENV),
            FLASK_DEBUG=_env_flag("FLASK_DEBUG", True),
            SECRET_KEY=os.getenv("SECRET_KEY", cls.SECRET_KEY),
            WORKFLOW_ROUTES_PATH=os.getenv("WORKFLOW_ROUTES_PATH", cls.WORKFLOW_ROUTES_PATH),
            SECURITY_POLICIES_PATH=os.getenv("SECURITY_POLICIES_PATH", cls.SECURITY_POLICIES_PATH),
            ENFORCE_STEP_REQUIREMENTS=_env_flag("ENFORCE_STEP_REQUIREMENTS", False),
            DEFAULT_ACTOR_ROLE=os.getenv("DEFAULT_ACTOR_ROLE", cls.DEFAULT_ACTOR_ROLE),
            TIMEOUT_SUPERVISOR_ENABLED=_env_flag("TIMEOUT_SUPERVISOR_ENABLED", True),
            TIMEOUT_SCAN_INTERVAL=float(os.getenv("TIMEOUT_SCAN_INTERVAL", cls.TIMEOUT_SCAN_INTERVAL)),
            BOTTLENECK_THRESHOLD_SECONDS=float(
                os.getenv("BOTTLENECK_THRESHOLD_SECONDS", cls.BOTTLENECK_THRESHOLD_SECONDS)
            ),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_FORMAT=os.getenv("LOG_FORMAT", cls.LOG_FORMAT),
        )

    @property
    def workflow_routes_file(self) -> Path:
        """Resolved path of the workflow routes definition file."""
        return Path(self.WORKFLOW_ROUTES_PATH or DEFAULTS_DIR / "workflow_routes.json")

    @property
    def security_policies_file(self) -> Path:
        """Resolved path of the security policies file."""
        return Path(self.SECURITY_POLICIES_PATH or DEFAULTS_DIR / "security_policies.json")


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()


@dataclass
class TestConfig(Config):
    """Configuration for testing environment."""

    __test__ = False  # not a pytest test class

    FLASK_ENV: str = "testing"
    FLASK_DEBUG: bool = False
    TIMEOUT_SUPERVISOR_ENABLED: bool = False
    TIMEOUT_SCAN_INTERVAL: float = 0.05
