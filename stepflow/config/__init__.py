# Configuration
from .settings import Config, TestConfig, get_config, DEFAULTS_DIR

__all__ = [
    "Config",
    "TestConfig",
    "get_config",
    "DEFAULTS_DIR",
]
