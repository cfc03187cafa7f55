# Worker layer
from .timeout_supervisor import TimeoutSupervisor

__all__ = [
    "TimeoutSupervisor",
]
