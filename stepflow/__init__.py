"""stepflow - multi-actor workflow engine for business processes."""

__version__ = "0.1.0"
