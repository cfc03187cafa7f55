# Persistence layer
from .definition_store import DefinitionStore, load_json_config
from .instance_store import InstanceStore, InMemoryInstanceStore

__all__ = [
    "DefinitionStore",
    "load_json_config",
    "InstanceStore",
    "InMemoryInstanceStore",
]
