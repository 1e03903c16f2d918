"""Mind-map core: node store, change bus and collision-aware layout."""

from mindweave.core.bus import ChangeBus
from mindweave.core.selection import SelectionState
from mindweave.core.store import GraphStore
from mindweave.core.workspace import Workspace
from mindweave.protocols import DimensionSource, PersistenceProtocol

__all__ = [
    "ChangeBus",
    "DimensionSource",
    "GraphStore",
    "PersistenceProtocol",
    "SelectionState",
    "Workspace",
]
