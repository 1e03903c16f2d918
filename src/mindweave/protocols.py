"""Protocols for the collaborators the workspace depends on."""

from typing import Any, Protocol, runtime_checkable

from mindweave.models.node import Size


@runtime_checkable
class DimensionSource(Protocol):
    """Protocol for views that know the rendered size of a node."""

    def measure(self, node_id: str) -> Size | None:
        """Return the rendered size, or None when the node has not been drawn."""
        ...


@runtime_checkable
class PersistenceProtocol(Protocol):
    """Protocol for snapshot storage used by the CLI and the MCP server."""

    def load(self) -> dict[str, Any] | None:
        """Read the stored snapshot, returning None if there is none."""
        ...

    def save(self, data: dict[str, Any]) -> bool:
        """Store a snapshot; returns False when nothing had to be written."""
        ...
