"""Shared test fixtures."""

import pytest

from mindweave.core.bus import ChangeBus
from mindweave.core.selection import SelectionState
from mindweave.core.store import GraphStore
from mindweave.core.workspace import Workspace
from mindweave.models.document import Document
from mindweave.models.node import Position, SpatialView
from tests.unit.fakes import FixedDimensions, ManualClock, RecordingSubscriber


@pytest.fixture
def bus() -> ChangeBus:
    return ChangeBus()


@pytest.fixture
def recorder(bus: ChangeBus) -> RecordingSubscriber:
    """Records every event published on ``bus``."""
    rec = RecordingSubscriber()
    bus.subscribe(None, rec)
    return rec


@pytest.fixture
def store(bus: ChangeBus, recorder: RecordingSubscriber) -> GraphStore:
    """Store with an empty active document; the recorder starts empty."""
    s = GraphStore(bus)
    s.load_document(Document(name="Test"))
    recorder.clear()
    return s


@pytest.fixture
def selection(bus: ChangeBus, store: GraphStore) -> SelectionState:
    return SelectionState(bus, lambda nid: store.get_node(nid) is not None)


@pytest.fixture
def tree(store: GraphStore, recorder: RecordingSubscriber) -> dict[str, str]:
    """A small mind map, labels mapped to node ids.

    R
    ├── A
    │   ├── A1
    │   └── A2
    ├── B
    └── C
    """
    ids: dict[str, str] = {}

    def add(label: str, parent: str | None, x: float, y: float) -> None:
        node = store.add_node(
            ids[parent] if parent else None,
            label,
            position=Position(x, y),
            view=SpatialView.MINDMAP,
        )
        assert node is not None
        ids[label] = node.id

    add("R", None, 0, 0)
    add("A", "R", 200, -100)
    add("A1", "A", 400, -150)
    add("A2", "A", 400, -50)
    add("B", "R", 200, 0)
    add("C", "R", 200, 100)
    recorder.clear()
    return ids


@pytest.fixture
def dimensions() -> FixedDimensions:
    return FixedDimensions()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def workspace(dimensions: FixedDimensions, clock: ManualClock) -> Workspace:
    ws = Workspace(view=SpatialView.MINDMAP, dimensions=dimensions, clock=clock)
    ws.new_document("Test")
    return ws
