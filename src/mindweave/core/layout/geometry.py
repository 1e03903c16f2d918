"""Rectangle overlap tests shared by the locator and the collision resolver."""

from mindweave.models.node import Rect


def rects_overlap(a: Rect, b: Rect, margin: float = 0.0) -> bool:
    """Whether ``a`` and ``b`` are closer than ``margin`` on both axes.

    Rectangles exactly ``margin`` apart (or touching, when ``margin`` is 0)
    do not overlap.
    """
    return (
        a.x < b.right + margin
        and b.x < a.right + margin
        and a.y < b.bottom + margin
        and b.y < a.bottom + margin
    )


def overlaps_any(candidate: Rect, occupied: list[Rect], margin: float) -> bool:
    return any(rects_overlap(candidate, other, margin) for other in occupied)
