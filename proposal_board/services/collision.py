"""
Drag collision resolver — which column is a dragged card over?

Runs once per pointer-move frame on in-memory geometry only (no I/O).

Strategy:
    1. Pointer-within over the currently visible drop targets.
    2. Scroll-aware: translate the pointer into the scroll container's content
       coordinates and test each column's horizontal content bounds. Reaches
       columns scrolled out of the viewport.
    3. Coarse rectangle intersection over all targets, then closest center, so
       a drag over at least one target never ends up with no candidate.

A failure in step 2 (missing or malformed container) is logged and the
resolver drops to step 3. ``resolve_collisions`` never raises.

Usage:
    hits = resolve_collisions(Point(50, 300), targets, container)
    target_id = hits[0].id if hits else None
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> Point:
        return Point(self.left + self.width / 2, self.top + self.height / 2)

    @property
    def area(self) -> float:
        return max(self.width, 0) * max(self.height, 0)

    def contains(self, point: Point) -> bool:
        return self.left <= point.x <= self.right and self.top <= point.y <= self.bottom

    def intersection_area(self, other: Rect) -> float:
        width = min(self.right, other.right) - max(self.left, other.left)
        height = min(self.bottom, other.bottom) - max(self.top, other.top)
        if width <= 0 or height <= 0:
            return 0.0
        return width * height


@dataclass(frozen=True)
class DropTarget:
    """A column drop zone, listed in DOM (left-to-right) order.

    ``rect`` is the last measured viewport rectangle. ``offset_left`` /
    ``offset_width`` are the column's bounds inside the scroll content; when
    absent they are derived from ``rect`` and the container's scroll state.
    """

    id: str
    rect: Rect | None = None
    visible: bool = True
    offset_left: float | None = None
    offset_width: float | None = None


@dataclass(frozen=True)
class ScrollContainer:
    """Horizontal scroll state of the board's column strip."""

    scroll_left: float
    viewport_left: float = 0.0
    viewport_width: float | None = None


@dataclass(frozen=True)
class Collision:
    id: str
    value: float
    strategy: str


ContainerRef = Union[ScrollContainer, Callable[[], ScrollContainer], None]


def _distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def pointer_within(pointer: Point, targets: Sequence[DropTarget]) -> list[Collision]:
    """Visible targets containing the pointer, closest center first (DOM order on ties)."""
    hits = []
    for index, target in enumerate(targets):
        if not target.visible or target.rect is None:
            continue
        if target.rect.contains(pointer):
            hits.append((_distance(pointer, target.rect.center), index, target.id))
    hits.sort(key=lambda h: (h[0], h[1]))
    return [Collision(target_id, dist, "pointer") for dist, _, target_id in hits]


def _resolve_container(container: ContainerRef) -> ScrollContainer:
    if callable(container) and not isinstance(container, ScrollContainer):
        container = container()
    if container is None:
        raise LookupError("scroll container not found")
    # Touch every field so a malformed reference fails here, inside the guard.
    float(container.scroll_left)
    float(container.viewport_left)
    return container


def scroll_adjusted(
    pointer: Point,
    targets: Sequence[DropTarget],
    container: ContainerRef,
) -> list[Collision]:
    """Horizontal containment in scroll-content coordinates.

    The pointer is translated with ``x - viewport_left + scroll_left``; each
    column's content bounds come from ``offset_left``/``offset_width`` or from
    its measured rect under the same translation. Matches are ordered by the
    distance between column center and adjusted x, then by column index.
    Raises on a missing or malformed container; the caller falls back.
    """
    scroll = _resolve_container(container)
    adjusted_x = pointer.x - scroll.viewport_left + scroll.scroll_left

    hits = []
    for index, target in enumerate(targets):
        if target.offset_left is not None and target.offset_width is not None:
            left, width = target.offset_left, target.offset_width
        elif target.rect is not None:
            left = target.rect.left - scroll.viewport_left + scroll.scroll_left
            width = target.rect.width
        else:
            continue
        if left <= adjusted_x <= left + width:
            center = left + width / 2
            hits.append((abs(center - adjusted_x), index, target.id))
    hits.sort(key=lambda h: (h[0], h[1]))
    return [Collision(target_id, dist, "scroll") for dist, _, target_id in hits]


def rect_intersection(active: Rect, targets: Sequence[DropTarget]) -> list[Collision]:
    """Targets overlapping the dragged card, largest overlap ratio first."""
    hits = []
    for index, target in enumerate(targets):
        if target.rect is None:
            continue
        overlap = active.intersection_area(target.rect)
        if overlap <= 0:
            continue
        union = active.area + target.rect.area - overlap
        ratio = overlap / union if union > 0 else 0.0
        hits.append((ratio, index, target.id))
    hits.sort(key=lambda h: (-h[0], h[1]))
    return [Collision(target_id, ratio, "intersection") for ratio, _, target_id in hits]


def closest_center(point: Point, targets: Sequence[DropTarget]) -> list[Collision]:
    """All measured targets ordered by distance from ``point`` to their center."""
    hits = [
        (_distance(point, target.rect.center), index, target.id)
        for index, target in enumerate(targets)
        if target.rect is not None
    ]
    hits.sort(key=lambda h: (h[0], h[1]))
    return [Collision(target_id, dist, "closest") for dist, _, target_id in hits]


def coarse_fallback(
    pointer: Point | None,
    targets: Sequence[DropTarget],
    active_rect: Rect | None = None,
) -> list[Collision]:
    """Not scroll-aware. Non-empty whenever ``targets`` is non-empty."""
    if not targets:
        return []
    if active_rect is None and pointer is not None:
        active_rect = Rect(pointer.x, pointer.y, 0, 0)
    if active_rect is not None:
        hits = rect_intersection(active_rect, targets)
        if hits:
            return hits
        hits = closest_center(pointer or active_rect.center, targets)
        if hits:
            return hits
    return [Collision(targets[0].id, math.inf, "closest")]


def resolve_collisions(
    pointer: Point | None,
    targets: Sequence[DropTarget],
    container: ContainerRef = None,
    active_rect: Rect | None = None,
) -> list[Collision]:
    """Ordered candidate columns for one drag frame; best candidate first."""
    try:
        if pointer is not None:
            hits = pointer_within(pointer, targets)
            if hits:
                return hits
            try:
                hits = scroll_adjusted(pointer, targets, container)
                if hits:
                    return hits
            except Exception as exc:
                logger.warning("Scroll-aware collision failed, using intersection fallback: %s", exc)
        return coarse_fallback(pointer, targets, active_rect)
    except Exception:
        logger.exception("Collision resolution failed")
        return []
