"""
Drag gesture controller — scoped owner of one drag-and-drop gesture.

Holds the gesture state between ``start`` and ``end``/``cancel`` instead of
global pointer listeners. ``update`` runs the collision resolver on every
pointer move and never persists anything; only ``end`` hands the final target
to the drop callback. Pressing the jump key mid-drag abandons pointer
targeting and opens the column jump selector instead.

Usage:
    with DragGestureController(get_targets, get_container, on_drop) as ctl:
        ctl.start(proposal_id=7, source_column_id="new", pointer=Point(10, 40))
        ctl.update(Point(50, 40))
        result = ctl.end()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from proposal_board.core.exceptions import Forbidden, WipLimitExceeded
from proposal_board.services.collision import (
    Collision,
    ContainerRef,
    DropTarget,
    Point,
    Rect,
    resolve_collisions,
)

logger = logging.getLogger(__name__)

DEFAULT_JUMP_KEY = "j"


class GestureState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass
class DragGesture:
    proposal_id: Any
    source_column_id: str | None
    pointer: Point | None = None
    active_rect: Rect | None = None
    candidates: list[Collision] = field(default_factory=list)

    @property
    def over_column_id(self) -> str | None:
        return self.candidates[0].id if self.candidates else None


@dataclass
class DropResult:
    accepted: bool
    target_column_id: str | None
    reason: str | None = None
    value: Any = None


class GestureError(RuntimeError):
    """Raised on an out-of-order transition (e.g. update before start)."""


class DragGestureController:
    """State machine: IDLE --start--> DRAGGING --end/cancel/jump--> IDLE."""

    def __init__(
        self,
        get_targets: Callable[[], Sequence[DropTarget]],
        get_container: ContainerRef,
        on_drop: Callable[[Any, str], Any],
        on_open_jump_menu: Callable[[Any, str | None], Any] | None = None,
        jump_key: str = DEFAULT_JUMP_KEY,
    ) -> None:
        self._get_targets = get_targets
        self._get_container = get_container
        self._on_drop = on_drop
        self._on_open_jump_menu = on_open_jump_menu
        self._jump_key = (jump_key or DEFAULT_JUMP_KEY).lower()
        self._gesture: DragGesture | None = None

    # ── Context manager: an abandoned gesture never leaks past the scope ──

    def __enter__(self) -> DragGestureController:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._gesture is not None:
            self.cancel()

    @property
    def state(self) -> GestureState:
        return GestureState.DRAGGING if self._gesture is not None else GestureState.IDLE

    @property
    def gesture(self) -> DragGesture | None:
        return self._gesture

    def _require_gesture(self, transition: str) -> DragGesture:
        if self._gesture is None:
            raise GestureError(f"Cannot {transition}: no drag gesture in progress")
        return self._gesture

    def start(
        self,
        proposal_id,
        source_column_id: str | None,
        pointer: Point | None = None,
        active_rect: Rect | None = None,
    ) -> DragGesture:
        if self._gesture is not None:
            raise GestureError("Cannot start: a drag gesture is already in progress")
        self._gesture = DragGesture(
            proposal_id=proposal_id,
            source_column_id=source_column_id,
            pointer=pointer,
            active_rect=active_rect,
        )
        logger.debug("Drag started: proposal=%s from '%s'", proposal_id, source_column_id)
        if pointer is not None or active_rect is not None:
            self._resolve()
        return self._gesture

    def _resolve(self) -> None:
        gesture = self._gesture
        gesture.candidates = resolve_collisions(
            gesture.pointer,
            list(self._get_targets()),
            self._get_container,
            gesture.active_rect,
        )

    def update(self, pointer: Point, active_rect: Rect | None = None) -> str | None:
        """Re-resolve the hovered column for a pointer move; returns its id."""
        gesture = self._require_gesture("update")
        gesture.pointer = pointer
        if active_rect is not None:
            gesture.active_rect = active_rect
        self._resolve()
        return gesture.over_column_id

    def key_pressed(self, key: str) -> bool:
        """Handle a key during the drag. The jump key opens the jump selector."""
        if self._gesture is None or (key or "").lower() != self._jump_key:
            return False
        self.open_jump_menu()
        return True

    def open_jump_menu(self):
        """Abandon pointer targeting and hand the card to the jump selector."""
        gesture = self._require_gesture("open jump menu")
        self._gesture = None
        logger.debug("Jump selector requested mid-drag for proposal=%s", gesture.proposal_id)
        if self._on_open_jump_menu is not None:
            return self._on_open_jump_menu(gesture.proposal_id, gesture.source_column_id)
        return None

    def cancel(self) -> None:
        gesture = self._gesture
        self._gesture = None
        if gesture is not None:
            logger.debug("Drag cancelled: proposal=%s", gesture.proposal_id)

    def end(self, pointer: Point | None = None) -> DropResult:
        """Finish the gesture and commit the drop through ``on_drop``.

        No target, or the source column itself, ends the gesture without a
        write. A ``Forbidden`` or hard WIP-limit rejection from the callback
        returns the card to its origin (``accepted=False``). Any other error
        from the callback propagates to the caller.
        """
        gesture = self._require_gesture("end")
        try:
            if pointer is not None:
                gesture.pointer = pointer
                self._resolve()
            target_id = gesture.over_column_id
            if target_id is None:
                return DropResult(False, None, "no drop target")
            if target_id == gesture.source_column_id:
                return DropResult(False, target_id, "dropped on source column")
            try:
                value = self._on_drop(gesture.proposal_id, target_id)
            except (Forbidden, WipLimitExceeded) as exc:
                logger.info("Drop rejected for proposal=%s on '%s': %s", gesture.proposal_id, target_id, exc)
                return DropResult(False, target_id, str(exc))
            return DropResult(True, target_id, None, value)
        finally:
            self._gesture = None
