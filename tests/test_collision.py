"""
Drag collision resolver tests.

Covers:
    - Pointer-within fast path (closest center, DOM-order ties)
    - Scroll-aware fallback for columns outside the viewport
    - Coarse intersection / closest-center fallback
    - Malformed or missing scroll containers never raise
"""

import logging

from proposal_board.services.collision import (
    DropTarget,
    Point,
    Rect,
    ScrollContainer,
    coarse_fallback,
    pointer_within,
    resolve_collisions,
    scroll_adjusted,
)


def _strip(n, width=200, height=600, visible_count=None):
    """n adjacent columns of ``width``; only the first ``visible_count`` are rendered."""
    visible_count = n if visible_count is None else visible_count
    return [
        DropTarget(
            id=f"col{i}",
            rect=Rect(i * width, 0, width, height),
            visible=i < visible_count,
            offset_left=i * width,
            offset_width=width,
        )
        for i in range(n)
    ]


class TestPointerWithin:

    def test_single_hit(self):
        hits = pointer_within(Point(250, 100), _strip(3))
        assert [h.id for h in hits] == ["col1"]
        assert hits[0].strategy == "pointer"

    def test_overlapping_targets_closest_center_first(self):
        targets = [
            DropTarget("wide", Rect(0, 0, 400, 400)),
            DropTarget("narrow", Rect(100, 100, 100, 100)),
        ]
        hits = resolve_collisions(Point(150, 150), targets)
        assert hits[0].id == "narrow"

    def test_tie_broken_by_dom_order(self):
        targets = [DropTarget("a", Rect(0, 0, 100, 100)), DropTarget("b", Rect(0, 0, 100, 100))]
        assert [h.id for h in pointer_within(Point(10, 10), targets)] == ["a", "b"]

    def test_hidden_targets_ignored(self):
        targets = [DropTarget("hidden", Rect(0, 0, 100, 100), visible=False)]
        assert pointer_within(Point(10, 10), targets) == []


class TestScrollAware:

    def test_offscreen_column_selected_after_scroll_adjustment(self):
        targets = [
            DropTarget("visible", Rect(100, 0, 200, 600), visible=True, offset_left=500, offset_width=200),
            DropTarget("offscreen", rect=None, visible=False, offset_left=420, offset_width=200),
        ]
        hits = resolve_collisions(Point(50, 300), targets, ScrollContainer(scroll_left=400))
        assert hits[0].id == "offscreen"
        assert hits[0].strategy == "scroll"

    def test_bounds_derived_from_rect_when_offsets_missing(self):
        targets = [DropTarget("c", Rect(-350, 0, 200, 600), visible=False)]
        # content left = -350 - 0 + 400 = 50; adjusted x = 100 + 400 = 500 → miss
        assert scroll_adjusted(Point(100, 10), targets, ScrollContainer(scroll_left=400)) == []
        hits = scroll_adjusted(Point(-300, 10), targets, ScrollContainer(scroll_left=400))
        assert [h.id for h in hits] == ["c"]

    def test_closest_center_then_lower_index(self):
        targets = [
            DropTarget("a", visible=False, offset_left=0, offset_width=400),
            DropTarget("b", visible=False, offset_left=100, offset_width=200),
        ]
        hits = scroll_adjusted(Point(200, 0), targets, ScrollContainer(scroll_left=0))
        # both centers at 200: tie → DOM order
        assert [h.id for h in hits] == ["a", "b"]

    def test_viewport_offset_applied(self):
        targets = _strip(5, visible_count=2)
        container = ScrollContainer(scroll_left=600, viewport_left=100)
        # adjusted x = 150 - 100 + 600 = 650 → col3 spans [600, 800]
        hits = scroll_adjusted(Point(150, 10), targets, container)
        assert hits[0].id == "col3"

    def test_container_callable(self):
        targets = [DropTarget("off", visible=False, offset_left=420, offset_width=200)]
        hits = resolve_collisions(Point(50, 0), targets, lambda: ScrollContainer(scroll_left=400))
        assert hits[0].id == "off"


class TestFallbacks:

    def test_missing_container_falls_back_and_logs(self, caplog):
        targets = _strip(3)
        with caplog.at_level(logging.WARNING, logger="proposal_board.services.collision"):
            hits = resolve_collisions(Point(5000, 100), targets, None)
        assert hits
        assert hits[0].id == "col2"
        assert "Scroll-aware collision failed" in caplog.text

    def test_malformed_container_never_raises(self):
        class Broken:
            scroll_left = "not-a-number"
            viewport_left = 0

        hits = resolve_collisions(Point(5000, 100), _strip(2), Broken())
        assert [h.id for h in hits][0] == "col1"

    def test_container_factory_that_raises(self):
        def boom():
            raise RuntimeError("detached")

        hits = resolve_collisions(Point(-50, -50), _strip(2), boom)
        assert hits[0].id == "col0"

    def test_intersection_with_active_rect(self):
        targets = _strip(3)
        hits = coarse_fallback(None, targets, Rect(380, 0, 100, 100))
        assert hits[0].id == "col2"
        assert hits[0].strategy == "intersection"

    def test_never_empty_with_targets(self):
        targets = [DropTarget("only")]
        assert [h.id for h in coarse_fallback(Point(1, 1), targets)] == ["only"]

    def test_no_targets_gives_empty(self):
        assert resolve_collisions(Point(0, 0), [], ScrollContainer(0)) == []

    def test_garbage_targets_do_not_raise(self):
        assert resolve_collisions(Point(0, 0), [object()], None) == []
