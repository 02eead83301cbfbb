"""
Stage transition engine tests.

Covers:
    - Column resolution for all three pointer conventions
    - Column-order precedence + ambiguity detection
    - UnresolvedColumn reporting
    - Entry / exit / approval-to-exit legality
    - apply_move writes exactly one pointer
"""

import logging

import pytest

from conftest import column
from proposal_board.core.exceptions import Forbidden, UnresolvedColumn
from proposal_board.services.stage_transition import (
    apply_move,
    can_leave,
    can_move,
    find_active_column,
    find_ambiguous_mappings,
    is_move_legal,
    matching_columns,
    move_patch,
    resolve_active_column,
)


@pytest.fixture()
def layout(make_layout):
    return make_layout(
        column("new", "locked_phase", phase_mapping="phase1"),
        column("qualify", "locked_phase", phase_mapping="phase3"),
        column("pink_team", "custom_stage"),
        column("submitted", "default_status", default_status_mapping="submitted"),
        column("won", "default_status", default_status_mapping="won"),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Resolution
# ═════════════════════════════════════════════════════════════════════════════


class TestFindActiveColumn:

    def test_locked_phase_matches_phase_mapping(self, layout, make_proposal):
        assert find_active_column(layout, make_proposal(current_phase="phase3")).id == "qualify"

    def test_custom_stage_matches_column_id(self, layout, make_proposal):
        p = make_proposal(custom_workflow_stage_id="pink_team")
        assert find_active_column(layout, p).id == "pink_team"

    def test_default_status_matches_status(self, layout, make_proposal):
        assert find_active_column(layout, make_proposal(status="won")).id == "won"

    def test_unrecognized_state_returns_none(self, layout, make_proposal):
        p = make_proposal(current_phase="phase9", status="limbo")
        assert find_active_column(layout, p) is None

    def test_resolve_raises_unresolved_with_pointers(self, layout, make_proposal):
        p = make_proposal(id=42, current_phase="phase9")
        with pytest.raises(UnresolvedColumn) as exc:
            resolve_active_column(layout, p)
        assert exc.value.proposal_id == 42
        assert exc.value.pointers["current_phase"] == "phase9"

    def test_same_inputs_same_column(self, layout, make_proposal):
        a = make_proposal(id=1, current_phase="phase1", status="won")
        b = make_proposal(id=2, current_phase="phase1", status="won")
        assert find_active_column(layout, a) == find_active_column(layout, b)

    def test_first_match_in_column_order_wins(self, layout, make_proposal, caplog):
        p = make_proposal(current_phase="phase1", status="won")
        with caplog.at_level(logging.WARNING, logger="proposal_board.services.stage_transition"):
            active = find_active_column(layout, p)
        assert active.id == "new"
        assert [c.id for c in matching_columns(layout, p)] == ["new", "won"]
        assert "matches 2 columns" in caplog.text

    def test_find_ambiguous_mappings(self, make_layout):
        layout = make_layout(
            column("new", "locked_phase", phase_mapping="phase1"),
            column("evaluate", "locked_phase", phase_mapping="phase1"),
            column("won", "default_status", default_status_mapping="won"),
        )
        assert find_ambiguous_mappings(layout) == [
            {"field": "current_phase", "value": "phase1", "column_ids": ["new", "evaluate"]},
        ]

    def test_no_ambiguity_on_partitioned_board(self, layout):
        assert find_ambiguous_mappings(layout) == []


# ═════════════════════════════════════════════════════════════════════════════
# Legality
# ═════════════════════════════════════════════════════════════════════════════


class TestLegality:

    @pytest.mark.parametrize("role", ["viewer", "proposal_manager", None, "anything"])
    def test_unrestricted_column_allows_every_role(self, make_layout, role):
        col = make_layout(column("open")).columns[0]
        assert can_move(col, role) is True

    def test_restricted_column(self, make_layout):
        col = make_layout(column("final", can_drag_to_here_roles=["proposal_manager"])).columns[0]
        assert can_move(col, "proposal_manager") is True
        assert can_move(col, "viewer") is False

    def test_locked_column_still_reachable(self, make_layout):
        col = make_layout(column("new", "locked_phase", phase_mapping="phase1", is_locked=True)).columns[0]
        assert can_move(col, "contributor") is True

    def test_exit_roles(self, make_layout):
        col = make_layout(column("review", can_drag_from_here_roles=["lead_writer"])).columns[0]
        assert can_leave(col, "lead_writer") is True
        assert can_leave(col, "contributor") is False

    def test_approval_to_exit(self, make_layout):
        src, dst = make_layout(
            column("final", requires_approval_to_exit=True, approver_roles=["organization_owner"]),
            column("done"),
        ).columns
        assert is_move_legal(dst, "organization_owner", source=src) is True
        assert is_move_legal(dst, "lead_writer", source=src) is False

    def test_approval_without_approvers_is_unrestricted(self, make_layout):
        src = make_layout(column("final", requires_approval_to_exit=True)).columns[0]
        assert can_leave(src, "viewer") is True


# ═════════════════════════════════════════════════════════════════════════════
# apply_move
# ═════════════════════════════════════════════════════════════════════════════


class TestApplyMove:

    def test_writes_only_target_pointer(self, layout, make_proposal):
        p = make_proposal(current_phase="phase1", custom_workflow_stage_id="old", status="draft")
        apply_move(p, layout.column_by_id("pink_team"), "contributor")
        assert p.custom_workflow_stage_id == "pink_team"
        assert p.current_phase == "phase1"
        assert p.status == "draft"

    @pytest.mark.parametrize("column_id,expected", [
        ("qualify", {"current_phase": "phase3"}),
        ("pink_team", {"custom_workflow_stage_id": "pink_team"}),
        ("submitted", {"status": "submitted"}),
    ])
    def test_move_patch_has_one_field(self, layout, column_id, expected):
        assert move_patch(layout.column_by_id(column_id)) == expected

    def test_forbidden_leaves_proposal_untouched(self, make_layout, make_proposal):
        layout = make_layout(
            column("open"),
            column("final", can_drag_to_here_roles=["proposal_manager"]),
        )
        p = make_proposal(custom_workflow_stage_id="open")
        with pytest.raises(Forbidden) as exc:
            apply_move(p, layout.column_by_id("final"), "viewer")
        assert exc.value.column_id == "final"
        assert p.custom_workflow_stage_id == "open"

    def test_exit_restriction_checked_with_source(self, make_layout, make_proposal):
        layout = make_layout(
            column("review", can_drag_from_here_roles=["lead_writer"]),
            column("final"),
        )
        p = make_proposal(custom_workflow_stage_id="review")
        with pytest.raises(Forbidden):
            apply_move(p, layout.column_by_id("final"), "contributor", source=layout.column_by_id("review"))
        apply_move(p, layout.column_by_id("final"), "lead_writer", source=layout.column_by_id("review"))
        assert p.custom_workflow_stage_id == "final"
