"""
Board template + board creation tests.

Covers:
    - Template structure (column order, terminal columns, approval gate)
    - create_board duplicate rules (name case-insensitive, board type)
    - seed_board_templates and the ``seed-board-templates`` CLI command
"""

import pytest

from proposal_board.core.exceptions import ConflictError, ValidationError
from proposal_board.models import db
from proposal_board.models.audit import AuditLog
from proposal_board.models.board import BoardConfig
from proposal_board.services.board_layout import BoardLayout
from proposal_board.services.board_templates import (
    APPROVER_ROLES,
    BOARD_TEMPLATES,
    DEFAULT_STATUS_BOARD,
    RFP_15_COLUMN,
    create_board,
    create_board_from_template,
    seed_board_templates,
)
from proposal_board.services.stage_transition import find_ambiguous_mappings


class TestTemplateStructure:

    def test_rfp_phase_columns_then_terminal_status(self):
        types = [c["type"] for c in RFP_15_COLUMN]
        assert types[:10] == ["locked_phase"] * 10
        assert types[10:] == ["default_status"] * 4
        assert [c["id"] for c in RFP_15_COLUMN if c.get("is_terminal")] == \
            ["submitted", "won", "lost", "archived"]

    def test_final_column_requires_approval(self):
        final = BoardLayout.from_config(RFP_15_COLUMN).column_by_id("final")
        assert final.requires_approval_to_exit is True
        assert final.approver_roles == frozenset(APPROVER_ROLES)
        assert final.item_by_id("final_review").type == "approval"

    def test_rfp_template_has_known_ambiguities(self):
        groups = {g["value"]: g["column_ids"] for g in find_ambiguous_mappings(BoardLayout.from_config(RFP_15_COLUMN))}
        assert groups["phase1"] == ["new", "evaluate"]
        assert groups["phase3"] == ["qualify", "analyze"]
        assert groups["phase7"] == ["review", "final"]

    def test_default_status_board_is_unambiguous(self):
        layout = BoardLayout.from_config(DEFAULT_STATUS_BOARD)
        assert len(layout) == 8
        assert find_ambiguous_mappings(layout) == []


class TestCreateBoard:

    def test_create_from_template(self):
        board = create_board_from_template(1, "default_status", actor="owner@example.com")
        db.session.commit()

        assert board.id is not None
        assert board.board_name == BOARD_TEMPLATES["default_status"]["board_name"]
        assert len(board.columns) == 8
        assert board.view_settings["default_view"] == "kanban"

        audit = AuditLog.query.filter_by(action="board.create").one()
        assert audit.entity_id == str(board.id)
        assert audit.actor == "owner@example.com"

    def test_duplicate_name_case_insensitive(self):
        create_board(1, "custom_a", "Capture Pipeline", DEFAULT_STATUS_BOARD)
        with pytest.raises(ConflictError) as exc:
            create_board(1, "custom_b", "  capture pipeline ", DEFAULT_STATUS_BOARD)
        assert exc.value.field == "board_name"

    def test_duplicate_board_type(self):
        create_board_from_template(1, "rfp_15_column")
        with pytest.raises(ConflictError) as exc:
            create_board_from_template(1, "rfp_15_column", board_name="Second RFP")
        assert exc.value.field == "board_type"

    def test_same_template_other_organization(self):
        create_board_from_template(1, "rfp_15_column")
        assert create_board_from_template(2, "rfp_15_column").organization_id == 2

    def test_unknown_template(self):
        with pytest.raises(ValidationError):
            create_board_from_template(1, "scrum")

    @pytest.mark.parametrize("columns", [
        [],
        [{"id": "a", "type": "swimlane"}],
        [{"id": "a", "type": "locked_phase"}],
        [{"id": "a", "type": "custom_stage"}, {"id": "a", "type": "custom_stage"}],
        [{"id": "a", "type": "custom_stage", "checklist_items": [{"id": "x", "type": "magic"}]}],
    ])
    def test_malformed_columns_rejected(self, columns):
        with pytest.raises(ValidationError):
            create_board(1, "custom", "Custom", columns)
        assert BoardConfig.query.count() == 0


class TestSeed:

    def test_seed_is_idempotent(self):
        assert seed_board_templates(7) == 2
        assert seed_board_templates(7) == 0
        assert {b.board_type for b in BoardConfig.query.filter_by(organization_id=7)} == set(BOARD_TEMPLATES)

    def test_cli_command(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-board-templates", "--organization-id", "9"])
        assert result.exit_code == 0, result.output
        assert "Seeded 2 board(s) for organization 9" in result.output

    def test_cli_requires_organization(self, app):
        result = app.test_cli_runner().invoke(args=["seed-board-templates"])
        assert result.exit_code != 0
