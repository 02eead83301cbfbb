"""
Board templates — seed column layouts and board creation.

Templates:
    - rfp_15_column: locked phase columns (New → Final) followed by the
      terminal default-status columns (Submitted, Won, Lost, Archive).
    - default_status: the simple status board (Evaluating → Archived).

Transaction policy: flush() only; the caller commits.
"""

import copy
import logging

from proposal_board.core.exceptions import ConflictError, ValidationError
from proposal_board.models import db
from proposal_board.models.audit import write_audit
from proposal_board.models.board import BoardConfig
from proposal_board.services.board_layout import validate_columns

logger = logging.getLogger(__name__)

APPROVER_ROLES = ["organization_owner", "proposal_manager"]

ROLE_OPTIONS = [
    "organization_owner", "proposal_manager", "lead_writer",
    "contributor", "reviewer", "viewer",
]


def _item(item_id, label, item_type, required, order):
    return {"id": item_id, "label": label, "type": item_type, "required": required, "order": order}


def _phase(col_id, label, phase, order, items, **extra):
    column = {
        "id": col_id,
        "label": label,
        "type": "locked_phase",
        "phase_mapping": phase,
        "is_locked": True,
        "order": order,
        "checklist_items": items,
        "can_drag_to_here_roles": [],
        "can_drag_from_here_roles": [],
        "requires_approval_to_exit": False,
        "approver_roles": [],
        "wip_limit": 0,
        "wip_limit_type": "soft",
    }
    column.update(extra)
    return column


def _status(col_id, label, status, order, *, terminal=False, locked=True):
    return {
        "id": col_id,
        "label": label,
        "type": "default_status",
        "default_status_mapping": status,
        "is_locked": locked,
        "is_terminal": terminal,
        "order": order,
        "checklist_items": [],
        "can_drag_to_here_roles": [],
        "can_drag_from_here_roles": [],
        "requires_approval_to_exit": False,
        "approver_roles": [],
        "wip_limit": 0,
        "wip_limit_type": "soft",
    }


RFP_15_COLUMN = [
    _phase("new", "New", "phase1", 0, [
        _item("basic_info", "Add Basic Information", "modal_trigger", True, 0),
        _item("name_solicitation", "Name & Solicitation #", "system_check", True, 1),
    ]),
    _phase("evaluate", "Evaluate", "phase1", 1, [
        _item("identify_prime", "Identify Prime Contractor", "modal_trigger", True, 0),
        _item("add_partners", "Add Teaming Partners", "manual_check", False, 1),
    ]),
    _phase("qualify", "Qualify", "phase3", 2, [
        _item("solicitation_details", "Enter Solicitation Details", "modal_trigger", True, 0),
        _item("contract_value", "Add Contract Value", "system_check", True, 1),
        _item("due_date", "Set Due Date", "system_check", True, 2),
    ]),
    _phase("gather", "Gather", "phase2", 3, [
        _item("upload_solicitation", "Upload Solicitation Document", "modal_trigger", True, 0),
        _item("reference_docs", "Add Reference Documents", "modal_trigger", False, 1),
    ]),
    _phase("analyze", "Analyze", "phase3", 4, [
        _item("run_ai_analysis", "Run AI Compliance Analysis", "ai_trigger", True, 0),
        _item("review_requirements", "Review Compliance Requirements", "manual_check", True, 1),
    ]),
    _phase("strategy", "Strategy", "phase4", 5, [
        _item("run_evaluation", "Run Strategic Evaluation", "ai_trigger", True, 0),
        _item("go_no_go", "Make Go/No-Go Decision", "manual_check", True, 1),
        _item("competitor_analysis", "Complete Competitor Analysis", "modal_trigger", False, 2),
    ]),
    _phase("outline", "Outline", "phase5", 6, [
        _item("select_sections", "Select Proposal Sections", "modal_trigger", True, 0),
        _item("generate_win_themes", "Generate Win Themes", "ai_trigger", False, 1),
        _item("set_strategy", "Set Writing Strategy", "modal_trigger", True, 2),
    ]),
    _phase("drafting", "Drafting", "phase6", 7, [
        _item("start_writing", "Start Content Generation", "modal_trigger", True, 0),
        _item("complete_sections", "Complete All Sections", "system_check", True, 1),
    ]),
    _phase("review", "Review", "phase7", 8, [
        _item("internal_review", "Complete Internal Review", "manual_check", True, 0),
        _item("red_team", "Conduct Red Team Review", "modal_trigger", False, 1),
    ]),
    _phase("final", "Final", "phase7", 9, [
        _item("readiness_check", "Run Submission Readiness Check", "ai_trigger", True, 0),
        _item("final_review", "Final Executive Review", "approval", True, 1),
    ], requires_approval_to_exit=True, approver_roles=list(APPROVER_ROLES)),
    _status("submitted", "Submitted", "submitted", 10, terminal=True),
    _status("won", "Won", "won", 11, terminal=True),
    _status("lost", "Lost", "lost", 12, terminal=True),
    _status("archived", "Archive", "archived", 13, terminal=True),
]

DEFAULT_STATUS_BOARD = [
    _status("evaluating", "Evaluating", "evaluating", 0, locked=False),
    _status("watch_list", "Watch List", "watch_list", 1, locked=False),
    _status("draft", "Drafting", "draft", 2, locked=False),
    _status("in_progress", "In Progress", "in_progress", 3, locked=False),
    _status("submitted", "Submitted", "submitted", 4, locked=False),
    _status("won", "Won", "won", 5, terminal=True, locked=False),
    _status("lost", "Lost", "lost", 6, terminal=True, locked=False),
    _status("archived", "Archived", "archived", 7, terminal=True, locked=False),
]

BOARD_TEMPLATES = {
    "rfp_15_column": {"board_name": "15-Column RFP Workflow", "columns": RFP_15_COLUMN},
    "default_status": {"board_name": "Proposal Pipeline", "columns": DEFAULT_STATUS_BOARD},
}

DEFAULT_SWIMLANE_CONFIG = {
    "enabled": False,
    "group_by": "none",
    "custom_field_name": "",
    "show_empty_swimlanes": False,
}

DEFAULT_VIEW_SETTINGS = {
    "default_view": "kanban",
    "show_card_details": ["assignees", "due_date", "progress", "value"],
    "compact_mode": False,
}


def create_board(organization_id, board_type, board_name, columns, *, actor="system",
                 swimlane_config=None, view_settings=None):
    """Create a board after validating its columns.

    Raises:
        ValidationError: malformed columns or missing fields.
        ConflictError: a board with the same name (case-insensitive) or the
            same board type already exists for the organization.
    """
    board_name = (board_name or "").strip()
    if not board_name:
        raise ValidationError("board_name is required")
    if organization_id is None:
        raise ValidationError("organization_id is required")
    validate_columns(columns)

    existing = BoardConfig.query.filter_by(organization_id=organization_id).all()
    normalized = board_name.lower()
    for board in existing:
        if board.board_name.strip().lower() == normalized:
            raise ConflictError("Board", "board_name", board.board_name)
        if board.board_type == board_type:
            raise ConflictError("Board", "board_type", board_type)

    board = BoardConfig(
        organization_id=organization_id,
        board_type=board_type,
        board_name=board_name,
    )
    board.columns = copy.deepcopy(columns)
    board.swimlane_config = swimlane_config or DEFAULT_SWIMLANE_CONFIG
    board.view_settings = view_settings or DEFAULT_VIEW_SETTINGS
    db.session.add(board)
    db.session.flush()

    write_audit(
        entity_type="board",
        entity_id=board.id,
        action="board.create",
        actor=actor,
        organization_id=organization_id,
        diff={"board_type": {"old": None, "new": board_type}},
    )
    logger.info("Board %s created for organization %s (%s)", board.id, organization_id, board_type)
    return board


def create_board_from_template(organization_id, template, *, board_name=None, actor="system"):
    """Create a board from one of ``BOARD_TEMPLATES``."""
    entry = BOARD_TEMPLATES.get(template)
    if entry is None:
        raise ValidationError(
            f"template must be one of: {', '.join(sorted(BOARD_TEMPLATES))}",
            details={"template": template},
        )
    return create_board(
        organization_id,
        template,
        board_name or entry["board_name"],
        entry["columns"],
        actor=actor,
    )


def seed_board_templates(organization_id):
    """Create every template board the organization does not have yet.

    Returns the number of boards created.
    """
    existing = {b.board_type for b in BoardConfig.query.filter_by(organization_id=organization_id)}
    created = 0
    for template in BOARD_TEMPLATES:
        if template in existing:
            continue
        create_board_from_template(organization_id, template)
        created += 1
    return created
