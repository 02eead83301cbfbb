"""
Proposal Board Workflow Engine
Board Blueprint — boards, proposals, moves and checklists.

Endpoints:
    Boards:
        POST   /api/v1/boards                                 — Create board from template
        GET    /api/v1/boards/<id>                            — Board configuration
        GET    /api/v1/boards/<id>/view                       — Kanban view (+ unresolved, warnings)
        POST   /api/v1/boards/<id>/proposals                  — Create proposal on board

    Proposals:
        GET    /api/v1/proposals/<id>                         — Detail + active column
        PATCH  /api/v1/proposals/<id>                         — Partial data update
        POST   /api/v1/proposals/<id>/move                    — Commit a drop / jump
        GET    /api/v1/proposals/<id>/jump-menu?role=         — Column jump options
        POST   /api/v1/proposals/<id>/reconcile               — Explicit checklist reconcile
        POST   /api/v1/proposals/<id>/checklist/<item>/toggle — Toggle manual / approval item

The acting role comes from the JSON body ``role`` or the ``X-User-Role``
header; authentication itself happens upstream.
"""

import logging

from flask import Blueprint, jsonify, request

from proposal_board.core.exceptions import (
    ConflictError,
    Forbidden,
    NotFoundError,
    PersistenceError,
    UnresolvedColumn,
    ValidationError,
    WipLimitExceeded,
)
from proposal_board.models import db
from proposal_board.models.board import BoardConfig
from proposal_board.models.proposal import Proposal
from proposal_board.services import board_service
from proposal_board.services.board_templates import create_board_from_template
from proposal_board.services.stage_transition import find_active_column
from proposal_board.utils.errors import E, api_error
from proposal_board.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

board_bp = Blueprint("board", __name__, url_prefix="/api/v1")

_BOARD_ERRORS = (
    NotFoundError, ValidationError, ConflictError,
    Forbidden, UnresolvedColumn, WipLimitExceeded, PersistenceError,
)


# ── helpers ──────────────────────────────────────────────────────────────────

def _acting_role(data=None):
    role = (data or {}).get("role") or request.args.get("role") or request.headers.get("X-User-Role")
    return role or None


def _actor():
    return request.headers.get("X-User-Id") or None


def _error_response(exc):
    """Map a board error to its JSON response; the session is rolled back."""
    db.session.rollback()
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, Forbidden):
        return api_error(E.FORBIDDEN, str(exc), details={
            "column_id": exc.column_id, "role": exc.role, "reason": exc.reason,
        })
    if isinstance(exc, WipLimitExceeded):
        return api_error(E.WIP_LIMIT, str(exc), details={
            "column_id": exc.column_id, "limit": exc.limit, "current": exc.current,
        })
    if isinstance(exc, UnresolvedColumn):
        return api_error(E.UNRESOLVED_COLUMN, str(exc), details={
            "proposal_id": exc.proposal_id, "pointers": exc.pointers,
        })
    if isinstance(exc, PersistenceError):
        return api_error(E.DATABASE, str(exc))
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={
            "field": exc.field, "value": exc.value,
        })
    return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)


def _proposal_detail(proposal):
    body = proposal.to_dict()
    board = proposal.board
    active = None
    if board is not None:
        active = find_active_column(board_service.layout_of(board), proposal)
    body["active_column_id"] = active.id if active else None
    return body


# ═════════════════════════════════════════════════════════════════════════════
# Boards
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/boards", methods=["POST"])
def create_board():
    """Create a board from a template.

    Body JSON:
        organization_id — owning organization (required)
        template        — rfp_15_column | default_status (default: rfp_15_column)
        board_name      — optional display name override
    """
    data = request.get_json(silent=True) or {}
    if data.get("organization_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "organization_id is required")
    try:
        board = create_board_from_template(
            data["organization_id"],
            data.get("template", "rfp_15_column"),
            board_name=data.get("board_name"),
            actor=_actor() or "system",
        )
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(board.to_dict()), 201


@board_bp.route("/boards/<int:board_id>", methods=["GET"])
def get_board(board_id):
    board, err = get_or_404(BoardConfig, board_id, label="Board")
    if err:
        return err
    return jsonify(board.to_dict()), 200


@board_bp.route("/boards/<int:board_id>/view", methods=["GET"])
def board_view(board_id):
    """Kanban view: proposals per column, unresolved proposals, config warnings."""
    board, err = get_or_404(BoardConfig, board_id, label="Board")
    if err:
        return err

    try:
        view, reconciled = board_service.board_view(board)
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    if reconciled:
        reconciler = board_service.board_reconciler()
        err = db_commit_or_error()
        if err:
            reconciler.discard()
            return err
        reconciler.confirm()
    return jsonify(view), 200


@board_bp.route("/boards/<int:board_id>/proposals", methods=["POST"])
def create_proposal(board_id):
    """Create a proposal on the board.

    Body JSON:
        proposal_name (required), solicitation_number, contract_value,
        due_date, section_count, completed_section_count,
        column_id — starting column (default: first column)
    """
    board, err = get_or_404(BoardConfig, board_id, label="Board")
    if err:
        return err

    data = request.get_json(silent=True) or {}
    try:
        proposal, _patch = board_service.create_proposal(board, data)
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_proposal_detail(proposal)), 201


# ═════════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/proposals/<int:proposal_id>", methods=["GET"])
def get_proposal(proposal_id):
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err
    return jsonify(_proposal_detail(proposal)), 200


@board_bp.route("/proposals/<int:proposal_id>", methods=["PATCH"])
def update_proposal(proposal_id):
    """Partial update of proposal data; pointers are rejected (use /move)."""
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    try:
        proposal, patch = board_service.update_proposal(proposal, data)
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    err = db_commit_or_error()
    if err:
        return err
    body = _proposal_detail(proposal)
    body["reconciled"] = patch is not None
    return jsonify(body), 200


@board_bp.route("/proposals/<int:proposal_id>/move", methods=["POST"])
def move_proposal(proposal_id):
    """Commit a drop or column jump.

    Body JSON:
        target_column_id — destination column (required)
        role             — acting role (or X-User-Role header)
    """
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    target = data.get("target_column_id")
    if not target:
        return api_error(E.VALIDATION_REQUIRED, "target_column_id is required")

    try:
        outcome = board_service.commit_move(proposal, target, _acting_role(data), actor=_actor())
    except _BOARD_ERRORS as exc:
        logger.info("Move of proposal %s to '%s' rejected: %s", proposal_id, target, exc)
        return _error_response(exc)

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(outcome.to_dict()), 200


@board_bp.route("/proposals/<int:proposal_id>/jump-menu", methods=["GET"])
def jump_menu(proposal_id):
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err
    try:
        menu = board_service.jump_menu(proposal, _acting_role())
    except _BOARD_ERRORS as exc:
        return _error_response(exc)
    return jsonify(menu), 200


@board_bp.route("/proposals/<int:proposal_id>/reconcile", methods=["POST"])
def reconcile_proposal(proposal_id):
    """Run the checklist reconciler now. ``changed`` is false for a NoOp."""
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err
    try:
        patch = board_service.run_reconcile(proposal)
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    if patch is None:
        return jsonify({"changed": False, "proposal": _proposal_detail(proposal)}), 200

    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "changed": True,
        "patch": patch.to_dict(),
        "proposal": _proposal_detail(proposal),
    }), 200


@board_bp.route("/proposals/<int:proposal_id>/checklist/<item_id>/toggle", methods=["POST"])
def toggle_checklist_item(proposal_id, item_id):
    """Toggle a manual or approval checklist item in the active column.

    Body JSON:
        completed — explicit value; omitted flips the current value
        role      — acting role (or X-User-Role header)
    """
    proposal, err = get_or_404(Proposal, proposal_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    try:
        result = board_service.toggle_checklist_item(
            proposal, item_id, _acting_role(data),
            completed=data.get("completed"), actor=_actor(),
        )
    except _BOARD_ERRORS as exc:
        return _error_response(exc)

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200
