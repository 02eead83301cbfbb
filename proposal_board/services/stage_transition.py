"""
Stage Transition Engine — column resolution and move legality.

Resolves which board column a proposal currently sits in and decides whether a
role may move it into another column. The same legality function is shared by
drag-and-drop drops and by the column jump selector.

Column matching (evaluated in configured column order, first match wins):
    locked_phase    column.phase_mapping          == proposal.current_phase
    custom_stage    column.id                     == proposal.custom_workflow_stage_id
    default_status  column.default_status_mapping == proposal.status

Usage:
    from proposal_board.services.stage_transition import apply_move, find_active_column

    column = find_active_column(layout, proposal)
    apply_move(proposal, layout.column_by_id("qualify"), "proposal_manager", source=column)
"""

from __future__ import annotations

import logging

from proposal_board.core.exceptions import Forbidden, UnresolvedColumn
from proposal_board.services.board_layout import BoardLayout, Column

logger = logging.getLogger(__name__)

# Column type → proposal field that carries the pointer
POINTER_FIELD_BY_TYPE = {
    "locked_phase": "current_phase",
    "custom_stage": "custom_workflow_stage_id",
    "default_status": "status",
}


def _pointer_value(column: Column) -> str | None:
    if column.type == "locked_phase":
        return column.phase_mapping
    if column.type == "custom_stage":
        return column.id
    if column.type == "default_status":
        return column.default_status_mapping
    return None


def column_matches(column: Column, proposal) -> bool:
    """True if the proposal's pointer for this column's type addresses it."""
    field = POINTER_FIELD_BY_TYPE.get(column.type)
    if field is None:
        return False
    expected = _pointer_value(column)
    return expected is not None and getattr(proposal, field, None) == expected


def matching_columns(layout: BoardLayout, proposal) -> list[Column]:
    """All columns whose predicate the proposal satisfies, in column order."""
    return [c for c in layout.columns if column_matches(c, proposal)]


def find_active_column(layout: BoardLayout, proposal) -> Column | None:
    """Return the proposal's active column, or None for an unrecognized state.

    Precedence is column order. When more than one column matches, the
    ambiguity is logged; ``find_ambiguous_mappings`` reports it per board.
    """
    matches = matching_columns(layout, proposal)
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "Proposal %s matches %d columns (%s); using '%s' by column order",
            getattr(proposal, "id", None), len(matches),
            ", ".join(c.id for c in matches), matches[0].id,
        )
    return matches[0]


def resolve_active_column(layout: BoardLayout, proposal) -> Column:
    """Like find_active_column, but raise UnresolvedColumn instead of returning None."""
    column = find_active_column(layout, proposal)
    if column is None:
        raise UnresolvedColumn(
            getattr(proposal, "id", None),
            current_phase=getattr(proposal, "current_phase", None),
            custom_workflow_stage_id=getattr(proposal, "custom_workflow_stage_id", None),
            status=getattr(proposal, "status", None),
        )
    return column


def find_ambiguous_mappings(layout: BoardLayout) -> list[dict]:
    """Groups of columns that share one pointer value (and so shadow each other).

    Returns:
        [{"field": "current_phase", "value": "phase1", "column_ids": ["new", "evaluate"]}, ...]
    """
    groups: dict[tuple[str, str], list[str]] = {}
    for column in layout.columns:
        field = POINTER_FIELD_BY_TYPE.get(column.type)
        value = _pointer_value(column)
        if field is None or value is None:
            continue
        groups.setdefault((field, value), []).append(column.id)
    return [
        {"field": field, "value": value, "column_ids": ids}
        for (field, value), ids in groups.items()
        if len(ids) > 1
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Legality
# ═════════════════════════════════════════════════════════════════════════════


def can_move(column: Column, user_role: str | None) -> bool:
    """True if the role may move a card INTO the column.

    ``is_locked`` does not matter here: it only protects the column definition.
    """
    if not column.can_drag_to_here_roles:
        return True
    return user_role in column.can_drag_to_here_roles


def can_leave(column: Column, user_role: str | None) -> bool:
    """True if the role may move a card OUT OF the column."""
    if column.can_drag_from_here_roles and user_role not in column.can_drag_from_here_roles:
        return False
    if column.requires_approval_to_exit and column.approver_roles:
        return user_role in column.approver_roles
    return True


def move_denial_reason(
    target: Column,
    user_role: str | None,
    source: Column | None = None,
) -> str | None:
    """Why a move is illegal, or None when it is allowed."""
    if not can_move(target, user_role):
        return "role not allowed to move into this column"
    if source is not None and source.id != target.id and not can_leave(source, user_role):
        if source.requires_approval_to_exit and source.approver_roles:
            return f"leaving '{source.id}' requires approval by one of: {', '.join(sorted(source.approver_roles))}"
        return f"role not allowed to move out of '{source.id}'"
    return None


def is_move_legal(target: Column, user_role: str | None, source: Column | None = None) -> bool:
    """Single legality check shared by drag-and-drop and the jump selector."""
    return move_denial_reason(target, user_role, source) is None


def move_patch(target: Column) -> dict:
    """The one pointer field a move into ``target`` writes."""
    field = POINTER_FIELD_BY_TYPE.get(target.type)
    if field is None:
        raise ValueError(f"Column '{target.id}' has unknown type '{target.type}'")
    return {field: _pointer_value(target)}


def apply_move(proposal, target: Column, user_role: str | None, source: Column | None = None):
    """Move ``proposal`` into ``target``; mutates and returns the proposal.

    Exactly one of current_phase / custom_workflow_stage_id / status is
    written. The other two pointers are left as they are, even if stale.

    Raises:
        Forbidden: the role may not enter ``target`` (or leave ``source``).
    """
    reason = move_denial_reason(target, user_role, source)
    if reason is not None:
        logger.warning(
            "Move rejected: proposal=%s target=%s role=%s (%s)",
            getattr(proposal, "id", None), target.id, user_role, reason,
        )
        raise Forbidden(target.id, user_role, reason)

    for field, value in move_patch(target).items():
        setattr(proposal, field, value)
    logger.info(
        "Proposal %s moved to column '%s' by role=%s",
        getattr(proposal, "id", None), target.id, user_role,
    )
    return proposal
