"""
Column jump selector — menu / keyboard alternative to drag targeting.

Lists every column with ``reachable`` and ``current`` flags; ``reachable``
is plain move legality, so the current column is usually reachable too.
Selecting a reachable, non-current column commits through
``stage_transition.apply_move``, the same legality and mutation path a
drag-and-drop drop uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from proposal_board.core.exceptions import Forbidden, NotFoundError
from proposal_board.services.board_layout import BoardLayout, Column
from proposal_board.services.stage_transition import (
    apply_move,
    find_active_column,
    move_denial_reason,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JumpOption:
    column: Column
    reachable: bool
    current: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "column_id": self.column.id,
            "label": self.column.display_name,
            "type": self.column.type,
            "is_terminal": self.column.is_terminal,
            "reachable": self.reachable,
            "current": self.current,
            "reason": self.reason,
        }


def build_jump_menu(layout: BoardLayout, proposal, user_role: str | None) -> list[JumpOption]:
    """All columns in board order, flagged for the acting role."""
    active = find_active_column(layout, proposal)
    options = []
    for column in layout.columns:
        current = active is not None and column.id == active.id
        reason = move_denial_reason(column, user_role, active)
        options.append(JumpOption(column=column, reachable=reason is None, current=current, reason=reason))
    return options


def select_column(
    layout: BoardLayout,
    proposal,
    column_id: str,
    user_role: str | None,
    commit: Callable | None = None,
):
    """Commit a jump to ``column_id``.

    ``commit(proposal, target, user_role, source)`` defaults to ``apply_move``;
    the persistence layer passes its own move-commit, which itself calls
    ``apply_move``. Selecting the current column is a no-op and returns None.
    """
    target = layout.column_by_id(column_id)
    if target is None:
        raise NotFoundError(resource="Column", resource_id=column_id)

    source = find_active_column(layout, proposal)
    if source is not None and source.id == target.id:
        logger.debug("Jump to current column '%s' ignored", column_id)
        return None

    reason = move_denial_reason(target, user_role, source)
    if reason is not None:
        raise Forbidden(target.id, user_role, reason)

    return (commit or apply_move)(proposal, target, user_role, source)
