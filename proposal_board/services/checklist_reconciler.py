"""
Checklist Reconciler — derive system-check completion and emit minimal patches.

``reconcile`` recomputes the system checks of the proposal's active column and
returns a ``ProposalPatch`` only when the stored state differs; otherwise it
returns None (NoOp) and the caller must not write. Entries for every other
column are carried over untouched.

``ReconcileSubscription`` is the observe-and-diff wrapper: it re-runs
``reconcile`` only when the (proposal version, board version) it last saw has
changed, so repeated observations of the same data never produce writes.

Usage:
    patch = reconcile(layout, proposal)
    if patch:
        store.update(proposal.id, patch.to_update())
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from proposal_board.services.board_layout import BoardLayout, Column
from proposal_board.services.checklist_validator import evaluate
from proposal_board.services.stage_transition import find_active_column

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class ProposalPatch:
    """Partial update produced by a reconciliation."""

    proposal_id: int | str | None
    column_id: str
    current_stage_checklist_status: dict
    action_required: bool
    action_required_description: str | None
    changed_items: list[str] = field(default_factory=list)

    def to_update(self) -> dict:
        """Fields for the store's partial-update contract."""
        return {
            "current_stage_checklist_status": self.current_stage_checklist_status,
            "action_required": self.action_required,
            "action_required_description": self.action_required_description,
        }

    def to_dict(self) -> dict:
        return {
            "proposal_id": self.proposal_id,
            "column_id": self.column_id,
            "changed_items": list(self.changed_items),
            **self.to_update(),
        }


def _completed(entry) -> bool:
    return bool(entry.get("completed")) if isinstance(entry, dict) else False


def outstanding_required_items(column: Column, column_status: dict) -> list:
    """Required items of ``column`` not completed in ``column_status``."""
    return [
        item for item in column.checklist_items
        if item.required and not _completed(column_status.get(item.id))
    ]


def describe_action_required(column: Column, outstanding: list) -> str | None:
    if not outstanding:
        return None
    labels = ", ".join(item.label for item in outstanding)
    return f"{len(outstanding)} required item(s) incomplete in {column.display_name}: {labels}"


def is_checklist_complete(layout: BoardLayout, proposal) -> bool:
    """True when every required item of the active column is completed.

    A proposal without an active column is never complete.
    """
    column = find_active_column(layout, proposal)
    if column is None:
        return False
    status = (getattr(proposal, "current_stage_checklist_status", None) or {}).get(column.id) or {}
    return not outstanding_required_items(column, status)


def reconcile(
    layout: BoardLayout,
    proposal,
    now: datetime | None = None,
    actor: str = SYSTEM_ACTOR,
) -> ProposalPatch | None:
    """Recompute the active column's system checks.

    Items flipped to completed are stamped with ``actor`` and ``now``.

    Returns:
        ProposalPatch when any system-check entry or the action-required
        fields differ from what is stored, otherwise None.
    """
    column = find_active_column(layout, proposal)
    if column is None:
        logger.debug("Reconcile skipped: proposal %s has no active column", getattr(proposal, "id", None))
        return None

    stored = getattr(proposal, "current_stage_checklist_status", None) or {}
    column_status = dict(stored.get(column.id) or {})
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    changed = []
    for item in column.system_checks:
        should = evaluate(item.id, proposal)
        entry = column_status.get(item.id)
        if isinstance(entry, dict) and _completed(entry) == should:
            continue
        column_status[item.id] = {
            "completed": should,
            "completed_by": actor if should else None,
            "completed_date": timestamp if should else None,
        }
        changed.append(item.id)

    outstanding = outstanding_required_items(column, column_status)
    action_required = bool(outstanding)
    description = describe_action_required(column, outstanding)

    unchanged_flags = (
        bool(getattr(proposal, "action_required", False)) == action_required
        and getattr(proposal, "action_required_description", None) == description
    )
    if not changed and unchanged_flags:
        logger.debug("Reconcile NoOp for proposal %s in '%s'", getattr(proposal, "id", None), column.id)
        return None

    new_status = dict(stored)
    new_status[column.id] = column_status

    logger.info(
        "Reconcile proposal %s column '%s': changed=%s action_required=%s",
        getattr(proposal, "id", None), column.id, changed, action_required,
    )
    return ProposalPatch(
        proposal_id=getattr(proposal, "id", None),
        column_id=column.id,
        current_stage_checklist_status=new_status,
        action_required=action_required,
        action_required_description=description,
        changed_items=changed,
    )


class ReconcileSubscription:
    """Observe-and-diff trigger for ``reconcile``.

    ``observe`` is meant to be called on every observed change of a proposal
    or its board. It evaluates only when the proposal / board version key
    differs from the last one it processed for that proposal, and calls
    ``write`` only for a non-NoOp patch. Snapshots without a version are
    always evaluated.

    When ``write`` only stages the patch (a flushed but uncommitted
    transaction), the caller settles it afterwards: ``confirm`` once the
    transaction is durable, ``discard`` after a rollback so those
    proposals are evaluated again on their next observation.

    At most ``max_tracked`` proposals are remembered; the least recently
    observed one is dropped first.
    """

    def __init__(
        self,
        write: Callable[[ProposalPatch], None],
        clock: Callable[[], datetime] | None = None,
        actor: str = SYSTEM_ACTOR,
        max_tracked: int = 10_000,
    ) -> None:
        self._write = write
        self._actor = actor
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_tracked = max_tracked
        self._seen: OrderedDict = OrderedDict()
        self._pending: set = set()

    @staticmethod
    def _key(layout: BoardLayout, proposal):
        version = getattr(proposal, "version", None)
        if version is None or layout.version is None:
            return None
        return (version, layout.board_id, layout.version)

    def __len__(self) -> int:
        return len(self._seen)

    def observe(self, layout: BoardLayout, proposal) -> ProposalPatch | None:
        proposal_id = getattr(proposal, "id", None)
        key = self._key(layout, proposal)
        if key is not None and self._seen.get(proposal_id) == key:
            self._seen.move_to_end(proposal_id)
            return None

        patch = reconcile(layout, proposal, now=self._clock(), actor=self._actor)
        if patch is not None:
            # A raising write leaves the key unrecorded so the next observation retries.
            self._write(patch)
            self._pending.add(proposal_id)
        if key is not None:
            self._remember(proposal_id, key)
        return patch

    def _remember(self, proposal_id, key) -> None:
        self._seen[proposal_id] = key
        self._seen.move_to_end(proposal_id)
        while len(self._seen) > self._max_tracked:
            self._seen.popitem(last=False)

    def confirm(self) -> None:
        """Writes made since the last confirm / discard are durable."""
        self._pending.clear()

    def discard(self) -> None:
        """Writes made since the last confirm / discard were rolled back."""
        for proposal_id in self._pending:
            self._seen.pop(proposal_id, None)
        self._pending.clear()

    def retain(self, board_id, proposal_ids) -> None:
        """Drop proposals last seen on ``board_id`` that are no longer in ``proposal_ids``."""
        keep = set(proposal_ids)
        stale = [pid for pid, key in self._seen.items() if key[1] == board_id and pid not in keep]
        for proposal_id in stale:
            del self._seen[proposal_id]

    def forget(self, proposal_id) -> None:
        self._seen.pop(proposal_id, None)

    def reset(self) -> None:
        self._seen.clear()
        self._pending.clear()
