"""Board service layer — persistence around the pure board engine.

Transaction policy: methods use flush(), never commit().
Caller (route handler) is responsible for db.session.commit().

Every proposal write goes through ``write_partial``: a partial update of
``PATCHABLE_FIELDS`` that bumps ``Proposal.version``. Move commits, checklist
toggles, data edits and reconciliation all share it, and every one of them
reconciles afterwards against a fresh snapshot of the row, never against
state captured before the write.

Operations:
- create_proposal / update_proposal  (data edits, then reconcile)
- commit_move                        (legality → WIP limit → pointer write → reconcile)
- run_reconcile                      (explicit reconcile; None means NoOp)
- toggle_checklist_item              (manual / approval items only)
- jump_menu                          (column jump options for a role)
- board_view                         (kanban grouping + unresolved bucket + warnings)
"""
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from proposal_board.core.exceptions import (
    Forbidden,
    NotFoundError,
    PersistenceError,
    ValidationError,
    WipLimitExceeded,
)
from proposal_board.models import db
from proposal_board.models.audit import write_audit
from proposal_board.models.proposal import POINTER_FIELDS, PATCHABLE_FIELDS, Proposal
from proposal_board.services.board_layout import BoardLayout, Column, ProposalSnapshot
from proposal_board.services.checklist_reconciler import (
    SYSTEM_ACTOR,
    ProposalPatch,
    ReconcileSubscription,
    describe_action_required,
    is_checklist_complete,
    outstanding_required_items,
    reconcile,
)
from proposal_board.services.column_jump import build_jump_menu, select_column
from proposal_board.services.stage_transition import (
    apply_move,
    find_active_column,
    find_ambiguous_mappings,
    move_patch,
    resolve_active_column,
)
from proposal_board.utils.helpers import parse_date

logger = logging.getLogger(__name__)

# Fields a caller may edit directly; pointers change only through commit_move
DATA_FIELDS = (
    "proposal_name", "solicitation_number", "contract_value", "due_date",
    "section_count", "completed_section_count",
)

_USER_ITEM_TYPES = {"manual", "manual_check", "approval"}


def _system_actor():
    return current_app.config.get("BOARD_SYSTEM_ACTOR", SYSTEM_ACTOR)


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


# ═════════════════════════════════════════════════════════════════════════════
# Store contract
# ═════════════════════════════════════════════════════════════════════════════


def write_partial(proposal, fields):
    """Apply a partial update to ``proposal`` and bump its version.

    Only ``PATCHABLE_FIELDS`` are accepted; nothing else on the row is touched.
    """
    unknown = set(fields) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields not updatable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    for name, value in fields.items():
        setattr(proposal, name, value)
    proposal.version = (proposal.version or 0) + 1
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        db.session.expire_all()
        logger.error("Write to proposal %s rejected by the store: %s", proposal.id, exc)
        raise PersistenceError(f"Proposal {proposal.id} could not be written") from exc
    return proposal


def board_of(proposal):
    board = proposal.board
    if board is None:
        raise NotFoundError(resource="Board", resource_id=proposal.board_config_id)
    return board


def layout_of(board):
    return BoardLayout.from_board(board)


# ═════════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════════


def _write_patch(proposal, patch: ProposalPatch):
    old = {
        "action_required": proposal.action_required,
        "action_required_description": proposal.action_required_description,
    }
    write_partial(proposal, patch.to_update())
    write_audit(
        entity_type="proposal",
        entity_id=proposal.id,
        action="proposal.checklist_reconcile",
        actor=_system_actor(),
        organization_id=proposal.organization_id,
        diff={
            "column_id": {"old": None, "new": patch.column_id},
            "changed_items": {"old": None, "new": patch.changed_items},
            "action_required": {"old": old["action_required"], "new": patch.action_required},
            "action_required_description": {
                "old": old["action_required_description"],
                "new": patch.action_required_description,
            },
        },
    )


def run_reconcile(proposal, layout=None):
    """Reconcile ``proposal`` against its board and persist a non-NoOp patch.

    Returns:
        ProposalPatch when a write happened, None for NoOp.
    """
    layout = layout or layout_of(board_of(proposal))
    patch = reconcile(layout, ProposalSnapshot.from_model(proposal), actor=_system_actor())
    if patch is not None:
        _write_patch(proposal, patch)
    return patch


def board_reconciler(app=None):
    """The app-wide observe-and-diff reconciler used by the board view."""
    app = app or current_app
    subscription = app.extensions.get("board_reconciler")
    if subscription is None:
        def write(patch):
            proposal = db.session.get(Proposal, patch.proposal_id)
            if proposal is None:
                raise NotFoundError(resource="Proposal", resource_id=patch.proposal_id)
            _write_patch(proposal, patch)

        subscription = ReconcileSubscription(
            write,
            actor=app.config.get("BOARD_SYSTEM_ACTOR", SYSTEM_ACTOR),
            max_tracked=app.config.get("BOARD_RECONCILER_MAX_TRACKED", 10_000),
        )
        app.extensions["board_reconciler"] = subscription
    return subscription


# ═════════════════════════════════════════════════════════════════════════════
# Proposal data
# ═════════════════════════════════════════════════════════════════════════════


def _clean_data(data):
    """Validate and coerce the editable data fields present in ``data``."""
    pointer_fields = sorted(set(data) & set(POINTER_FIELDS))
    if pointer_fields:
        raise ValidationError(
            "Column pointers change only through a move",
            details={"fields": pointer_fields},
        )

    fields = {}
    for name in ("proposal_name", "solicitation_number"):
        if name in data:
            fields[name] = (data[name] or "").strip()

    if "contract_value" in data:
        value = data["contract_value"]
        if value in (None, ""):
            fields["contract_value"] = None
        else:
            try:
                fields["contract_value"] = float(value)
            except (TypeError, ValueError):
                raise ValidationError("contract_value must be a number", details={"contract_value": value})

    if "due_date" in data:
        raw = data["due_date"]
        parsed = parse_date(raw)
        if raw and parsed is None:
            raise ValidationError("due_date must be a date (YYYY-MM-DD)", details={"due_date": raw})
        fields["due_date"] = parsed

    for name in ("section_count", "completed_section_count"):
        if name in data:
            try:
                count = int(data[name] or 0)
            except (TypeError, ValueError):
                raise ValidationError(f"{name} must be an integer", details={name: data[name]})
            if count < 0:
                raise ValidationError(f"{name} cannot be negative", details={name: count})
            fields[name] = count
    return fields


def create_proposal(board, data):
    """Create a proposal on ``board`` and reconcile it.

    Placement: ``column_id`` when given, otherwise the board's first column.

    Returns:
        (Proposal, ProposalPatch | None)
    """
    layout = layout_of(board)
    placement = dict(data)
    column_id = placement.pop("column_id", None)
    placement.pop("role", None)
    fields = _clean_data(placement)
    if not fields.get("proposal_name"):
        raise ValidationError("proposal_name is required")

    if column_id is not None:
        column = layout.column_by_id(column_id)
        if column is None:
            raise NotFoundError(resource="Column", resource_id=column_id)
    else:
        column = layout.columns[0]

    proposal = Proposal(
        organization_id=board.organization_id,
        board_config_id=board.id,
        **fields,
    )
    proposal.current_stage_checklist_status = {}
    for name, value in move_patch(column).items():
        setattr(proposal, name, value)
    db.session.add(proposal)
    db.session.flush()
    logger.info("Proposal %s created on board %s in column '%s'", proposal.id, board.id, column.id)

    patch = run_reconcile(proposal, layout)
    return proposal, patch


def update_proposal(proposal, data):
    """Partial update of proposal data, then reconcile.

    Returns:
        (Proposal, ProposalPatch | None)
    """
    payload = {k: v for k, v in data.items() if k != "role"}
    fields = _clean_data(payload)
    if not fields:
        raise ValidationError(
            f"No updatable fields; expected one of: {', '.join(DATA_FIELDS)}",
        )
    if "proposal_name" in fields and not fields["proposal_name"]:
        raise ValidationError("proposal_name cannot be empty")
    write_partial(proposal, fields)
    return proposal, run_reconcile(proposal)


# ═════════════════════════════════════════════════════════════════════════════
# Moves
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class MoveOutcome:
    proposal: Proposal
    source_column_id: str | None
    target_column_id: str
    moved: bool
    warnings: list = field(default_factory=list)
    reconcile_patch: ProposalPatch | None = None

    def to_dict(self):
        return {
            "proposal": self.proposal.to_dict(),
            "source_column_id": self.source_column_id,
            "target_column_id": self.target_column_id,
            "moved": self.moved,
            "warnings": list(self.warnings),
            "reconciled": self.reconcile_patch is not None,
        }


def column_occupancy(board, layout, column: Column, exclude_id=None):
    """Number of the board's proposals whose active column is ``column``."""
    count = 0
    for other in board.proposals.order_by(Proposal.id):
        if other.id == exclude_id:
            continue
        active = find_active_column(layout, other)
        if active is not None and active.id == column.id:
            count += 1
    return count


def _wip_check(board, layout, target: Column, proposal_id):
    """Raise on a full hard-limited column; return warnings for soft limits."""
    if not target.wip_limit:
        return []
    current = column_occupancy(board, layout, target, exclude_id=proposal_id)
    if current < target.wip_limit:
        return []
    if target.wip_limit_type == "hard":
        raise WipLimitExceeded(target.id, target.wip_limit, current)
    logger.info("Soft WIP limit reached in '%s' (%d/%d)", target.id, current + 1, target.wip_limit)
    return [f"Column '{target.display_name}' is over its WIP limit ({current + 1}/{target.wip_limit})"]


def commit_move(proposal, target_column_id, user_role, actor=None):
    """Commit a drop or jump of ``proposal`` into ``target_column_id``.

    Raises:
        NotFoundError: unknown column.
        UnresolvedColumn: the proposal's pointers match no column.
        Forbidden: the role may not enter the target or leave the source.
        WipLimitExceeded: the target is at its hard WIP limit.
    """
    board = board_of(proposal)
    layout = layout_of(board)
    source = resolve_active_column(layout, proposal)
    if layout.column_by_id(target_column_id) is None:
        raise NotFoundError(resource="Column", resource_id=target_column_id)

    old_pointers = {name: getattr(proposal, name) for name in POINTER_FIELDS}
    warnings = []

    def commit(snapshot, target, role, src):
        warnings.extend(_wip_check(board, layout, target, proposal.id))
        apply_move(snapshot, target, role, src)
        write_partial(proposal, move_patch(target))
        return snapshot

    snapshot = ProposalSnapshot.from_model(proposal)
    moved = select_column(layout, snapshot, target_column_id, user_role, commit=commit)
    if moved is None:
        return MoveOutcome(proposal, source.id, target_column_id, moved=False)

    landed = find_active_column(layout, proposal)
    if landed is None or landed.id != target_column_id:
        # Another pointer still selects an earlier column (or none at all).
        landed_id = landed.id if landed else None
        logger.warning(
            "Proposal %s moved to '%s' but resolves to '%s'",
            proposal.id, target_column_id, landed_id,
        )
        warnings.append(
            f"Proposal still resolves to column '{landed_id}' after the move to '{target_column_id}'"
        )

    diff = {"column": {"old": source.id, "new": target_column_id}}
    for name, value in move_patch(layout.column_by_id(target_column_id)).items():
        diff[name] = {"old": old_pointers[name], "new": value}
    write_audit(
        entity_type="proposal",
        entity_id=proposal.id,
        action="proposal.move",
        actor=actor or user_role or _system_actor(),
        organization_id=proposal.organization_id,
        diff=diff,
    )
    patch = run_reconcile(proposal, layout)
    return MoveOutcome(
        proposal, source.id, target_column_id, moved=True,
        warnings=warnings, reconcile_patch=patch,
    )


def jump_menu(proposal, user_role):
    """Jump selector options for ``proposal`` as seen by ``user_role``."""
    layout = layout_of(board_of(proposal))
    active = find_active_column(layout, proposal)
    return {
        "proposal_id": proposal.id,
        "current_column_id": active.id if active else None,
        "jump_key": current_app.config.get("BOARD_JUMP_KEY", "j"),
        "options": [o.to_dict() for o in build_jump_menu(layout, proposal, user_role)],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Manual checklist items
# ═════════════════════════════════════════════════════════════════════════════


def toggle_checklist_item(proposal, item_id, user_role, completed=None, actor=None):
    """Set or flip a user-driven checklist item in the active column.

    Raises:
        UnresolvedColumn: no active column.
        NotFoundError: the active column has no such item.
        ValidationError: the item is a system check (engine-computed).
        Forbidden: approval item and the role is not an approver.
    """
    layout = layout_of(board_of(proposal))
    column = resolve_active_column(layout, proposal)
    item = column.item_by_id(item_id)
    if item is None:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
    if item.type not in _USER_ITEM_TYPES:
        raise ValidationError(
            f"Checklist item '{item_id}' is {item.type} and cannot be toggled",
            details={"item_id": item_id, "type": item.type},
        )
    if item.type == "approval" and column.approver_roles and user_role not in column.approver_roles:
        raise Forbidden(column.id, user_role, f"approving '{item_id}' requires an approver role")

    status = copy.deepcopy(proposal.current_stage_checklist_status)
    column_status = status.setdefault(column.id, {})
    previous = bool((column_status.get(item_id) or {}).get("completed"))
    new_value = (not previous) if completed is None else bool(completed)
    stamp = actor or user_role or "user"
    column_status[item_id] = {
        "completed": new_value,
        "completed_by": stamp if new_value else None,
        "completed_date": _now_iso() if new_value else None,
    }

    outstanding = outstanding_required_items(column, column_status)
    write_partial(proposal, {
        "current_stage_checklist_status": status,
        "action_required": bool(outstanding),
        "action_required_description": describe_action_required(column, outstanding),
    })
    write_audit(
        entity_type="proposal",
        entity_id=proposal.id,
        action="proposal.checklist_toggle",
        actor=stamp,
        organization_id=proposal.organization_id,
        diff={item_id: {"old": previous, "new": new_value}, "column_id": {"old": None, "new": column.id}},
    )
    logger.info("Checklist item '%s' in '%s' set to %s for proposal %s", item_id, column.id, new_value, proposal.id)

    run_reconcile(proposal, layout)
    return {
        "proposal": proposal.to_dict(),
        "column_id": column.id,
        "item_id": item_id,
        "completed": new_value,
        "checklist_complete": is_checklist_complete(layout, proposal),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Board view
# ═════════════════════════════════════════════════════════════════════════════


def board_view(board):
    """Group the board's proposals by active column.

    Each observed proposal goes through the app's ``ReconcileSubscription``
    first, so a row written outside this service is brought up to date the
    first time it is viewed. Reconcile writes are only flushed: the caller
    commits them and then settles the subscription with
    ``board_reconciler().confirm()`` or ``.discard()``.

    Returns:
        (view_dict, reconciled_count)
    """
    layout = layout_of(board)
    subscription = board_reconciler()

    proposals = board.proposals.order_by(Proposal.id).all()
    reconciled = 0
    try:
        for proposal in proposals:
            if subscription.observe(layout, ProposalSnapshot.from_model(proposal)) is not None:
                reconciled += 1
    except Exception:
        # write_partial rolled back every write staged so far in this request
        subscription.discard()
        raise
    subscription.retain(board.id, [p.id for p in proposals])

    buckets = {column.id: [] for column in layout.columns}
    unresolved = []
    for proposal in proposals:
        active = find_active_column(layout, proposal)
        if active is None:
            unresolved.append(proposal.to_dict())
            continue
        card = proposal.to_dict()
        card["checklist_complete"] = is_checklist_complete(layout, proposal)
        buckets[active.id].append(card)

    columns = []
    for column in layout.columns:
        cards = buckets[column.id]
        columns.append({
            **column.to_dict(),
            "proposals": cards,
            "count": len(cards),
            "wip_exceeded": bool(column.wip_limit) and len(cards) > column.wip_limit,
        })

    warnings = [
        f"{', '.join(group['column_ids'])} share {group['field']}={group['value']!r}; "
        f"'{group['column_ids'][0]}' takes precedence"
        for group in find_ambiguous_mappings(layout)
    ]
    if unresolved:
        logger.warning("Board %s has %d proposal(s) matching no column", board.id, len(unresolved))

    view = {
        "board": {k: v for k, v in board.to_dict().items() if k != "columns"},
        "columns": columns,
        "unresolved": unresolved,
        "warnings": warnings,
        "total_proposals": sum(len(c) for c in buckets.values()) + len(unresolved),
    }
    return view, reconciled
