"""
Board layout — immutable, parsed view of a board's column configuration.

The persisted ``BoardConfig.columns`` list holds plain dicts; every engine
module works on the frozen ``Column`` / ``ChecklistItem`` objects built here so
a single evaluation always sees one consistent, ordered column list.

Usage:
    from proposal_board.services.board_layout import BoardLayout, ProposalSnapshot

    layout = BoardLayout.from_config(board.columns, board_id=board.id, version=board.version)
    snapshot = ProposalSnapshot.from_model(proposal)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

from proposal_board.core.exceptions import ValidationError
from proposal_board.models.board import CHECKLIST_ITEM_TYPES, COLUMN_TYPES, WIP_LIMIT_TYPES


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    label: str
    type: str = "manual"
    required: bool = False
    order: int = 0

    @property
    def is_system_check(self) -> bool:
        return self.type == "system_check"

    @classmethod
    def from_dict(cls, data: dict) -> ChecklistItem:
        return cls(
            id=str(data["id"]),
            label=data.get("label") or str(data["id"]),
            type=data.get("type") or "manual",
            required=bool(data.get("required", False)),
            order=int(data.get("order") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type,
            "required": self.required,
            "order": self.order,
        }


@dataclass(frozen=True)
class Column:
    """One board column (stage)."""

    id: str
    type: str
    label: str = ""
    order: int = 0
    phase_mapping: str | None = None
    default_status_mapping: str | None = None
    checklist_items: tuple[ChecklistItem, ...] = ()
    can_drag_to_here_roles: frozenset[str] = frozenset()
    can_drag_from_here_roles: frozenset[str] = frozenset()
    requires_approval_to_exit: bool = False
    approver_roles: frozenset[str] = frozenset()
    is_locked: bool = False
    is_terminal: bool = False
    wip_limit: int = 0
    wip_limit_type: str = "soft"

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @property
    def system_checks(self) -> tuple[ChecklistItem, ...]:
        return tuple(i for i in self.checklist_items if i.is_system_check)

    def item_by_id(self, item_id: str) -> ChecklistItem | None:
        for item in self.checklist_items:
            if item.id == item_id:
                return item
        return None

    @classmethod
    def from_dict(cls, data: dict) -> Column:
        items = sorted(
            (ChecklistItem.from_dict(i) for i in data.get("checklist_items") or []),
            key=lambda i: i.order,
        )
        return cls(
            id=str(data["id"]),
            type=data.get("type") or "custom_stage",
            label=data.get("label") or data.get("display_name") or "",
            order=int(data.get("order") or 0),
            phase_mapping=data.get("phase_mapping"),
            default_status_mapping=data.get("default_status_mapping"),
            checklist_items=tuple(items),
            can_drag_to_here_roles=frozenset(data.get("can_drag_to_here_roles") or ()),
            can_drag_from_here_roles=frozenset(data.get("can_drag_from_here_roles") or ()),
            requires_approval_to_exit=bool(data.get("requires_approval_to_exit", False)),
            approver_roles=frozenset(data.get("approver_roles") or ()),
            is_locked=bool(data.get("is_locked", False)),
            is_terminal=bool(data.get("is_terminal", False)),
            wip_limit=int(data.get("wip_limit") or 0),
            wip_limit_type=data.get("wip_limit_type") or "soft",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "order": self.order,
            "phase_mapping": self.phase_mapping,
            "default_status_mapping": self.default_status_mapping,
            "checklist_items": [i.to_dict() for i in self.checklist_items],
            "can_drag_to_here_roles": sorted(self.can_drag_to_here_roles),
            "can_drag_from_here_roles": sorted(self.can_drag_from_here_roles),
            "requires_approval_to_exit": self.requires_approval_to_exit,
            "approver_roles": sorted(self.approver_roles),
            "is_locked": self.is_locked,
            "is_terminal": self.is_terminal,
            "wip_limit": self.wip_limit,
            "wip_limit_type": self.wip_limit_type,
        }


@dataclass(frozen=True)
class BoardLayout:
    """Ordered, immutable column list of one board at one version."""

    columns: tuple[Column, ...]
    board_id: int | None = None
    version: int | None = None

    @classmethod
    def from_config(
        cls,
        columns: Iterable[dict],
        *,
        board_id: int | None = None,
        version: int | None = None,
    ) -> BoardLayout:
        return cls(
            columns=tuple(Column.from_dict(c) for c in columns),
            board_id=board_id,
            version=version,
        )

    @classmethod
    def from_board(cls, board) -> BoardLayout:
        return cls.from_config(board.columns, board_id=board.id, version=board.version)

    def column_by_id(self, column_id: str | None) -> Column | None:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def index_of(self, column_id: str) -> int:
        for idx, column in enumerate(self.columns):
            if column.id == column_id:
                return idx
        return -1

    def __iter__(self):
        return iter(self.columns)

    def __len__(self):
        return len(self.columns)


@dataclass
class ProposalSnapshot:
    """Plain in-memory copy of the proposal fields the engine reads."""

    id: int | str | None = None
    proposal_name: str | None = None
    solicitation_number: str | None = None
    contract_value: float | None = None
    due_date: Any = None
    section_count: int = 0
    completed_section_count: int = 0
    current_phase: str | None = None
    custom_workflow_stage_id: str | None = None
    status: str | None = None
    current_stage_checklist_status: dict = field(default_factory=dict)
    action_required: bool = False
    action_required_description: str | None = None
    version: int | None = None

    @classmethod
    def from_model(cls, proposal) -> ProposalSnapshot:
        return cls(
            id=proposal.id,
            proposal_name=proposal.proposal_name,
            solicitation_number=proposal.solicitation_number,
            contract_value=proposal.contract_value,
            due_date=proposal.due_date,
            section_count=proposal.section_count or 0,
            completed_section_count=proposal.completed_section_count or 0,
            current_phase=proposal.current_phase,
            custom_workflow_stage_id=proposal.custom_workflow_stage_id,
            status=proposal.status,
            current_stage_checklist_status=copy.deepcopy(proposal.current_stage_checklist_status),
            action_required=bool(proposal.action_required),
            action_required_description=proposal.action_required_description,
            version=proposal.version,
        )


def validate_columns(columns: list[dict]) -> list[dict]:
    """Validate a raw column list before it is stored on a board.

    Returns the column list unchanged; raises ValidationError on the first
    structural problem (unknown types, duplicate ids, missing mappings).
    """
    if not isinstance(columns, list) or not columns:
        raise ValidationError("columns must be a non-empty list")

    seen: set[str] = set()
    for raw in columns:
        col_id = raw.get("id") if isinstance(raw, dict) else None
        if not col_id:
            raise ValidationError("every column needs an id")
        if col_id in seen:
            raise ValidationError(f"duplicate column id '{col_id}'", details={"id": col_id})
        seen.add(col_id)

        col_type = raw.get("type")
        if col_type not in COLUMN_TYPES:
            raise ValidationError(
                f"column '{col_id}': type must be one of: {', '.join(sorted(COLUMN_TYPES))}",
                details={"id": col_id},
            )
        if col_type == "locked_phase" and not raw.get("phase_mapping"):
            raise ValidationError(f"column '{col_id}': locked_phase requires phase_mapping")
        if col_type == "default_status" and not raw.get("default_status_mapping"):
            raise ValidationError(f"column '{col_id}': default_status requires default_status_mapping")
        if (raw.get("wip_limit_type") or "soft") not in WIP_LIMIT_TYPES:
            raise ValidationError(f"column '{col_id}': wip_limit_type must be soft or hard")

        item_ids: set[str] = set()
        for item in raw.get("checklist_items") or []:
            if not item.get("id"):
                raise ValidationError(f"column '{col_id}': checklist item without id")
            if item["id"] in item_ids:
                raise ValidationError(f"column '{col_id}': duplicate checklist item '{item['id']}'")
            item_ids.add(item["id"])
            if (item.get("type") or "manual") not in CHECKLIST_ITEM_TYPES:
                raise ValidationError(
                    f"column '{col_id}': unknown checklist item type '{item.get('type')}'"
                )
    return columns
