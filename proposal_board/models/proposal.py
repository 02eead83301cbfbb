"""
Proposal Board Workflow Engine
Proposal domain model.

Models:
    - Proposal: a tracked proposal with three column pointers
      (current_phase / custom_workflow_stage_id / status) and the per-column
      checklist completion map.

Lifecycle: the checklist map starts empty and is mutated only by the checklist
reconciler and by user toggles on manual / approval items.
"""

import json
from datetime import datetime, timezone

from proposal_board.models import db

# Pointer fields that place a proposal on a board, one per column type
POINTER_FIELDS = ("current_phase", "custom_workflow_stage_id", "status")

# Fields a partial update may touch; write_partial rejects any other field
PATCHABLE_FIELDS = {
    "proposal_name", "solicitation_number", "contract_value", "due_date",
    "section_count", "completed_section_count",
    "current_phase", "custom_workflow_stage_id", "status",
    "current_stage_checklist_status",
    "action_required", "action_required_description",
}


class Proposal(db.Model):
    """Proposal card tracked through the stages of a board."""

    __tablename__ = "proposals"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=False, index=True)
    board_config_id = db.Column(
        db.Integer, db.ForeignKey("board_configs.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # ── Proposal data (inputs of the system checks)
    proposal_name = db.Column(db.String(300), default="")
    solicitation_number = db.Column(db.String(100), default="")
    contract_value = db.Column(db.Float, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    section_count = db.Column(db.Integer, nullable=False, default=0)
    completed_section_count = db.Column(db.Integer, nullable=False, default=0)

    # ── Column pointers
    current_phase = db.Column(db.String(50), nullable=True, comment="locked_phase pointer, e.g. phase3")
    custom_workflow_stage_id = db.Column(db.String(100), nullable=True, comment="custom_stage pointer (column id)")
    status = db.Column(db.String(50), nullable=True, comment="default_status pointer, e.g. submitted")

    # ── Derived checklist state
    current_stage_checklist_status_json = db.Column(
        db.Text, nullable=False, default="{}",
        comment="JSON: {column_id: {item_id: {completed, completed_by, completed_date}}}",
    )
    action_required = db.Column(db.Boolean, nullable=False, default=False)
    action_required_description = db.Column(db.Text, nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def current_stage_checklist_status(self) -> dict:
        try:
            value = json.loads(self.current_stage_checklist_status_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}
        return value if isinstance(value, dict) else {}

    @current_stage_checklist_status.setter
    def current_stage_checklist_status(self, value):
        self.current_stage_checklist_status_json = json.dumps(value or {}, sort_keys=True)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "board_config_id": self.board_config_id,
            "proposal_name": self.proposal_name,
            "solicitation_number": self.solicitation_number,
            "contract_value": self.contract_value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "section_count": self.section_count,
            "completed_section_count": self.completed_section_count,
            "current_phase": self.current_phase,
            "custom_workflow_stage_id": self.custom_workflow_stage_id,
            "status": self.status,
            "current_stage_checklist_status": self.current_stage_checklist_status,
            "action_required": self.action_required,
            "action_required_description": self.action_required_description,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Proposal {self.id}: {self.proposal_name}>"
