"""
Proposal Board Workflow Engine
Board domain model.

Models:
    - BoardConfig: one configured kanban board per organization + board type.

The ordered column list is stored as JSON text (``columns_json``). Columns and
their checklist items are read-only from the engine's point of view; the
parsed, immutable view lives in ``proposal_board.services.board_layout``.
"""

import json
from datetime import datetime, timezone

from proposal_board.models import db

# ── Shared constants ─────────────────────────────────────────────────────

# Which proposal field identifies membership of a column
COLUMN_TYPES = {"locked_phase", "custom_stage", "default_status"}

# Only system_check items are computed by the engine; the rest are user-driven.
CHECKLIST_ITEM_TYPES = {
    "system_check", "manual", "approval",
    # legacy user-driven types carried by older board templates
    "manual_check", "modal_trigger", "ai_trigger", "navigate",
}

WIP_LIMIT_TYPES = {"soft", "hard"}


def _loads(raw, default):
    try:
        value = json.loads(raw) if raw else default
    except (json.JSONDecodeError, TypeError):
        return default
    return value if value is not None else default


class BoardConfig(db.Model):
    """
    Kanban board configuration.

    ``columns`` order is meaningful: it is the left-to-right swimlane order
    and the precedence order used when resolving a proposal's active column.
    ``swimlane_config`` and ``view_settings`` are display-only.
    """

    __tablename__ = "board_configs"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "board_type", name="uq_board_org_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=False, index=True)
    board_type = db.Column(
        db.String(60), nullable=False,
        comment="e.g. rfp_15_column | default_status",
    )
    board_name = db.Column(db.String(200), nullable=False)

    columns_json = db.Column(db.Text, nullable=False, default="[]", comment="JSON: ordered Column list")
    swimlane_config_json = db.Column(db.Text, default="{}", comment="JSON: display-only")
    view_settings_json = db.Column(db.Text, default="{}", comment="JSON: display-only")

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

    # ── Relationships
    proposals = db.relationship("Proposal", backref="board", lazy="dynamic")

    # ── JSON accessors ───────────────────────────────────────────────────

    @property
    def columns(self) -> list[dict]:
        return _loads(self.columns_json, [])

    @columns.setter
    def columns(self, value):
        self.columns_json = json.dumps(list(value or []))

    @property
    def swimlane_config(self) -> dict:
        return _loads(self.swimlane_config_json, {})

    @swimlane_config.setter
    def swimlane_config(self, value):
        self.swimlane_config_json = json.dumps(value or {})

    @property
    def view_settings(self) -> dict:
        return _loads(self.view_settings_json, {})

    @view_settings.setter
    def view_settings(self, value):
        self.view_settings_json = json.dumps(value or {})

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "board_type": self.board_type,
            "board_name": self.board_name,
            "columns": self.columns,
            "swimlane_config": self.swimlane_config,
            "view_settings": self.view_settings,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<BoardConfig {self.id}: {self.board_name}>"
