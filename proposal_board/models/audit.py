"""
Proposal Board Workflow Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for board events.
"""

import json
from datetime import UTC, datetime

from proposal_board.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"proposal", "board"}

AUDIT_ACTIONS = {
    "proposal.move",
    "proposal.checklist_reconcile",
    "proposal.checklist_toggle",
    "board.create",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every committed board event.

    One row per action.  ``diff_json`` carries the old→new snapshot of the
    fields the action touched.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=True, index=True)

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False, comment="proposal | board")
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="proposal.move | proposal.checklist_reconcile | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    organization_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if entity_type not in AUDIT_ENTITY_TYPES or action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit event {entity_type}/{action}")
    log = AuditLog(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
