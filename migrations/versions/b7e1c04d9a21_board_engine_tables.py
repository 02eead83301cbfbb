"""board_engine_tables

Creates the proposal board tables:
  - board_configs  — ordered column layout per organization + board type
  - proposals      — proposal cards with the three column pointers and
                     the per-column checklist completion map
  - audit_logs     — append-only trail of moves, toggles and reconciliations

Tables created conditionally (IF NOT EXISTS semantics) so the migration is
idempotent against databases that already received them via db.create_all().

Revision ID: b7e1c04d9a21
Revises:
Create Date: 2026-10-19 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'b7e1c04d9a21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Board configs ─────────────────────────────────────────────────────
    if "board_configs" not in existing:
        op.create_table(
            "board_configs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("board_type", sa.String(length=60), nullable=False,
                      comment="e.g. rfp_15_column | default_status"),
            sa.Column("board_name", sa.String(length=200), nullable=False),
            sa.Column("columns_json", sa.Text(), nullable=False,
                      comment="JSON: ordered Column list"),
            sa.Column("swimlane_config_json", sa.Text(), nullable=True,
                      comment="JSON: display-only"),
            sa.Column("view_settings_json", sa.Text(), nullable=True,
                      comment="JSON: display-only"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("organization_id", "board_type", name="uq_board_org_type"),
        )
        op.create_index("ix_board_configs_organization_id", "board_configs", ["organization_id"])

    # ── Proposals ─────────────────────────────────────────────────────────
    if "proposals" not in existing:
        op.create_table(
            "proposals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("board_config_id", sa.Integer(), nullable=True),
            sa.Column("proposal_name", sa.String(length=300), nullable=True),
            sa.Column("solicitation_number", sa.String(length=100), nullable=True),
            sa.Column("contract_value", sa.Float(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("section_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("completed_section_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("current_phase", sa.String(length=50), nullable=True,
                      comment="locked_phase pointer, e.g. phase3"),
            sa.Column("custom_workflow_stage_id", sa.String(length=100), nullable=True,
                      comment="custom_stage pointer (column id)"),
            sa.Column("status", sa.String(length=50), nullable=True,
                      comment="default_status pointer, e.g. submitted"),
            sa.Column("current_stage_checklist_status_json", sa.Text(), nullable=False,
                      server_default="{}",
                      comment="JSON: {column_id: {item_id: {completed, completed_by, completed_date}}}"),
            sa.Column("action_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("action_required_description", sa.Text(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["board_config_id"], ["board_configs.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_proposals_organization_id", "proposals", ["organization_id"])
        op.create_index("ix_proposals_board_config_id", "proposals", ["board_config_id"])

    # ── Audit log ─────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False,
                      comment="proposal | board"),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True,
                      comment="JSON: {field: {old, new}}"),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_organization_id", "audit_logs", ["organization_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("proposals")
    op.drop_table("board_configs")
