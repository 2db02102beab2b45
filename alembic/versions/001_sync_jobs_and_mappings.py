"""Create mapping_sets, mapping_rules, sync_jobs, and leads tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the job engine tables and the default leads target."""
    op.create_table(
        "mapping_sets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "version", name="uq_mapping_sets_name_version"),
    )

    op.create_table(
        "mapping_rules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("mapping_set_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("target_field", sa.String(100), nullable=False),
        sa.Column("primary_source", sa.String(255), nullable=False),
        sa.Column("secondary_source", sa.String(255), nullable=True),
        sa.Column("tertiary_source", sa.String(255), nullable=True),
        sa.Column("transform", sa.String(20), nullable=False, server_default="identity"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["mapping_set_id"], ["mapping_sets.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("mapping_set_id", "target_field", name="uq_mapping_rules_set_target"),
    )
    op.create_index("ix_mapping_rules_mapping_set_id", "mapping_rules", ["mapping_set_id"])

    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("job_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("source_locator", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("target_descriptor", sa.String(100), nullable=False),
        sa.Column("mapping_set_id", sa.Uuid(), nullable=False),
        sa.Column("batch_size", sa.Integer(), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("write_mode", sa.String(20), nullable=False, server_default="insert"),
        sa.Column("conflict_key", sa.String(100), nullable=False, server_default="id"),
        sa.Column("total_records", sa.Integer(), nullable=True),
        sa.Column("processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("cursor", postgresql.JSONB(), nullable=True),
        sa.Column("control_request", sa.String(20), nullable=True),
        sa.Column("pause_reason", sa.String(255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("heartbeat_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["mapping_set_id"], ["mapping_sets.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_sync_jobs_status", "sync_jobs", ["status"])
    op.create_index("ix_sync_jobs_job_type", "sync_jobs", ["job_type"])
    op.create_index("ix_sync_jobs_created_at", "sync_jobs", ["created_at"])

    op.create_table(
        "leads",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("nome", sa.String(255), nullable=True),
        sa.Column("telefone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("idade", sa.Integer(), nullable=True),
        sa.Column("projeto", sa.String(255), nullable=True),
        sa.Column("scouter", sa.String(255), nullable=True),
        sa.Column("supervisor", sa.String(255), nullable=True),
        sa.Column("localizacao", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("local_da_abordagem", sa.Text(), nullable=True),
        sa.Column("etapa", sa.String(100), nullable=True),
        sa.Column("valor_ficha", sa.Float(), nullable=True),
        sa.Column("ficha_confirmada", sa.Boolean(), nullable=True),
        sa.Column("criado", sa.Date(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_leads_projeto", "leads", ["projeto"])
    op.create_index("ix_leads_scouter", "leads", ["scouter"])
    op.create_index("ix_leads_updated_at", "leads", ["updated_at"])


def downgrade() -> None:
    """Drop the job engine tables and the leads target."""
    op.drop_table("leads")
    op.drop_table("sync_jobs")
    op.drop_table("mapping_rules")
    op.drop_table("mapping_sets")
