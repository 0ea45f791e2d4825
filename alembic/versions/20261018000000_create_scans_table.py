"""Create scans table (job record and work queue).

Revision ID: 20261018000000
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "scans",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("repo_url", sa.String(length=2048), nullable=False),
        sa.Column("repo_identity", sa.String(length=2048), nullable=False),
        sa.Column("credential_token", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="QUEUED"),
        sa.Column("risk_grade", sa.String(length=1), nullable=True),
        sa.Column("commit_sha", sa.String(length=64), nullable=True),
        sa.Column("pdf_url", sa.String(length=2048), nullable=True),
        sa.Column("inventory_url", sa.String(length=2048), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("warnings", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("findings_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("cached_from_id", sa.String(length=36), nullable=True),
        sa.Column("scanner_version", sa.String(length=64), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("worker_id", sa.String(length=255), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('QUEUED', 'RUNNING', 'COMPLETED', 'ERROR')",
            name="ck_scans_status",
        ),
        sa.CheckConstraint(
            "risk_grade IS NULL OR risk_grade IN ('A', 'C', 'F')",
            name="ck_scans_risk_grade",
        ),
    )
    op.create_index(op.f("ix_scans_repo_identity"), "scans", ["repo_identity"], unique=False)
    op.create_index(op.f("ix_scans_user_id"), "scans", ["user_id"], unique=False)
    op.create_index(op.f("ix_scans_status"), "scans", ["status"], unique=False)
    op.create_index(
        "ix_scans_identity_commit_status",
        "scans",
        ["repo_identity", "commit_sha", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_scans_identity_commit_status", table_name="scans")
    op.drop_index(op.f("ix_scans_status"), table_name="scans")
    op.drop_index(op.f("ix_scans_user_id"), table_name="scans")
    op.drop_index(op.f("ix_scans_repo_identity"), table_name="scans")
    op.drop_table("scans")
