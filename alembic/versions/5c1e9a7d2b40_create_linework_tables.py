"""create projects, heroes, jobs, and credit ledger tables

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7d2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UTC_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "heroes",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("audience", sa.String(), nullable=False),
    sa.Column("compiled_prompt", sa.Text(), nullable=False),
    sa.Column("negative_prompt", sa.Text(), nullable=True),
    sa.Column("reference_key", sa.Text(), nullable=False),
    sa.Column("thumbnail_key", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )
  op.create_index("ix_heroes_owner_id", "heroes", ["owner_id"])

  op.create_table(
    "projects",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("audience", sa.String(), nullable=False),
    sa.Column("style_preset", sa.String(), nullable=True),
    sa.Column("line_weight", sa.String(), nullable=False),
    sa.Column("complexity", sa.String(), nullable=False),
    sa.Column("trim_size", sa.String(), nullable=False, server_default=sa.text("'8.5x11'")),
    sa.Column("flux_model", sa.String(), nullable=False, server_default=sa.text("'flux-lineart'")),
    sa.Column("hero_id", sa.String(), sa.ForeignKey("heroes.id", ondelete="SET NULL"), nullable=True),
    sa.Column("style_anchor_key", sa.String(), nullable=True),
    sa.Column("style_anchor_description", sa.Text(), nullable=True),
    sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'draft'")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )
  op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

  op.create_table(
    "pages",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    sa.Column("page_number", sa.Integer(), nullable=False),
    sa.Column("current_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.UniqueConstraint("project_id", "page_number", name="ux_pages_project_number"),
  )
  op.create_index("ix_pages_project_id", "pages", ["project_id"])

  op.create_table(
    "page_versions",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("page_id", sa.String(), sa.ForeignKey("pages.id", ondelete="CASCADE"), nullable=False),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("asset_key", sa.Text(), nullable=False),
    sa.Column("thumbnail_key", sa.Text(), nullable=True),
    sa.Column("compiled_prompt", sa.Text(), nullable=False),
    sa.Column("negative_prompt", sa.Text(), nullable=True),
    sa.Column("seed", sa.String(), nullable=True),
    sa.Column("quality_score", sa.Integer(), nullable=True),
    sa.Column("quality_status", sa.String(), nullable=True),
    sa.Column("edit_type", sa.String(), nullable=False, server_default=sa.text("'initial'")),
    sa.Column("blots_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.UniqueConstraint("page_id", "version", name="ux_page_versions_page_version"),
  )
  op.create_index("ix_page_versions_page_id", "page_versions", ["page_id"])

  op.create_table(
    "jobs",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
    sa.Column("total_items", sa.Integer(), nullable=False),
    sa.Column("completed_items", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("failed_items", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), nullable=False, server_default=_UTC_NOW_ISO),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.CheckConstraint("completed_items + failed_items <= total_items", name="ck_jobs_item_counters"),
  )
  op.create_index("ix_jobs_owner_id", "jobs", ["owner_id"])
  op.create_index("ix_jobs_project_id", "jobs", ["project_id"])
  op.create_index("ix_jobs_owner_status", "jobs", ["owner_id", "status"])

  op.create_table(
    "job_items",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("job_id", sa.String(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
    sa.Column("page_id", sa.String(), sa.ForeignKey("pages.id", ondelete="SET NULL"), nullable=True),
    sa.Column("hero_id", sa.String(), nullable=True),
    sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
    sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("asset_key", sa.String(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), nullable=False, server_default=_UTC_NOW_ISO),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
  )
  op.create_index("ix_job_items_job_id", "job_items", ["job_id"])
  op.create_index("ix_job_items_job_status", "job_items", ["job_id", "status"])

  op.create_table(
    "credit_balances",
    sa.Column("user_id", sa.String(), primary_key=True),
    sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )

  op.create_table(
    "credit_job_reservations",
    sa.Column("job_id", sa.String(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("spent", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("refunded", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )
  op.create_index("ix_credit_job_reservations_user_id", "credit_job_reservations", ["user_id"])

  op.create_table(
    "credit_transactions",
    sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("amount", sa.Integer(), nullable=False),
    sa.Column("reason", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )
  op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
  op.create_index("ix_credit_transactions_job_id", "credit_transactions", ["job_id"])


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_table("credit_transactions")
  op.drop_table("credit_job_reservations")
  op.drop_table("credit_balances")
  op.drop_table("job_items")
  op.drop_table("jobs")
  op.drop_table("page_versions")
  op.drop_table("pages")
  op.drop_table("projects")
  op.drop_table("heroes")
