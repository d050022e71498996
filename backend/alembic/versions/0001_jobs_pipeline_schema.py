"""tenants, site content and the jobs queue

Revision ID: 0001_jobs_pipeline_schema
Revises:
Create Date: 2026-10-17 12:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_jobs_pipeline_schema"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False)


def _tenant_fk(nullable: bool = False) -> sa.Column:
    return sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=nullable)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.create_table(
        "tenants",
        _uuid_pk(),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("business_slug", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="onboarding"),
        sa.Column("plan_pages", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('onboarding', 'building', 'pending_review', 'live', 'suspended', 'cancelled')",
            name="ck_tenants_status_values",
        ),
        sa.CheckConstraint("plan_pages IN (1, 5, 10)", name="ck_tenants_plan_pages_values"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenants_business_slug", "tenants", ["business_slug"], unique=True)

    op.create_table(
        "onboarding_submissions",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("raw_answers", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_onboarding_submissions_tenant_id", "onboarding_submissions", ["tenant_id"], unique=False)

    op.create_table(
        "ai_build_specs",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("spec_version", sa.String(length=16), nullable=False),
        sa.Column("spec", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_build_specs_tenant_id", "ai_build_specs", ["tenant_id"], unique=False)

    op.create_table(
        "ai_generations",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("input", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("output", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_generations_tenant_id", "ai_generations", ["tenant_id"], unique=False)
    op.create_index("ix_ai_generations_kind", "ai_generations", ["kind"], unique=False)

    op.create_table(
        "tenant_site_settings",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("tagline", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("opening_hours", sa.String(length=255), nullable=True),
        sa.Column("primary_colour_hex", sa.String(length=16), nullable=True),
        sa.Column("secondary_colour_hex", sa.String(length=16), nullable=True),
        sa.Column("footer_disclaimer", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id"),
    )

    op.create_table(
        "navigations",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("location", sa.String(length=16), nullable=False),
        sa.Column("items", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.CheckConstraint("location IN ('header', 'footer')", name="ck_navigations_location_values"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "location", name="uq_navigations_tenant_location"),
    )
    op.create_index("ix_navigations_tenant_id", "navigations", ["tenant_id"], unique=False)

    op.create_table(
        "pages",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("seo_title", sa.String(length=255), nullable=False),
        sa.Column("seo_description", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="published"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_pages_tenant_slug"),
    )
    op.create_index("ix_pages_tenant_id", "pages", ["tenant_id"], unique=False)

    op.create_table(
        "page_blocks",
        _uuid_pk(),
        sa.Column("page_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("block_type", sa.String(length=64), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["page_id"], ["pages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_page_blocks_page_id", "page_blocks", ["page_id"], unique=False)

    op.create_table(
        "email_logs",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("recipient_email", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("template", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_email_logs_tenant_id", "email_logs", ["tenant_id"], unique=False)

    op.create_table(
        "jobs",
        _uuid_pk(),
        _tenant_fk(nullable=True),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'dead')",
            name="ck_jobs_status_values",
        ),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_jobs_status_run_at", "jobs", ["status", "run_at"], unique=False)
    op.create_index("ix_jobs_job_type", "jobs", ["job_type"], unique=False)
    op.create_index("ix_jobs_tenant_id", "jobs", ["tenant_id"], unique=False)
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_jobs_created_at", table_name="jobs")
    op.drop_index("ix_jobs_tenant_id", table_name="jobs")
    op.drop_index("ix_jobs_job_type", table_name="jobs")
    op.drop_index("ix_jobs_status_run_at", table_name="jobs")
    op.drop_table("jobs")
    op.drop_index("ix_email_logs_tenant_id", table_name="email_logs")
    op.drop_table("email_logs")
    op.drop_index("ix_page_blocks_page_id", table_name="page_blocks")
    op.drop_table("page_blocks")
    op.drop_index("ix_pages_tenant_id", table_name="pages")
    op.drop_table("pages")
    op.drop_index("ix_navigations_tenant_id", table_name="navigations")
    op.drop_table("navigations")
    op.drop_table("tenant_site_settings")
    op.drop_index("ix_ai_generations_kind", table_name="ai_generations")
    op.drop_index("ix_ai_generations_tenant_id", table_name="ai_generations")
    op.drop_table("ai_generations")
    op.drop_index("ix_ai_build_specs_tenant_id", table_name="ai_build_specs")
    op.drop_table("ai_build_specs")
    op.drop_index("ix_onboarding_submissions_tenant_id", table_name="onboarding_submissions")
    op.drop_table("onboarding_submissions")
    op.drop_index("ix_tenants_business_slug", table_name="tenants")
    op.drop_table("tenants")
