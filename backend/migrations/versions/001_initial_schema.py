"""Initial schema — organizations, camps, locations, sources, jobs, sessions, discovery queue.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Organizations
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("website_url", sa.String(500)),
        sa.Column("website_domain", sa.String(255), index=True),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("city_ids", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        *_timestamps(),
    )

    # Camps
    op.create_table(
        "camps",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("image_urls", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        *_timestamps(),
    )
    op.create_index("idx_camp_org_name", "camps", ["organization_id", "name"])

    # Locations
    op.create_table(
        "locations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("street", sa.String(255)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(2)),
        sa.Column("zip_code", sa.String(10)),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        *_timestamps(),
    )
    op.create_index("idx_location_org_name", "locations", ["organization_id", "name"])

    # Scrape sources
    op.create_table(
        "scrape_sources",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), index=True),
        sa.Column("city_id", sa.String(64), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("domain", sa.String(255), index=True),
        sa.Column("additional_urls", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("extractor", sa.String(100)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("parsing_notes", sa.Text),
        sa.Column("parsing_notes_updated_at", sa.DateTime(timezone=True)),
        sa.Column("scrape_frequency_hours", sa.Integer, nullable=False, server_default=sa.text("24")),
        sa.Column("discovered_by", sa.String(50), server_default="manual"),
        sa.Column("needs_rescan", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("rescan_reason", sa.Text),
        sa.Column("rescan_requested_at", sa.DateTime(timezone=True)),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True)),
        sa.Column("next_scheduled_scrape", sa.DateTime(timezone=True)),
        sa.Column("running_job_id", postgresql.UUID(as_uuid=True)),
        sa.Column("total_runs", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("successful_runs", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("consecutive_failures", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("success_rate", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("last_success_at", sa.DateTime(timezone=True)),
        sa.Column("last_failure_at", sa.DateTime(timezone=True)),
        sa.Column("last_error", sa.Text),
        sa.Column("needs_regeneration", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("data_quality_score", sa.Integer),
        sa.Column("quality_tier", sa.String(10)),
        *_timestamps(),
    )
    op.create_index("idx_source_due", "scrape_sources", ["is_active", "needs_regeneration", "next_scheduled_scrape"])

    # Scrape jobs
    op.create_table(
        "scrape_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("triggered_by", sa.String(255)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("raw_output", postgresql.JSONB),
        sa.Column("sessions_found", sa.Integer),
        sa.Column("sessions_created", sa.Integer),
        sa.Column("sessions_updated", sa.Integer),
        sa.Column("average_completeness", sa.Integer),
        sa.Column("error_message", sa.Text),
        sa.Column("error_kind", sa.String(20)),
        *_timestamps(),
    )
    op.create_index("idx_job_source_status", "scrape_jobs", ["source_id", "status"])

    # Sessions
    op.create_table(
        "sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id"), index=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), index=True),
        sa.Column("camp_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("camps.id"), index=True),
        sa.Column("location_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("locations.id"), index=True),
        sa.Column("last_job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_jobs.id")),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("category", sa.String(100)),
        sa.Column("source_session_id", sa.String(255)),
        sa.Column("start_date", sa.Date, index=True),
        sa.Column("end_date", sa.Date),
        sa.Column("date_raw", sa.String(255)),
        sa.Column("drop_off_hour", sa.Integer),
        sa.Column("drop_off_minute", sa.Integer),
        sa.Column("pick_up_hour", sa.Integer),
        sa.Column("pick_up_minute", sa.Integer),
        sa.Column("time_raw", sa.String(255)),
        sa.Column("price_in_cents", sa.Integer),
        sa.Column("price_raw", sa.String(255)),
        sa.Column("min_age", sa.Integer),
        sa.Column("max_age", sa.Integer),
        sa.Column("min_grade", sa.Integer),
        sa.Column("max_grade", sa.Integer),
        sa.Column("age_grade_raw", sa.String(255)),
        sa.Column("location_text", sa.String(500)),
        sa.Column("registration_url", sa.Text),
        sa.Column("image_urls", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_available", sa.Boolean),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft", index=True),
        sa.Column("completeness_score", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("missing_fields", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("validation_errors", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("idx_session_source_start", "sessions", ["source_id", "start_date"])
    op.create_index("idx_session_org_status", "sessions", ["organization_id", "status"])

    # Discovery queue
    op.create_table(
        "discovered_sources",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("city_id", sa.String(64), index=True),
        sa.Column("url", sa.String(1000), unique=True, nullable=False),
        sa.Column("domain", sa.String(255), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("snippet", sa.Text),
        sa.Column("discovery_query", sa.String(500), nullable=False),
        sa.Column("ai_analysis", postgresql.JSONB),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending_analysis", index=True),
        sa.Column("status_changed_at", sa.DateTime(timezone=True)),
        sa.Column("reviewed_by", sa.String(255)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("review_notes", sa.Text),
        sa.Column("scrape_source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id")),
        sa.Column("duplicate_of_source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id")),
        *_timestamps(),
    )

    # Alerts
    op.create_table(
        "scraper_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id", ondelete="CASCADE"), index=True),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), index=True),
        sa.Column("acknowledged_by", sa.String(255)),
        *_timestamps(),
    )

    # Scraper development requests
    op.create_table(
        "scraper_development_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_sources.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("discovered_source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("discovered_sources.id")),
        sa.Column("source_url", sa.String(1000), nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("requested_by", sa.String(255)),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("scraper_development_requests")
    op.drop_table("scraper_alerts")
    op.drop_table("discovered_sources")
    op.drop_table("sessions")
    op.drop_table("scrape_jobs")
    op.drop_table("scrape_sources")
    op.drop_table("locations")
    op.drop_table("camps")
    op.drop_table("organizations")
