"""init service desk schema

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "categories",
        _uuid_pk(),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.UniqueConstraint("title", name="uniq_categories_title"),
        sa.UniqueConstraint("slug", name="uniq_categories_slug"),
    )
    op.create_index("idx_categories_active_sort", "categories", ["is_active", "sort_order"])

    op.create_table(
        "services",
        _uuid_pk(),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=150), nullable=False),
        sa.Column("slug", sa.String(length=170), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("starting_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("delivery_value", sa.Integer()),
        sa.Column("delivery_unit", sa.String(length=16)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.UniqueConstraint("slug", name="uniq_services_slug"),
    )
    op.create_index("idx_services_category_active", "services", ["category_id", "is_active"])

    op.create_table(
        "templates",
        _uuid_pk(),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.UniqueConstraint("slug", name="uniq_templates_slug"),
    )
    op.create_index("idx_templates_service_active", "templates", ["service_id", "is_active"])

    op.create_table(
        "combos",
        _uuid_pk(),
        sa.Column("title", sa.String(length=150), nullable=False),
        sa.Column("slug", sa.String(length=170), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("original_price", sa.Numeric(12, 2)),
        sa.Column("discounted_price", sa.Numeric(12, 2)),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.UniqueConstraint("slug", name="uniq_combos_slug"),
    )
    op.create_index("idx_combos_active", "combos", ["is_active"])

    op.create_table(
        "service_requests",
        _uuid_pk(),
        sa.Column("request_id", sa.String(length=40), nullable=False),
        sa.Column("request_type", sa.String(length=16), nullable=False),
        sa.Column(
            "selected_category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("selected_service_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("services.id", ondelete="SET NULL")),
        sa.Column(
            "selected_template_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("templates.id", ondelete="SET NULL")
        ),
        sa.Column("selected_combo_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("combos.id", ondelete="SET NULL")),
        sa.Column("client_full_name", sa.String(length=100), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=False),
        sa.Column("client_phone", sa.String(length=20), nullable=False),
        sa.Column("client_business_name", sa.String(length=200)),
        sa.Column("client_industry", sa.String(length=100)),
        sa.Column("requirements", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'submitted'")),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("assigned_to", sa.String(length=200)),
        sa.Column("estimated_delivery", sa.DateTime(timezone=True)),
        sa.Column("actual_delivery", sa.DateTime(timezone=True)),
        sa.Column("quoted_amount", sa.Numeric(12, 2)),
        sa.Column("final_amount", sa.Numeric(12, 2)),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("status_changed_at", sa.DateTime(timezone=True)),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("request_id", name="uniq_service_requests_request_id"),
        sa.CheckConstraint(
            "status IN ('submitted','reviewing','in-progress','revision','completed','delivered','cancelled')",
            name="chk_service_request_status",
        ),
        sa.CheckConstraint("priority IN ('low','medium','high','urgent')", name="chk_service_request_priority"),
        sa.CheckConstraint("request_type IN ('service','combo')", name="chk_service_request_type"),
    )
    op.create_index("idx_service_requests_status_created", "service_requests", ["status", "created_at"])
    op.create_index("idx_service_requests_client_email", "service_requests", ["client_email"])
    op.create_index("idx_service_requests_priority", "service_requests", ["priority"])

    op.create_table(
        "service_request_notes",
        _uuid_pk(),
        sa.Column(
            "service_request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("added_by", sa.String(length=200), nullable=False, server_default=sa.text("'Admin'")),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("service_request_id", "position", name="uniq_service_request_notes_position"),
    )
    op.create_index(
        "ix_service_request_notes_service_request_id", "service_request_notes", ["service_request_id"]
    )

    op.create_table(
        "service_request_deliverables",
        _uuid_pk(),
        sa.Column(
            "service_request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("storage_id", sa.String(length=255)),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("service_request_id", "position", name="uniq_service_request_deliverables_position"),
    )
    op.create_index(
        "ix_service_request_deliverables_service_request_id",
        "service_request_deliverables",
        ["service_request_id"],
    )

    op.create_table(
        "audit_logs",
        _uuid_pk(),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("old_value", postgresql.JSONB()),
        sa.Column("new_value", postgresql.JSONB()),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=64)),
        sa.Column("ip_address", postgresql.INET()),
        sa.Column("user_agent", sa.Text()),
        sa.Column("metadata", postgresql.JSONB()),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_audit_logs_entity", "audit_logs", ["entity_type", "entity_id", "timestamp"])

    op.create_table(
        "notification_outbox",
        _uuid_pk(),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("template_key", sa.String(length=64), nullable=False),
        sa.Column("payload_json", postgresql.JSONB(), nullable=False),
        sa.Column("dedupe_key", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("last_error", sa.Text()),
        _created_at(),
        sa.UniqueConstraint("dedupe_key", name="uniq_notification_outbox_dedupe_key"),
    )
    op.create_index(
        "idx_notification_outbox_status_next", "notification_outbox", ["status", "next_attempt_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_notification_outbox_status_next", table_name="notification_outbox")
    op.drop_table("notification_outbox")
    op.drop_index("idx_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_service_request_deliverables_service_request_id", table_name="service_request_deliverables")
    op.drop_table("service_request_deliverables")
    op.drop_index("ix_service_request_notes_service_request_id", table_name="service_request_notes")
    op.drop_table("service_request_notes")
    op.drop_index("idx_service_requests_priority", table_name="service_requests")
    op.drop_index("idx_service_requests_client_email", table_name="service_requests")
    op.drop_index("idx_service_requests_status_created", table_name="service_requests")
    op.drop_table("service_requests")
    op.drop_index("idx_combos_active", table_name="combos")
    op.drop_table("combos")
    op.drop_index("idx_templates_service_active", table_name="templates")
    op.drop_table("templates")
    op.drop_index("idx_services_category_active", table_name="services")
    op.drop_table("services")
    op.drop_index("idx_categories_active_sort", table_name="categories")
    op.drop_table("categories")
