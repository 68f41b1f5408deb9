"""Promotion engine tables: users, catalog, templates, promotions, reservations, audit.

Revision ID: a1b2c3d4e501
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

revision = "a1b2c3d4e501"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(200), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    op.create_table(
        "catalog_badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_catalog_badges_category_level", "catalog_badges",
                    ["category", "level"])

    op.create_table(
        "badge_applications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("applicant_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("catalog_badge_id", sa.String(36),
                  sa.ForeignKey("catalog_badges.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("date_of_fulfillment", sa.Date, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_badge_applications_applicant", "badge_applications", ["applicant_id"])
    op.create_index("ix_badge_applications_status", "badge_applications", ["status"])
    op.create_index("ix_badge_applications_catalog_badge_id", "badge_applications",
                    ["catalog_badge_id"])

    op.create_table(
        "promotion_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("path", sa.String(20), nullable=False),
        sa.Column("from_level", sa.String(20), nullable=False),
        sa.Column("to_level", sa.String(20), nullable=False),
        sa.Column("rules", sa.JSON, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_promotion_templates_path_levels", "promotion_templates",
                    ["path", "from_level", "to_level"])

    op.create_table(
        "promotions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("template_id", sa.String(36),
                  sa.ForeignKey("promotion_templates.id"), nullable=False),
        sa.Column("created_by", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("path", sa.String(20), nullable=False),
        sa.Column("from_level", sa.String(20), nullable=False),
        sa.Column("to_level", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_reason", sa.Text, nullable=True),
    )
    op.create_index("ix_promotions_created_by_status", "promotions", ["created_by", "status"])
    op.create_index("ix_promotions_template", "promotions", ["template_id"])

    op.create_table(
        "promotion_badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("promotion_id", sa.String(36),
                  sa.ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_application_id", sa.String(36),
                  sa.ForeignKey("badge_applications.id"), nullable=False),
        sa.Column("assigned_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("consumed", sa.Boolean, nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_promotion_badges_promotion", "promotion_badges", ["promotion_id"])
    # At most one unconsumed reservation per badge application.
    op.create_index(
        "ux_promotion_badges_badge_application_unconsumed",
        "promotion_badges",
        ["badge_application_id"],
        unique=True,
        postgresql_where=sa.text("consumed = false"),
        sqlite_where=sa.text("consumed = 0"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("actor_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event_type", sa.String(60), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False, server_default="promotion"),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("payload_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_actor_event_created", "audit_logs",
                    ["actor_id", "event_type", "created_at"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade():
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_event_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ux_promotion_badges_badge_application_unconsumed",
                  table_name="promotion_badges")
    op.drop_index("ix_promotion_badges_promotion", table_name="promotion_badges")
    op.drop_table("promotion_badges")
    op.drop_index("ix_promotions_template", table_name="promotions")
    op.drop_index("ix_promotions_created_by_status", table_name="promotions")
    op.drop_table("promotions")
    op.drop_index("ix_promotion_templates_path_levels", table_name="promotion_templates")
    op.drop_table("promotion_templates")
    op.drop_index("ix_badge_applications_catalog_badge_id", table_name="badge_applications")
    op.drop_index("ix_badge_applications_status", table_name="badge_applications")
    op.drop_index("ix_badge_applications_applicant", table_name="badge_applications")
    op.drop_table("badge_applications")
    op.drop_index("ix_catalog_badges_category_level", table_name="catalog_badges")
    op.drop_table("catalog_badges")
    op.drop_table("users")
