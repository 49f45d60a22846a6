"""initial schema (users, settings, taxonomy, properties, moderation logs)

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _taxonomy_columns() -> list[sa.Column]:
    return [
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("icon_url", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
        sa.Column("free_listing_limit", sa.Integer(), nullable=True),
        sa.Column("free_listing_period_days", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "admin_settings",
        sa.Column("key", sa.String(length=80), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="999"),
        *_taxonomy_columns(),
        sa.UniqueConstraint("slug", name="uq_categories_slug"),
    )
    op.create_index("ix_categories_slug", "categories", ["slug"])

    op.create_table(
        "subcategories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_taxonomy_columns(),
    )
    op.create_index("ix_subcategories_category_id", "subcategories", ["category_id"])
    op.create_index("ix_subcategories_slug", "subcategories", ["slug"])

    op.create_table(
        "mini_subcategories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subcategory_id", sa.Integer(), sa.ForeignKey("subcategories.id"), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_taxonomy_columns(),
    )
    op.create_index("ix_mini_subcategories_subcategory_id", "mini_subcategories", ["subcategory_id"])
    op.create_index("ix_mini_subcategories_slug", "mini_subcategories", ["slug"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_type", sa.String(length=10), nullable=False, server_default="sale"),
        sa.Column("property_type", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("sub_category", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("mini_subcategory_id", sa.Integer(), nullable=True),
        sa.Column("sector", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("mohalla", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("landmark", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("city", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("area", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("sector_slug", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("mohalla_slug", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("landmark_slug", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("area_sqft", sa.Integer(), nullable=True),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("total_floors", sa.Integer(), nullable=True),
        sa.Column("parking", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("furnishing", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("amenities_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("contact_info_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("share_contact_info", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("contact_visible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="inactive"),
        sa.Column("approval_status", sa.String(length=40), nullable=True, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("admin_comments", sa.Text(), nullable=False, server_default=""),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("package_id", sa.String(length=80), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inquiries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    for col in (
        "owner_id",
        "price",
        "price_type",
        "property_type",
        "sub_category",
        "mini_subcategory_id",
        "sector_slug",
        "mohalla_slug",
        "landmark_slug",
        "bedrooms",
        "area_sqft",
        "status",
        "approval_status",
        "premium",
        "featured",
        "package_id",
        "created_at",
    ):
        op.create_index(f"ix_properties_{col}", "properties", [col])

    op.create_table(
        "moderation_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    for col in ("actor_user_id", "entity_type", "entity_id", "action"):
        op.create_index(f"ix_moderation_logs_{col}", "moderation_logs", [col])


def downgrade() -> None:
    op.drop_table("moderation_logs")
    op.drop_table("properties")
    op.drop_table("mini_subcategories")
    op.drop_table("subcategories")
    op.drop_table("categories")
    op.drop_table("admin_settings")
    op.drop_table("users")
