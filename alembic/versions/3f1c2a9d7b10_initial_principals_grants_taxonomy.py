"""initial schema: principals, tenants, grants, taxonomy, languages

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # -----------------------------------------------------
    # 1) Identity
    # -----------------------------------------------------
    op.create_table(
        "principals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("platform_role", sa.String(length=20), nullable=True),
        sa.Column("magic_code", sa.String(length=64), nullable=True),
        sa.Column("magic_code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_principals_email", "principals", ["email"], unique=True)
    op.create_index("ix_principals_platform_role", "principals", ["platform_role"])

    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("default_locale", sa.String(length=5), nullable=False, server_default="en"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    # -----------------------------------------------------
    # 2) Grants: one row per (tenant, principal)
    # -----------------------------------------------------
    op.create_table(
        "grants",
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "principal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("principals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column(
            "granted_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("principals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "principal_id", name="pk_grants"),
        sa.CheckConstraint("role IN ('operator', 'admin')", name="ck_grants_role_is_tenant_role"),
    )
    op.create_index("ix_grants_principal_id", "grants", ["principal_id"])

    # -----------------------------------------------------
    # 3) Taxonomy schema
    # -----------------------------------------------------
    op.create_table(
        "taxonomy_types",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("allow_multiple", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("use_for_filtering", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("use_for_map_styling", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_taxonomy_types_tenant_slug"),
        sa.CheckConstraint("display_order >= 0", name="ck_taxonomy_types_display_order_non_negative"),
        sa.CheckConstraint("status IN ('draft', 'active', 'retired')", name="ck_taxonomy_types_status_known"),
    )
    op.create_index("ix_taxonomy_types_tenant_id", "taxonomy_types", ["tenant_id"])

    op.create_table(
        "taxonomy_type_translations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "taxonomy_type_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("taxonomy_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("locale_code", sa.String(length=5), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.UniqueConstraint("taxonomy_type_id", "locale_code", name="uq_taxonomy_type_translations_type_locale"),
    )
    op.create_index("ix_taxonomy_type_translations_taxonomy_type_id", "taxonomy_type_translations", ["taxonomy_type_id"])

    op.create_table(
        "taxonomy_values",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "taxonomy_type_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("taxonomy_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("color_hex", sa.String(length=7), nullable=False, server_default="#CCCCCC"),
        sa.Column("icon_name", sa.String(length=50), nullable=True),
        sa.Column("icon_size_multiplier", sa.Numeric(3, 2), nullable=False, server_default="1.00"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("taxonomy_type_id", "slug", name="uq_taxonomy_values_type_slug"),
        sa.CheckConstraint("display_order >= 0", name="ck_taxonomy_values_display_order_non_negative"),
        sa.CheckConstraint("icon_size_multiplier > 0", name="ck_taxonomy_values_icon_size_positive"),
    )
    op.create_index("ix_taxonomy_values_taxonomy_type_id", "taxonomy_values", ["taxonomy_type_id"])

    op.create_table(
        "taxonomy_value_translations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "taxonomy_value_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("taxonomy_values.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("locale_code", sa.String(length=5), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.UniqueConstraint("taxonomy_value_id", "locale_code", name="uq_taxonomy_value_translations_value_locale"),
    )
    op.create_index(
        "ix_taxonomy_value_translations_taxonomy_value_id", "taxonomy_value_translations", ["taxonomy_value_id"]
    )

    # -----------------------------------------------------
    # 4) Classified records
    # -----------------------------------------------------
    op.create_table(
        "languages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("endonym", sa.String(length=200), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_languages_tenant_slug"),
        sa.CheckConstraint("status IN ('draft', 'published')", name="ck_languages_status_known"),
    )
    op.create_index("ix_languages_tenant_id", "languages", ["tenant_id"])

    op.create_table(
        "language_taxonomies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "language_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("languages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "taxonomy_value_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("taxonomy_values.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("language_id", "taxonomy_value_id", name="uq_language_taxonomies_language_value"),
    )
    op.create_index("ix_language_taxonomies_language_id", "language_taxonomies", ["language_id"])
    op.create_index("ix_language_taxonomies_taxonomy_value_id", "language_taxonomies", ["taxonomy_value_id"])


def downgrade() -> None:
    op.drop_table("language_taxonomies")
    op.drop_table("languages")
    op.drop_table("taxonomy_value_translations")
    op.drop_table("taxonomy_values")
    op.drop_table("taxonomy_type_translations")
    op.drop_table("taxonomy_types")
    op.drop_table("grants")
    op.drop_table("tenants")
    op.drop_table("principals")
