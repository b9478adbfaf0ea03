"""Workflow tracker schema with multi-tenancy and RLS.

- tenants
- work_items
- inspection_templates
- production_releases (soft delete)
- inspection_records (soft delete, header override columns)
- inspection_steps

Also creates helper function set_tenant_id(uuid) to set the app.tenant_id GUC.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4c1e9a7d2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_SCOPED_TABLES = [
    "work_items",
    "inspection_templates",
    "production_releases",
    "inspection_records",
    "inspection_steps",
]


def _id_col() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()"))


def _tenant_col() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.UUID(),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        server_default=sa.text("current_setting('app.tenant_id', true)::uuid"),
    )


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _soft_delete() -> list:
    return [
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _qty(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.Numeric(18, 4), nullable=True)
    return sa.Column(name, sa.Numeric(18, 4), nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_tenant_id(p_tenant_id uuid)
        RETURNS void AS $$
        BEGIN
            PERFORM set_config('app.tenant_id', p_tenant_id::text, true);
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    op.create_table(
        "tenants",
        _id_col(),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "work_items",
        _id_col(),
        _tenant_col(),
        sa.Column("item_no", sa.Text(), nullable=False),
        sa.Column("job_no", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ordered_quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit", sa.Text(), nullable=False),
        _qty("unit_weight", nullable=True),
        *_timestamps(),
        sa.CheckConstraint("ordered_quantity >= 0", name="ck_work_items_ordered_quantity_non_negative"),
        sa.UniqueConstraint("tenant_id", "item_no", name="uq_work_items_tenant_item_no"),
        sa.Index("ix_work_items_tenant_id", "tenant_id"),
    )

    op.create_table(
        "inspection_templates",
        _id_col(),
        _tenant_col(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("steps", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_default", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_inspection_templates_tenant_name"),
        sa.Index("ix_inspection_templates_tenant_id", "tenant_id"),
    )
    # at most one default template per tenant
    op.execute(
        "CREATE UNIQUE INDEX uq_inspection_templates_tenant_default "
        "ON inspection_templates (tenant_id) WHERE is_default;"
    )

    op.create_table(
        "production_releases",
        _id_col(),
        _tenant_col(),
        sa.Column("work_item_id", sa.UUID(), sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("release_quantity", sa.Numeric(18, 4), nullable=False),
        _qty("release_weight", nullable=True),
        sa.Column("drawing_batch", sa.Text(), nullable=True),
        sa.Column("transmittal_ref", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PLANNING'")),
        sa.Column(
            "template_id",
            sa.UUID(),
            sa.ForeignKey("inspection_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("inspection_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("production_start_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.Text(), nullable=True),
        *_timestamps(),
        *_soft_delete(),
        sa.CheckConstraint("release_quantity > 0", name="ck_production_releases_release_quantity_positive"),
        sa.CheckConstraint(
            "status IN ('PLANNING','IN_PRODUCTION','PENDING_INSPECTION','APPROVED','REWORK','REJECTED')",
            name="ck_production_releases_status",
        ),
        sa.Index("ix_production_releases_tenant_id", "tenant_id"),
        sa.Index("ix_production_releases_item_active", "work_item_id", "is_deleted"),
        sa.Index("ix_production_releases_status", "tenant_id", "status"),
    )

    op.create_table(
        "inspection_records",
        _id_col(),
        _tenant_col(),
        sa.Column(
            "release_id",
            sa.UUID(),
            sa.ForeignKey("production_releases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("inspection_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PENDING'")),
        _qty("inspected_quantity"),
        _qty("approved_quantity"),
        _qty("rejected_quantity"),
        _qty("hold_quantity"),
        _qty("inspected_override", nullable=True),
        _qty("approved_override", nullable=True),
        _qty("rejected_override", nullable=True),
        _qty("hold_override", nullable=True),
        sa.Column("drawing_batch", sa.Text(), nullable=True),
        sa.Column("transmittal_ref", sa.Text(), nullable=True),
        sa.Column("template_name", sa.Text(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("inspected_by", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        *_soft_delete(),
        sa.UniqueConstraint("release_id", "inspection_number", name="uq_inspection_records_release_number"),
        sa.Index("ix_inspection_records_tenant_id", "tenant_id"),
        sa.Index("ix_inspection_records_release", "release_id", "is_deleted"),
    )

    op.create_table(
        "inspection_steps",
        _id_col(),
        _tenant_col(),
        sa.Column(
            "inspection_id",
            sa.UUID(),
            sa.ForeignKey("inspection_records.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seq_no", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.Text(), nullable=False),
        _qty("approved_qty"),
        _qty("rejected_qty"),
        _qty("hold_qty"),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("inspected_by", sa.Text(), nullable=True),
        sa.Column("inspected_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "approved_qty >= 0 AND rejected_qty >= 0 AND hold_qty >= 0",
            name="ck_inspection_steps_quantities_non_negative",
        ),
        sa.Index("ix_inspection_steps_tenant_id", "tenant_id"),
        sa.Index("ix_inspection_steps_inspection_seq", "inspection_id", "seq_no"),
    )

    # Enable RLS and add policies
    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY;")
    op.execute(
        """
        CREATE POLICY tenant_row_access ON tenants
        USING (id = current_setting('app.tenant_id', true)::uuid)
        WITH CHECK (id = current_setting('app.tenant_id', true)::uuid);
        """
    )
    for tbl in TENANT_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = current_setting('app.tenant_id', true)::uuid)
            WITH CHECK (tenant_id = current_setting('app.tenant_id', true)::uuid);
            """
        )


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS tenant_row_access ON tenants;")
    for tbl in TENANT_SCOPED_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")
    op.execute("ALTER TABLE tenants DISABLE ROW LEVEL SECURITY;")

    op.drop_table("inspection_steps")
    op.drop_table("inspection_records")
    op.drop_table("production_releases")
    op.execute("DROP INDEX IF EXISTS uq_inspection_templates_tenant_default;")
    op.drop_table("inspection_templates")
    op.drop_table("work_items")
    op.drop_table("tenants")

    op.execute("DROP FUNCTION IF EXISTS set_tenant_id(uuid);")
