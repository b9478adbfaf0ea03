"""
Database seeding utilities for minimal reference data.

Seeds:
- Base tenant (Acme Fabrication)
- Default inspection template (ITP) with the standard fabrication stations
- A sample work item

Usage:
  python -m tracker.db.run_migrations upgrade head
  python -m tracker.db.seed
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.settings import get_app_settings
from tracker.db.session import get_session_maker, tenant_context

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Standard Fabrication ITP"
DEFAULT_TEMPLATE_STEPS: List[str] = ["Fit-up", "Welding", "Visual", "Dimensional", "Painting"]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data.

    This function:
      - Creates or retrieves the base tenant
      - Seeds the default inspection template
      - Seeds one sample work item
    """
    settings = get_app_settings()
    async with get_session_maker()() as session:
        tenant_id = await _ensure_base_tenant(
            session, name="Acme Fabrication", slug=settings.DEFAULT_TENANT_SLUG
        )
        async with tenant_context(session, tenant_id):
            await _seed_default_template(session)
            await _seed_sample_work_item(session)

        await session.commit()
        logger.info("Seeded tenant %s", tenant_id)


async def _ensure_base_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Ensure a tenant row exists. RLS on tenants requires setting app.tenant_id
    to the same id being inserted (WITH CHECK id = current_setting()).
    """
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if row:
        return row[0]

    tenant_id = uuid4()
    await session.execute(text("SELECT set_config('app.tenant_id', :tid, true)"), {"tid": str(tenant_id)})
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if not row:
        raise RuntimeError("Failed to create or load base tenant")
    return row[0]


async def _seed_default_template(session: AsyncSession) -> None:
    """Insert the default ITP unless the tenant already has a default template."""
    res = await session.execute(
        text(
            """
            SELECT id FROM inspection_templates
            WHERE tenant_id = current_setting('app.tenant_id', true)::uuid AND is_default
            """
        )
    )
    if res.first():
        return
    await session.execute(
        text(
            """
            INSERT INTO inspection_templates (tenant_id, name, steps, is_default)
            VALUES (current_setting('app.tenant_id', true)::uuid, :name, CAST(:steps AS jsonb), true)
            ON CONFLICT ON CONSTRAINT uq_inspection_templates_tenant_name DO NOTHING
            """
        ),
        {"name": DEFAULT_TEMPLATE_NAME, "steps": json.dumps(DEFAULT_TEMPLATE_STEPS)},
    )


async def _seed_sample_work_item(session: AsyncSession) -> None:
    await session.execute(
        text(
            """
            INSERT INTO work_items (tenant_id, item_no, job_no, description, ordered_quantity, unit, unit_weight)
            VALUES (current_setting('app.tenant_id', true)::uuid, 'WI-0001', 'JOB-0001',
                    'Support brackets, galvanized', 100, 'pcs', 2.35)
            ON CONFLICT ON CONSTRAINT uq_work_items_tenant_item_no DO NOTHING
            """
        )
    )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
