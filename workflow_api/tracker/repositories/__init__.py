"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for work items, releases,
inspections and templates. They assume the provided AsyncSession has tenant
context configured (e.g., using tracker.core.deps.get_tenant_session) and
leave commit/rollback to the service layer.
"""
