from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings


_SETTINGS = get_settings()
_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None


def _ensure_engine_initialized() -> None:
    """
    Lazily initialize the AsyncEngine and session maker.
    """
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        _ENGINE = create_async_engine(
            _SETTINGS.async_database_url,
            echo=_SETTINGS.SQL_ECHO,
            pool_size=_SETTINGS.DB_POOL_SIZE,
            pool_pre_ping=True,
        )
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE, expire_on_commit=False, autoflush=False, autocommit=False
        )


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory (for code running outside a request)."""
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    return _SESSION_MAKER


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession suitable for FastAPI dependency injection.
    Ensures engine/session factory is initialized.
    """
    async with get_session_maker()() as session:
        yield session


# transaction-local, so a pooled connection never carries another request's tenant
_SET_TENANT_SQL = text(
    "SELECT set_config('app.tenant_id', :tenant_id, true), "
    "set_config('lock_timeout', :timeout, true);"
)


def _tenant_params(tenant_id: Union[str, UUID]) -> dict:
    return {"tenant_id": str(tenant_id), "timeout": f"{_SETTINGS.LOCK_TIMEOUT_MS}ms"}


# PUBLIC_INTERFACE
async def set_current_tenant(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> None:
    """
    Set the current tenant for the session's open transaction using a custom GUC.

    RLS policies on every domain table compare against
    current_setting('app.tenant_id', true). The lock timeout bounds how long
    a request waits on a work item or inspection row held by another writer.
    """
    await session.execute(_SET_TENANT_SQL, _tenant_params(tenant_id))


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that scopes every transaction on the session to a tenant.

    The settings are re-applied whenever the session begins a transaction, so
    queries issued after a commit (which may run on another pooled
    connection) still see the tenant.

    Usage:
        async with tenant_context(session, tenant_id):
            # all queries inside will be automatically filtered by RLS
            ...
    """
    params = _tenant_params(tenant_id)

    def _apply(sync_session, transaction, connection) -> None:
        connection.execute(_SET_TENANT_SQL, params)

    event.listen(session.sync_session, "after_begin", _apply)
    try:
        if session.in_transaction():
            await set_current_tenant(session, tenant_id)
        yield session
    finally:
        event.remove(session.sync_session, "after_begin", _apply)
