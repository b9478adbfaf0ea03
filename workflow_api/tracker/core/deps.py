from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncGenerator, FrozenSet, Iterable, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.logging import actor_var
from tracker.core.security import decode_token
from tracker.core.settings import get_app_settings
from tracker.db.session import get_async_session, tenant_context

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as described by the bearer token."""

    user_id: str
    tenant_id: UUID
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return not self.roles.isdisjoint(set(roles))

    def is_privileged(self, privileged_roles: Optional[Iterable[str]] = None) -> bool:
        """True when the actor holds one of the configured privileged roles."""
        if privileged_roles is None:
            privileged_roles = get_app_settings().PRIVILEGED_ROLES
        return self.has_any_role(privileged_roles)


# PUBLIC_INTERFACE
async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID")) -> UUID:
    """
    Extract and validate the tenant id from the X-Tenant-ID header.

    Raises:
        HTTPException: 400 Bad Request if header missing or invalid UUID.
    Returns:
        UUID: tenant identifier
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required.",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header must be a valid UUID string.",
        )


# PUBLIC_INTERFACE
async def get_tenant_session(
    tenant_id: UUID = Depends(get_tenant_id),
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession with Row-Level Security (RLS) configured for the given tenant.

    Every transaction the request opens on the session gets the Postgres GUC
    `app.tenant_id` set to the provided tenant_id, including transactions
    begun after a service commits.
    """
    async with tenant_context(session_dep, tenant_id):
        yield session_dep


# PUBLIC_INTERFACE
async def get_actor(
    tenant_id: UUID = Depends(get_tenant_id),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """
    Resolve the acting user from the Authorization bearer token.

    The token must carry 'sub' and a 'tenant_id' claim matching X-Tenant-ID;
    roles come from the 'roles' claim. There is no local user table.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    tok_tenant = payload.get("tenant_id")
    if not tok_tenant or str(tok_tenant) != str(tenant_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    actor_var.set(str(user_id))
    return Actor(user_id=str(user_id), tenant_id=tenant_id, roles=frozenset(str(r) for r in roles))


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Create a dependency that requires the current actor to hold one of the specified roles.
    """

    async def _dep(actor: Actor = Depends(get_actor)) -> Actor:
        if not actor.has_any_role(required):
            logger.warning("Actor %s lacks any of roles %s", actor.user_id, ",".join(required))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor

    return _dep
