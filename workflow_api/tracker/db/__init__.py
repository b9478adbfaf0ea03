"""
Persistence layer of the workflow tracker: declarative base, database
settings, the async session factory and the per-tenant RLS context.
"""

from .base import Base
from .config import get_settings, Settings
from .session import get_async_session, get_session_maker, tenant_context

# registers every mapped class on Base.metadata
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "get_settings",
    "get_session_maker",
    "get_async_session",
    "tenant_context",
    "models",
]
