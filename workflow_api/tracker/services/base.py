from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services keep business logic and orchestration and own the transaction:
    repositories only add, flush and query.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """
        Commit the work done inside the block, or roll all of it back.

        Row locks taken inside the block are released at commit/rollback.
        """
        try:
            yield
        except Exception:
            await self.session.rollback()
            raise
        await self.session.commit()
