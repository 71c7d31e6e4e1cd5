"""Request-scoped transactions for FastAPI routes.

A handler that reads and writes through several collection operations takes
a ``DatabaseSession`` and passes it as ``tx``; everything commits when the
handler returns and rolls back when it raises.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.session import get_async_session


async def get_db() -> AsyncGenerator[AsyncSession]:
    async with get_async_session() as session:
        yield session


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
