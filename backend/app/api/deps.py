from typing import AsyncGenerator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.database import async_session
from backend.app.core.exceptions import TransientStorageError
from backend.app.core.logging import get_logger

logger = get_logger(__name__)


# One database session per request; routers commit or roll back explicitly
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


async def commit_or_retry_later(session: AsyncSession) -> None:
    """Commit the unit of work; storage failures become a retryable 503."""
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Commit failed", error=str(e))
        raise TransientStorageError() from e
