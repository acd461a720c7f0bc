"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from activity_logger.core.cache import RedisCache, get_cache
from activity_logger.core.database import get_session_factory


# Type alias for the session factory dependency
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]

Cache = Annotated[RedisCache, Depends(get_cache)]
