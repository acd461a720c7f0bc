"""FastAPI dependency providers for the activity log module."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from activity_logger.core.cache import RedisCache, get_cache
from activity_logger.core.database import get_session_factory
from activity_logger.core.security import ConfirmationTokens
from activity_logger.modules.activity_log.policy import OptionStore
from activity_logger.modules.activity_log.recorder import EventRecorder
from activity_logger.modules.activity_log.services import (
    ActivityLogService,
    DeletionManager,
    build_activity_service,
)


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Cache = Annotated[RedisCache, Depends(get_cache)]


async def get_activity_service(
    session_factory: SessionFactory,
    cache: Cache,
) -> ActivityLogService:
    """Service for one request, with the table created or repaired if needed."""
    service = build_activity_service(session_factory, cache)
    await service.store.ensure_schema()
    return service


def get_option_store(cache: Cache) -> OptionStore:
    return OptionStore(cache)


def get_confirmations() -> ConfirmationTokens:
    return ConfirmationTokens()


ActivityService = Annotated[ActivityLogService, Depends(get_activity_service)]
Options = Annotated[OptionStore, Depends(get_option_store)]
Confirmations = Annotated[ConfirmationTokens, Depends(get_confirmations)]


def get_recorder(service: ActivityService, options: Options) -> EventRecorder:
    return EventRecorder(service, options)


def get_deletion_manager(
    service: ActivityService,
    confirmations: Confirmations,
) -> DeletionManager:
    return DeletionManager(service, confirmations)


Recorder = Annotated[EventRecorder, Depends(get_recorder)]
Deletions = Annotated[DeletionManager, Depends(get_deletion_manager)]
