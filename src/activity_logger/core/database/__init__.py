"""Database layer - declarative base, engine and session factory."""

from activity_logger.core.database.base import Base
from activity_logger.core.database.session import (
    build_session_factory,
    dispose_engine,
    get_engine,
    get_session_factory,
)


__all__ = [
    "Base",
    "build_session_factory",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
]
