"""Activity log: event recording, search, export and deletion."""

from activity_logger.modules.activity_log.routes import router


__all__ = ["router"]
