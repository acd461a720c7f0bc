"""HTTP API: health endpoints and versioned module routers."""

from activity_logger.api.router import api_router


__all__ = ["api_router"]
