"""Anti-forgery confirmation tokens for destructive operations."""

from activity_logger.core.security.confirmation import ConfirmationTokens


__all__ = ["ConfirmationTokens"]
