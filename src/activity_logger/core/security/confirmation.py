"""Signed confirmation tokens.

A token is a short-lived HS256 JWT carrying a ``scope`` claim. The scope
binds it to one operation (``delete_log:42`` or ``bulk_delete_logs``),
so a token issued for one log entry cannot confirm the deletion of another.
"""

from datetime import UTC, datetime, timedelta

import structlog
from jose import JWTError, jwt

from activity_logger.config import settings
from activity_logger.core.constants import BULK_DELETE_SCOPE


log = structlog.get_logger()

CONFIRMATION_TOKEN_TYPE = "confirm"


def delete_scope(log_id: int) -> str:
    """Scope string for deleting a single log entry."""
    return f"delete_log:{log_id}"


class ConfirmationTokens:
    """Issue and verify scoped confirmation tokens."""

    def __init__(
        self,
        secret_key: str | None = None,
        ttl_seconds: int | None = None,
        algorithm: str = "HS256",
    ) -> None:
        self.secret_key = secret_key or settings.secret_key
        self.ttl = timedelta(seconds=ttl_seconds or settings.confirmation_token_ttl_seconds)
        self.algorithm = algorithm

    def issue(self, scope: str) -> str:
        """Create a token confirming the operation named by ``scope``."""
        now = datetime.now(UTC)
        claims = {
            "scope": scope,
            "type": CONFIRMATION_TOKEN_TYPE,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str | None, scope: str) -> bool:
        """Check that ``token`` is valid, unexpired and issued for ``scope``."""
        if not token:
            return False
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            log.info("confirmation_token_rejected", scope=scope, error=str(e))
            return False
        return claims.get("type") == CONFIRMATION_TOKEN_TYPE and claims.get("scope") == scope

    def issue_delete(self, log_id: int) -> str:
        return self.issue(delete_scope(log_id))

    def issue_bulk_delete(self) -> str:
        return self.issue(BULK_DELETE_SCOPE)
