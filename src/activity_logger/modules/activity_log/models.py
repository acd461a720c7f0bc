"""Activity log database model.

A flat, append-only ledger: no foreign keys, no update-in-place.
Rows are inserted by the recorder and removed only by explicit deletes
or full teardown.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from activity_logger.core.constants import ACTIVITY_LOG_TABLE, USERNAME_MAX_LENGTH
from activity_logger.core.database.base import Base


class LogEntry(Base):
    """One immutable audit record.

    Attributes:
        id: Store-assigned, strictly increasing, never reused
        username: Acting principal, or ``Guest``
        action: Pre-formatted human-readable sentence
        log_time: Server local time at write, second precision
    """

    __tablename__ = ACTIVITY_LOG_TABLE
    # AUTOINCREMENT keeps SQLite from reusing the id of a deleted last row
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LENGTH),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    log_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<LogEntry(id={self.id}, username={self.username}, log_time={self.log_time})>"
