"""Search query builder.

Turns ``SearchFilters`` into SQLAlchemy predicates with bound parameters
and a cache key. User text only ever reaches the database as a bound
parameter, after LIKE metacharacters have been escaped.
"""

import hashlib
import json
from dataclasses import dataclass

from sqlalchemy import Select, or_, select
from sqlalchemy.sql.elements import ColumnElement

from activity_logger.core.constants import LOG_TIME_FORMAT
from activity_logger.modules.activity_log.models import LogEntry
from activity_logger.modules.activity_log.schemas import SearchFilters


LIKE_ESCAPE = "/"

# Newest first; ids break ties between entries written in the same second
DEFAULT_ORDER = (LogEntry.log_time.desc(), LogEntry.id.desc())


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``%`` and ``_`` match themselves."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


@dataclass(frozen=True, eq=False)
class ResolvedQuery:
    """A fully bound search: predicates, their parameter values and a cache key.

    Attributes:
        predicates: Clauses to AND together
        parameters: ``(name, value)`` pairs in clause order, as bound
        cache_key: SHA-256 digest over ``parameters`` and the sort order
    """

    predicates: tuple[ColumnElement[bool], ...]
    parameters: tuple[tuple[str, str], ...]
    cache_key: str

    @property
    def is_unfiltered(self) -> bool:
        return not self.predicates

    def statement(self) -> Select[tuple[LogEntry]]:
        return select(LogEntry).where(*self.predicates).order_by(*DEFAULT_ORDER)


def _digest(parameters: list[tuple[str, str]]) -> str:
    payload = json.dumps(
        {"where": parameters, "order": "log_time desc, id desc"},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_search_query(filters: SearchFilters) -> ResolvedQuery:
    """Build the predicate for a search.

    Clauses are emitted in a fixed order (text, username, action category,
    date range), so equal filters always produce the same parameters and
    the same cache key however the caller assembled them. Substring
    matches are case-insensitive.
    """
    predicates: list[ColumnElement[bool]] = []
    parameters: list[tuple[str, str]] = []

    if filters.text:
        pattern = contains_pattern(filters.text)
        predicates.append(
            or_(
                LogEntry.username.ilike(pattern, escape=LIKE_ESCAPE),
                LogEntry.action.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
        parameters.append(("text", pattern))

    if filters.username:
        predicates.append(LogEntry.username == filters.username)
        parameters.append(("username", filters.username))

    if filters.action_category:
        pattern = contains_pattern(filters.action_category.value)
        predicates.append(LogEntry.action.ilike(pattern, escape=LIKE_ESCAPE))
        parameters.append(("action_category", pattern))

    date_range = filters.date_range
    if date_range:
        start, end = date_range
        predicates.append(LogEntry.log_time.between(start, end))
        parameters.append(("start", start.strftime(LOG_TIME_FORMAT)))
        parameters.append(("end", end.strftime(LOG_TIME_FORMAT)))

    return ResolvedQuery(
        predicates=tuple(predicates),
        parameters=tuple(parameters),
        cache_key=_digest(parameters),
    )
