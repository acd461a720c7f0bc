"""CSV export of activity log entries.

Every field is double-quoted and embedded quotes are doubled. No HTML
escaping is applied: the file is CSV, not markup.
"""

import csv
import io
import os
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import structlog

from activity_logger.core.constants import CSV_HEADER, EXPORT_FILENAME_FORMAT, LOG_TIME_FORMAT
from activity_logger.core.errors import ExportFailureError
from activity_logger.modules.activity_log.schemas import LogEntryRead


log = structlog.get_logger()

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def encode_csv_row(fields: Iterable[object]) -> str:
    """Encode one newline-terminated CSV row with every field quoted."""
    buffer = io.StringIO()
    csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n").writerow(fields)
    return buffer.getvalue()


def iter_csv(entries: Iterable[LogEntryRead]) -> Iterator[str]:
    """Yield the header row, then one row per entry in the given order."""
    yield encode_csv_row(CSV_HEADER)
    for entry in entries:
        yield encode_csv_row(
            (entry.id, entry.username, entry.action, entry.log_time.strftime(LOG_TIME_FORMAT))
        )


def export_filename(generated_at: datetime | None = None) -> str:
    """Download name stamped with the generation time (UTC, to the second)."""
    return (generated_at or datetime.now(UTC)).strftime(EXPORT_FILENAME_FORMAT)


@dataclass(frozen=True)
class ExportArtifact:
    """A fully written CSV file waiting to be delivered."""

    path: Path
    filename: str
    size: int
    row_count: int

    def discard(self) -> None:
        """Remove the temporary file once it has been delivered."""
        self.path.unlink(missing_ok=True)


def write_export(
    entries: Iterable[LogEntryRead],
    directory: str | None = None,
    generated_at: datetime | None = None,
) -> ExportArtifact:
    """Write ``entries`` to a temporary CSV file.

    The file is complete before this returns; on any write error it is
    removed and nothing is handed out.

    Raises:
        ExportFailureError: If the file cannot be created or written
    """
    rows = list(entries)
    try:
        fd, name = tempfile.mkstemp(prefix="activity_logs_", suffix=".csv", dir=directory)
    except OSError as e:
        log.error("activity_export_failed", stage="create", error=str(e))
        raise ExportFailureError(details={"stage": "create"}) from e

    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            for line in iter_csv(rows):
                handle.write(line)
        size = path.stat().st_size
    except OSError as e:
        path.unlink(missing_ok=True)
        log.error("activity_export_failed", stage="write", error=str(e))
        raise ExportFailureError(details={"stage": "write"}) from e

    artifact = ExportArtifact(
        path=path,
        filename=export_filename(generated_at),
        size=size,
        row_count=len(rows),
    )
    log.info("activity_export_written", filename=artifact.filename, rows=artifact.row_count)
    return artifact
