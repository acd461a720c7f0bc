"""Eligibility policy and recorder options.

Rules are evaluated in a fixed order and the first match discards the
event:

1. background context while ``include_cron`` is off
2. transient option update while ``include_transients`` is off
3. option update whose key starts with an excluded prefix
4. preview rendering
5. revision or autosave content
6. a content save whose status is already ``trash``
"""

import structlog

from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.constants import TRANSIENT_OPTION_PREFIXES
from activity_logger.modules.activity_log.events import (
    AttachmentUploaded,
    ContentDeleted,
    ContentSaved,
    ContentTrashed,
    EventBase,
    OptionUpdated,
)
from activity_logger.modules.activity_log.schemas import RecorderOptions


log = structlog.get_logger()

OPTIONS_KEY = "settings:recorder"


class EligibilityPolicy:
    """Decide whether an event is persisted."""

    def __init__(self, options: RecorderOptions) -> None:
        self.options = options

    def discard_reason(self, event: EventBase) -> str | None:
        """Name the first rule that discards ``event``, or None if it is loggable."""
        if event.background and not self.options.include_cron:
            return "background_context"

        if isinstance(event, OptionUpdated):
            if not self.options.include_transients and event.option.startswith(
                TRANSIENT_OPTION_PREFIXES
            ):
                return "transient_option"
            # Plain prefix comparison, case-sensitive, in configured order
            for prefix in self.options.excluded_option_prefixes:
                if event.option.startswith(prefix):
                    return "excluded_option"

        if event.preview:
            return "preview"

        content = None
        if isinstance(event, ContentSaved | ContentDeleted | ContentTrashed):
            content = event.content
        elif isinstance(event, AttachmentUploaded):
            content = event.attachment
        if content is not None and (content.is_revision or content.is_autosave):
            return "revision_or_autosave"

        # Moving content to the trash is reported by its own event
        if isinstance(event, ContentSaved) and event.content.status == "trash":
            return "trashed_content_save"

        return None

    def allows(self, event: EventBase) -> bool:
        return self.discard_reason(event) is None


class OptionStore:
    """Recorder options kept in the shared key-value store."""

    def __init__(self, cache: RedisCache) -> None:
        self.cache = cache

    async def load(self) -> RecorderOptions:
        data = await self.cache.get_value(OPTIONS_KEY)
        return RecorderOptions.model_validate(data or {})

    async def save(self, options: RecorderOptions) -> RecorderOptions:
        await self.cache.set_value(OPTIONS_KEY, options.model_dump())
        log.info(
            "recorder_options_saved",
            include_cron=options.include_cron,
            include_transients=options.include_transients,
            excluded_option_prefixes=options.excluded_option_prefixes,
        )
        return options
