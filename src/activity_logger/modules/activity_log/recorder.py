"""Event recorder: the only write path into the activity log.

Recording is best-effort. Whatever goes wrong while evaluating,
formatting or storing an event is logged here and dropped, so the
action being observed (a content save, a login) is never blocked.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from activity_logger.core.constants import USERNAME_MAX_LENGTH
from activity_logger.core.errors import EventFormatError
from activity_logger.modules.activity_log.events import (
    Actor,
    AttachmentUploaded,
    ContentDeleted,
    ContentSaved,
    ContentTrashed,
    EventBase,
    OptionUpdated,
    PasswordReset,
    PluginToggled,
    ProfileUpdated,
    SessionContext,
    UserLoggedIn,
    UserLoggedOut,
)
from activity_logger.modules.activity_log.policy import EligibilityPolicy, OptionStore
from activity_logger.modules.activity_log.services import ActivityLogService


log = structlog.get_logger()

# (attribute, label) in the order changes are reported
WATCHED_PROFILE_FIELDS = (
    ("email", "email"),
    ("first_name", "first name"),
    ("last_name", "last name"),
)

# (username, message), or None when the event yields nothing to log
Formatted = tuple[str, str] | None


def _format_content_saved(event: ContentSaved) -> Formatted:
    content = event.content
    verb = "updated" if event.update else "created"
    return event.actor_name, (
        f"{content.label} {verb}: {content.display_title} (ID: {content.id}) "
        f"by user {event.actor_name}"
    )


def _format_content_deleted(event: ContentDeleted) -> Formatted:
    content = event.content
    if content.is_attachment:
        return event.actor_name, (
            f"Media deleted: {content.filename} (ID: {content.id}) by user {event.actor_name}"
        )
    return event.actor_name, (
        f"{content.label} deleted: {content.display_title} (ID: {content.id}) "
        f"by user {event.actor_name}"
    )


def _format_content_trashed(event: ContentTrashed) -> Formatted:
    content = event.content
    return event.actor_name, (
        f"{content.label} trashed: {content.display_title} (ID: {content.id}) "
        f"by user {event.actor_name}"
    )


def _format_attachment_uploaded(event: AttachmentUploaded) -> Formatted:
    attachment = event.attachment
    return event.actor_name, (
        f"Media uploaded: {attachment.filename} (ID: {attachment.id}) by user {event.actor_name}"
    )


def changed_profile_fields(event: ProfileUpdated) -> list[str]:
    return [
        label
        for attribute, label in WATCHED_PROFILE_FIELDS
        if getattr(event.old, attribute) != getattr(event.new, attribute)
    ]


def _format_profile_updated(event: ProfileUpdated) -> Formatted:
    changes = changed_profile_fields(event)
    if not changes:
        return None
    return event.actor_name, (
        f"Profile updated: {event.new.login} (ID: {event.new.id}) "
        f"changed {', '.join(changes)} by user {event.actor_name}"
    )


def _format_login(event: UserLoggedIn) -> Formatted:
    return event.user.login, f"User logged in: {event.user.login} (ID: {event.user.id})"


def _format_logout(event: UserLoggedOut) -> Formatted:
    principal = event.session.principal
    if principal is None:
        return None
    return principal.username, f"User logged out: {principal.username}"


def _format_password_reset(event: PasswordReset) -> Formatted:
    return event.actor_name, f"Password reset: {event.user.login} (ID: {event.user.id})"


def _format_plugin_toggled(event: PluginToggled) -> Formatted:
    verb = "activated" if event.category == "plugin_activated" else "deactivated"
    return event.actor_name, f"Plugin {verb}: {event.plugin} by user {event.actor_name}"


def _format_option_updated(event: OptionUpdated) -> Formatted:
    return event.actor_name, f"Option updated: {event.option} by user {event.actor_name}"


_FORMATTERS: dict[str, Callable[[Any], Formatted]] = {
    "content_saved": _format_content_saved,
    "content_deleted": _format_content_deleted,
    "content_trashed": _format_content_trashed,
    "attachment_uploaded": _format_attachment_uploaded,
    "profile_updated": _format_profile_updated,
    "login": _format_login,
    "logout": _format_logout,
    "password_reset": _format_password_reset,
    "plugin_activated": _format_plugin_toggled,
    "plugin_deactivated": _format_plugin_toggled,
    "option_updated": _format_option_updated,
}


def format_event(event: EventBase) -> Formatted:
    """Render the stored username and message for ``event``.

    Raises:
        EventFormatError: For an event category without a formatter
    """
    category = getattr(event, "category", None)
    formatter = _FORMATTERS.get(category) if isinstance(category, str) else None
    if formatter is None:
        raise EventFormatError(details={"category": category})
    return formatter(event)


class EventRecorder:
    """Receives host events, applies the eligibility policy and stores a message."""

    def __init__(
        self,
        service: ActivityLogService,
        options: OptionStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.service = service
        self.options = options
        self.clock = clock

    @staticmethod
    def capture_session(event: UserLoggedIn) -> SessionContext:
        """Session context to hand back with the matching logout event."""
        return SessionContext.capture(Actor(username=event.user.login, user_id=event.user.id))

    async def record(self, event: EventBase) -> int | None:
        """Record ``event`` if it is eligible.

        Returns:
            The stored entry id, or None when the event was discarded,
            produced no message, or could not be stored
        """
        category = getattr(event, "category", None)
        try:
            reason = EligibilityPolicy(await self.options.load()).discard_reason(event)
            if reason is not None:
                log.debug("activity_event_discarded", category=category, reason=reason)
                return None

            formatted = format_event(event)
            if formatted is None:
                log.debug("activity_event_empty", category=category)
                return None

            username, message = formatted
            entry_id = await self.service.append(
                username[:USERNAME_MAX_LENGTH], message, self.clock()
            )
        except Exception:
            log.exception("activity_record_failed", category=category)
            return None

        log.info("activity_recorded", id=entry_id, category=category, username=username)
        return entry_id
