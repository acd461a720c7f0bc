"""Structured events delivered by the host application.

Each event names its category and carries the acting principal
explicitly; nothing is looked up from ambient "current user" state.
"""

from pathlib import PurePosixPath
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from activity_logger.core.constants import GUEST_USERNAME


DEFAULT_TYPE_LABELS = {
    "post": "Post",
    "page": "Page",
    "attachment": "Media",
}


class Actor(BaseModel):
    """The authenticated principal performing an action."""

    model_config = ConfigDict(frozen=True)

    username: str
    user_id: int | None = None


class SessionContext(BaseModel):
    """Principal captured while a session is still authenticated.

    The host keeps this value from login onwards and hands it back with
    the logout event, when the principal can no longer be resolved.
    """

    model_config = ConfigDict(frozen=True)

    principal: Actor | None = None

    @classmethod
    def capture(cls, actor: Actor | None) -> "SessionContext":
        return cls(principal=actor if actor and actor.username else None)


class ContentItem(BaseModel):
    """A piece of content (post, page, attachment, custom type)."""

    model_config = ConfigDict(frozen=True)

    id: int
    type: str = "post"
    type_label: str | None = None
    title: str = ""
    status: str = "publish"
    file_path: str | None = None
    is_revision: bool = False
    is_autosave: bool = False

    @property
    def label(self) -> str:
        return self.type_label or DEFAULT_TYPE_LABELS.get(self.type, "Post")

    @property
    def display_title(self) -> str:
        return self.title or "(no title)"

    @property
    def filename(self) -> str:
        """Base name of the stored file, falling back to the title."""
        if self.file_path:
            name = PurePosixPath(self.file_path.replace("\\", "/")).name
            if name:
                return name
        return self.display_title

    @property
    def is_attachment(self) -> bool:
        return self.type == "attachment"


class UserSnapshot(BaseModel):
    """Profile fields of a user account at one point in time."""

    model_config = ConfigDict(frozen=True)

    id: int
    login: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""


class EventBase(BaseModel):
    """Fields shared by every event.

    Attributes:
        actor: Principal performing the action; None for anonymous requests
        background: Raised from an unattended context (scheduled job) with no interactive actor
        preview: Raised while rendering a preview rather than a real change
    """

    model_config = ConfigDict(frozen=True)

    actor: Actor | None = None
    background: bool = False
    preview: bool = False

    @property
    def actor_name(self) -> str:
        if self.actor and self.actor.username:
            return self.actor.username
        return GUEST_USERNAME


class ContentSaved(EventBase):
    category: Literal["content_saved"] = "content_saved"
    content: ContentItem
    update: bool = False


class ContentDeleted(EventBase):
    category: Literal["content_deleted"] = "content_deleted"
    content: ContentItem


class ContentTrashed(EventBase):
    category: Literal["content_trashed"] = "content_trashed"
    content: ContentItem


class AttachmentUploaded(EventBase):
    category: Literal["attachment_uploaded"] = "attachment_uploaded"
    attachment: ContentItem


class ProfileUpdated(EventBase):
    category: Literal["profile_updated"] = "profile_updated"
    old: UserSnapshot
    new: UserSnapshot


class UserLoggedIn(EventBase):
    category: Literal["login"] = "login"
    user: UserSnapshot


class UserLoggedOut(EventBase):
    category: Literal["logout"] = "logout"
    session: SessionContext = Field(default_factory=SessionContext)


class PasswordReset(EventBase):
    category: Literal["password_reset"] = "password_reset"
    user: UserSnapshot


class PluginToggled(EventBase):
    category: Literal["plugin_activated", "plugin_deactivated"]
    plugin: str


class OptionUpdated(EventBase):
    category: Literal["option_updated"] = "option_updated"
    option: str
    old_value: Any = None
    new_value: Any = None


EventPayload = (
    ContentSaved
    | ContentDeleted
    | ContentTrashed
    | AttachmentUploaded
    | ProfileUpdated
    | UserLoggedIn
    | UserLoggedOut
    | PasswordReset
    | PluginToggled
    | OptionUpdated
)

ActivityEvent = Annotated[EventPayload, Field(discriminator="category")]
