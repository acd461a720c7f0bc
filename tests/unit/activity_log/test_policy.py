"""Tests for the event eligibility policy."""

import pytest

from activity_logger.modules.activity_log.events import (
    ContentSaved,
    OptionUpdated,
    UserLoggedIn,
)
from activity_logger.modules.activity_log.policy import EligibilityPolicy
from activity_logger.modules.activity_log.schemas import RecorderOptions
from tests.factories import ActorFactory, ContentItemFactory, UserSnapshotFactory


def _policy(**options) -> EligibilityPolicy:
    return EligibilityPolicy(RecorderOptions(**options))


class TestBackgroundContext:
    """Tests for the scheduled-job rule."""

    def test_background_events_dropped_by_default(self):
        event = UserLoggedIn(user=UserSnapshotFactory.build(), background=True)

        assert _policy().discard_reason(event) == "background_context"

    def test_background_events_kept_when_cron_included(self):
        event = UserLoggedIn(user=UserSnapshotFactory.build(), background=True)

        assert _policy(include_cron=True).allows(event)


class TestOptionRules:
    """Tests for transient and excluded option rules."""

    @pytest.mark.parametrize("option", ["_transient_feed", "_site_transient_update_core"])
    def test_transients_dropped_when_disabled(self, option):
        event = OptionUpdated(option=option, actor=ActorFactory.build())

        assert _policy(include_transients=False).discard_reason(event) == "transient_option"

    def test_transients_kept_by_default(self):
        event = OptionUpdated(option="_transient_feed", actor=ActorFactory.build())

        assert _policy().allows(event)

    def test_excluded_prefix_is_case_sensitive(self):
        policy = _policy(excluded_option_prefixes=["cron"])

        assert policy.discard_reason(OptionUpdated(option="cron_jobs")) == "excluded_option"
        assert policy.allows(OptionUpdated(option="Cron_jobs"))

    def test_prefix_must_match_at_start(self):
        policy = _policy(excluded_option_prefixes=["jobs"])

        assert policy.allows(OptionUpdated(option="cron_jobs"))

    def test_blank_prefix_setting_excludes_nothing(self):
        policy = _policy(excluded_option_prefixes="")

        assert policy.allows(OptionUpdated(option="blogname"))


class TestContentRules:
    """Tests for preview, revision, autosave and trash rules."""

    def test_preview_dropped(self):
        event = ContentSaved(content=ContentItemFactory.build(), preview=True)

        assert _policy().discard_reason(event) == "preview"

    @pytest.mark.parametrize("flag", ["is_revision", "is_autosave"])
    def test_revisions_and_autosaves_dropped(self, flag):
        event = ContentSaved(content=ContentItemFactory.build(**{flag: True}))

        assert _policy().discard_reason(event) == "revision_or_autosave"

    def test_saving_trashed_content_dropped(self):
        event = ContentSaved(content=ContentItemFactory.build(status="trash"), update=True)

        assert _policy().discard_reason(event) == "trashed_content_save"

    def test_ordinary_save_allowed(self):
        event = ContentSaved(content=ContentItemFactory.build(), actor=ActorFactory.build())

        assert _policy().discard_reason(event) is None

    def test_background_rule_checked_first(self):
        event = ContentSaved(
            content=ContentItemFactory.build(is_revision=True),
            background=True,
            preview=True,
        )

        assert _policy().discard_reason(event) == "background_context"
