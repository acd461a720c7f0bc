"""Test factories for event payloads."""

from tests.factories.events import ActorFactory, ContentItemFactory, UserSnapshotFactory


__all__ = ["ActorFactory", "ContentItemFactory", "UserSnapshotFactory"]
