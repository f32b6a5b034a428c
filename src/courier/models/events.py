"""Catalog of platform events that endpoints commonly subscribe to.

The catalog is informational: subscriptions accept any well-formed event
name, so collaborators can publish new events without a release here.
"""

import re

from pydantic import BaseModel, ConfigDict, Field

# Dotted names such as "order.created" or "render:completed"
EVENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]+$")
EVENT_NAME_MAX_LENGTH = 100


class EventTypeInfo(BaseModel):
    """A documented event type."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    event: str = Field(description="Event name")
    description: str = Field(description="When the event is triggered")


EVENT_CATALOG: tuple[EventTypeInfo, ...] = (
    EventTypeInfo(event="video.created", description="Triggered when a new video is created"),
    EventTypeInfo(
        event="video.completed",
        description="Triggered when video rendering completes successfully",
    ),
    EventTypeInfo(event="video.failed", description="Triggered when video rendering fails"),
    EventTypeInfo(
        event="credits.low",
        description="Triggered when user credit balance falls below threshold",
    ),
    EventTypeInfo(event="credits.purchased", description="Triggered when user purchases credits"),
    EventTypeInfo(event="automation.triggered", description="Triggered when an automation runs"),
    EventTypeInfo(event="automation.failed", description="Triggered when an automation fails"),
    EventTypeInfo(event="render.started", description="Triggered when a render job starts"),
    EventTypeInfo(event="render.completed", description="Triggered when a render job completes"),
    EventTypeInfo(event="render.failed", description="Triggered when a render job fails"),
)


def is_valid_event_name(event: str) -> bool:
    """Check that an event name is non-empty, bounded and well-formed."""
    return (
        0 < len(event) <= EVENT_NAME_MAX_LENGTH and EVENT_NAME_PATTERN.fullmatch(event) is not None
    )


__all__ = [
    "EVENT_CATALOG",
    "EVENT_NAME_MAX_LENGTH",
    "EVENT_NAME_PATTERN",
    "EventTypeInfo",
    "is_valid_event_name",
]
