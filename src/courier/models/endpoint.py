"""Webhook endpoint model.

An endpoint is a registered destination URL owned by a user and subscribed
to one or more event names.
"""

from datetime import datetime
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .base import generate_id, utc_now
from .events import EVENT_NAME_MAX_LENGTH, is_valid_event_name

EndpointStatus = Literal["active", "disabled"]

# Returned in place of the secret by default-visibility reads
SECRET_PLACEHOLDER = "***hidden***"

DESCRIPTION_MAX_LENGTH = 500

_http_url = TypeAdapter(AnyHttpUrl)


class WebhookEndpoint(BaseModel):
    """A registered webhook destination.

    Attributes:
        id: Unique identifier (``wh_`` prefix).
        user_id: Owner of the endpoint.
        url: http(s) URL that receives POSTed envelopes.
        secret: Shared secret for HMAC-SHA256 signatures.
        events: Subscribed event names (exact match).
        status: ``active`` endpoints receive deliveries, ``disabled`` ones do not.
        description: Optional human-readable description.
        headers: Custom headers merged into every delivery request.
        max_retries: Maximum delivery attempts per delivery.
        success_count: Deliveries that ended ``delivered``.
        failure_count: Deliveries that ended ``failed``.
        created_at: When the endpoint was registered.
        updated_at: When the endpoint was last modified.
        last_triggered_at: When a delivery was last queued.
        last_success_at: When a delivery last succeeded.
        last_failure_at: When a delivery last failed permanently.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(default_factory=lambda: generate_id("wh"))
    user_id: str = Field(min_length=1, description="Owner of the endpoint")
    url: str = Field(description="Destination URL")
    secret: str = Field(min_length=1, description="Shared secret for signatures")
    events: list[str] = Field(min_length=1, description="Subscribed event names")
    status: EndpointStatus = Field(default="active")
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    headers: dict[str, str] | None = Field(default=None)
    max_retries: int = Field(default=5, ge=1, le=10, description="Maximum delivery attempts")
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_triggered_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        try:
            _http_url.validate_python(value)
        except ValueError as e:
            raise ValueError(f"must be an absolute http(s) URL, got {value!r}") from e
        return value

    @field_validator("events")
    @classmethod
    def _validate_events(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for event in value:
            if not is_valid_event_name(event):
                raise ValueError(
                    f"invalid event name {event!r} "
                    f"(letters, digits, '.', '_', ':', '-'; max {EVENT_NAME_MAX_LENGTH} chars)"
                )
            if event not in seen:
                seen.append(event)
        return seen

    @field_validator("headers")
    @classmethod
    def _validate_headers(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        if value is None:
            return None
        for name in value:
            if not name.strip():
                raise ValueError("header names must be non-empty")
        return value

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def subscribes_to(self, event: str) -> bool:
        """Check if this endpoint is active and subscribed to exactly ``event``."""
        return self.is_active and event in self.events

    def redacted(self) -> "WebhookEndpoint":
        """Copy of this endpoint with the secret replaced by a placeholder."""
        return self.model_copy(update={"secret": SECRET_PLACEHOLDER})


__all__ = [
    "DESCRIPTION_MAX_LENGTH",
    "EndpointStatus",
    "SECRET_PLACEHOLDER",
    "WebhookEndpoint",
]
