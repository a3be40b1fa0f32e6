"""RUM error event schema.

Defines the raw telemetry payload that enters the triage pipeline. Shapes
mirror the Datadog v2 RUM search response: every event has an outer
envelope (id, timestamp, service, tags) and an inner attribute bag holding
the error payload and the dimensions the aggregator folds into group
statistics (user, view, session, browser, os, device, geo, context).

Events are immutable from the engine's point of view — the aggregator and
status analyzer only ever read them.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


class _Dimension(BaseModel):
    """Base for RUM payload parts. Numeric ids and versions are read as strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True)


class ErrorResource(_Dimension):
    """The failed network resource, for errors raised by fetch/XHR calls."""

    method: str | None = None
    status_code: int | None = None
    url: str | None = None


class ErrorAttributes(_Dimension):
    """The nested error payload — the only part used for fingerprinting.

    Attributes:
        id: Datadog error ID of this single occurrence.
        message: Error message as reported by the browser SDK.
        type: Error class name (e.g. "TypeError").
        source: Where the error originated: "source", "network",
            "console", "custom", ...
        stack: Raw stack trace. Normalized before hashing.
        handling: "handled" or "unhandled".
        fingerprint: Upstream-assigned grouping key. When present it is
            trusted verbatim as the group identity.
        is_crash: Whether the error crashed the page. None when the SDK
            did not report it.
    """

    id: str | None = None
    message: str = ""
    type: str = ""
    source: str = ""
    stack: str | None = None
    handling: str | None = None
    fingerprint: str | None = None
    is_crash: bool | None = None
    resource: ErrorResource | None = None

    @field_validator("message", "type", "source", mode="before")
    @classmethod
    def _null_to_empty(cls, value):
        return "" if value is None else value


class ViewAttributes(_Dimension):
    id: str | None = None
    url: str | None = None
    referrer: str | None = None
    name: str | None = None


class SessionAttributes(_Dimension):
    id: str | None = None
    type: str | None = None
    has_replay: bool = False

    @field_validator("has_replay", mode="before")
    @classmethod
    def _null_to_false(cls, value):
        return False if value is None else value


class UserAttributes(_Dimension):
    id: str | None = None
    name: str | None = None
    email: str | None = None


class BrowserAttributes(_Dimension):
    name: str | None = None
    version: str | None = None


class OSAttributes(_Dimension):
    name: str | None = None
    version: str | None = None


class DeviceAttributes(_Dimension):
    type: str | None = None
    name: str | None = None


class GeoAttributes(_Dimension):
    country: str | None = None
    city: str | None = None


class EventDetail(_Dimension):
    """The inner attribute bag of a RUM event.

    Every dimension is optional. A missing dimension simply does not
    contribute to the corresponding group aggregate.
    """

    date: int | None = None
    service: str | None = None
    error: ErrorAttributes | None = None
    view: ViewAttributes | None = None
    session: SessionAttributes | None = None
    usr: UserAttributes | None = None
    browser: BrowserAttributes | None = None
    os: OSAttributes | None = None
    device: DeviceAttributes | None = None
    geo: GeoAttributes | None = None
    context: dict[str, JsonValue] | None = None


class EventAttributes(_Dimension):
    """Outer envelope attributes: timestamp, service and tags."""

    timestamp: int
    service: str | None = None
    tags: list[str] = Field(default_factory=list)
    attributes: EventDetail = Field(default_factory=EventDetail)

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value):
        return [] if value is None else value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_to_millis(cls, value):
        """Accept epoch millis or an ISO-8601 string ("2024-05-01T10:00:00.123Z")."""
        if isinstance(value, datetime):
            return _to_millis(value)
        if isinstance(value, str) and not value.isdigit():
            return _to_millis(datetime.fromisoformat(value))
        return value


class RumErrorEvent(_Dimension):
    """One raw error occurrence as returned by the RUM search API.

    Attributes:
        id: Unique event ID assigned by Datadog.
        type: Event envelope type ("rum").
        attributes: Envelope attributes, including the nested error
            payload and all dimensions.
    """

    id: str
    type: str = "rum"
    attributes: EventAttributes

    @property
    def detail(self) -> EventDetail:
        return self.attributes.attributes

    @property
    def error(self) -> ErrorAttributes | None:
        """The nested error payload, or None if the event carries none."""
        return self.attributes.attributes.error

    @property
    def timestamp(self) -> int:
        return self.attributes.timestamp

    def tag(self, key: str) -> str | None:
        """Return the value of the first "key:value" tag, or None.

        Values may themselves contain colons (e.g. "version:1.2:beta"),
        so only the first separator splits.
        """
        prefix = f"{key}:"
        for tag in self.attributes.tags:
            if tag.startswith(prefix):
                return tag[len(prefix):]
        return None


def _to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)
