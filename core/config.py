"""Triage configuration.

Every threshold, label set and credential the pipeline uses lives in one of
the models below. Components receive their config object at construction
time — none of them read the process environment on their own. Only
TriageSettings.from_env() touches os.environ, and it is called exactly once
by the entry points (cli.py, main.py).

Environment Variables:
    DD_API_KEY             — Datadog API key. Unset → fixture mode.
    DD_APP_KEY             — Datadog application key. Unset → fixture mode.
    DD_SITE                — Datadog site (default: datadoghq.com)
    DD_WEB_URL             — Datadog web UI base URL for deep links
    RUM_SERVICE            — Optional service filter
    RUM_DATE_FROM          — Query window start (default: now-24h)
    RUM_DATE_TO            — Query window end (default: now)
    RUM_ERROR_HANDLING     — handled | unhandled | all (default: unhandled)
    RUM_ERROR_SOURCE       — Optional error.source filter
    RUM_EXCLUDE_NOISE      — Exclude known browser noise (default: true)
    MAX_ISSUES_PER_RUN     — Groups reported per run (default: 10, max: 100)
    ISSUE_LABELS           — Comma-separated base labels
    ISSUE_FATAL_LABELS     — Extra labels for crash errors
    ISSUE_NON_FATAL_LABELS — Extra labels for non-crash errors
    ISSUE_TITLE_PREFIX     — Prefix prepended to generated titles
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

MAX_ISSUES_PER_RUN_DEFAULT = 10
MAX_ISSUES_PER_RUN_LIMIT = 100

DEFAULT_SENSITIVE_CONTEXT_KEYS = (
    # Authentication & API
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "private_key",
    "auth",
    "authorization",
    # Personal information
    "email",
    "mail",
    "name",
    "fullname",
    "firstname",
    "lastname",
    "displayname",
    "username",
    "realname",
    "phone",
    "telephone",
    "mobile",
    "address",
    "street",
    "city",
    "zip",
    "postal",
    "postcode",
    # Financial
    "credit_card",
    "creditcard",
    "card_number",
    "ssn",
    "social_security",
)


class RedactionConfig(BaseModel):
    """Markers and keyword list used by the Redactor.

    Attributes:
        redaction_marker: Replacement for sensitive scalar values and
            secret assignments.
        name_marker: Replacement for values of JSON name fields.
        email_prefix_length: How many leading characters of an email's
            local part survive masking.
        sensitive_context_keys: Lower-case substrings that mark a context
            key as sensitive.
    """

    redaction_marker: str = "[REDACTED]"
    name_marker: str = "[NAME_REDACTED]"
    email_prefix_length: int = Field(default=3, ge=1)
    sensitive_context_keys: tuple[str, ...] = DEFAULT_SENSITIVE_CONTEXT_KEYS


class AggregationConfig(BaseModel):
    """Bounds on per-group memory and stack normalization cost."""

    max_stored_occurrences: int = Field(default=100, ge=1)
    replacement_probability: float = Field(default=0.1, ge=0.0, le=1.0)
    stack_normalization_lines: int = Field(default=5, ge=1)


class StatusThresholds(BaseModel):
    """Time windows (epoch millis) and counts driving status inference."""

    new_error_window_ms: int = DAY_MS
    resolved_threshold_ms: int = 7 * DAY_MS
    old_error_threshold_ms: int = 30 * DAY_MS
    quiet_period_ms: int = 3 * DAY_MS
    recent_spike_count: int = 10
    rare_error_count: int = 5
    active_count: int = 10


class ReopenPolicy(BaseModel):
    """When a closed tracking issue should be reopened for a recurring group."""

    reopen_window_days: float = 7
    high_count: int = 50
    high_count_window_days: float = 30
    many_users: int = 10
    many_users_window_days: float = 14


class DatadogSettings(BaseModel):
    """Credentials and paging limits for the Datadog RUM search API."""

    api_key: str | None = None
    app_key: str | None = None
    site: str = "datadoghq.com"
    web_url: str = "https://app.datadoghq.com"
    page_limit: int = Field(default=100, ge=1, le=1000)
    max_pages: int = Field(default=10, ge=1)

    @property
    def live(self) -> bool:
        """True when both keys are present and the real API should be used."""
        return bool(self.api_key and self.app_key)


class TriageSettings(BaseModel):
    """Everything one triage run needs, gathered in one place.

    Attributes:
        service: Restrict the query to one RUM service.
        date_from: Datadog relative or absolute window start.
        date_to: Datadog relative or absolute window end.
        error_handling: "handled", "unhandled" or "all".
        error_source: Restrict the query to one error.source value.
        exclude_noise: Append the known-noise exclusions to the query.
        max_issues_per_run: How many of the largest groups are reported.
        labels: Labels applied to every tracked group.
        fatal_labels: Extra labels when the representative is a crash.
        non_fatal_labels: Extra labels when the representative is not.
        title_prefix: Prepended to generated issue titles.
    """

    service: str | None = None
    date_from: str = "now-24h"
    date_to: str = "now"
    error_handling: str = "unhandled"
    error_source: str | None = None
    exclude_noise: bool = True
    max_issues_per_run: int = Field(
        default=MAX_ISSUES_PER_RUN_DEFAULT, ge=1, le=MAX_ISSUES_PER_RUN_LIMIT
    )
    labels: list[str] = Field(default_factory=list)
    fatal_labels: list[str] = Field(default_factory=list)
    non_fatal_labels: list[str] = Field(default_factory=list)
    title_prefix: str = ""

    datadog: DatadogSettings = Field(default_factory=DatadogSettings)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    thresholds: StatusThresholds = Field(default_factory=StatusThresholds)
    reopen: ReopenPolicy = Field(default_factory=ReopenPolicy)

    @classmethod
    def from_env(cls) -> "TriageSettings":
        """Build settings from the process environment (and .env if present)."""
        load_dotenv()

        max_issues = int(os.getenv("MAX_ISSUES_PER_RUN", MAX_ISSUES_PER_RUN_DEFAULT))
        max_issues = max(1, min(max_issues, MAX_ISSUES_PER_RUN_LIMIT))

        return cls(
            service=os.getenv("RUM_SERVICE") or None,
            date_from=os.getenv("RUM_DATE_FROM") or "now-24h",
            date_to=os.getenv("RUM_DATE_TO") or "now",
            error_handling=os.getenv("RUM_ERROR_HANDLING") or "unhandled",
            error_source=os.getenv("RUM_ERROR_SOURCE") or None,
            exclude_noise=_env_bool("RUM_EXCLUDE_NOISE", True),
            max_issues_per_run=max_issues,
            labels=_env_list("ISSUE_LABELS"),
            fatal_labels=_env_list("ISSUE_FATAL_LABELS"),
            non_fatal_labels=_env_list("ISSUE_NON_FATAL_LABELS"),
            title_prefix=os.getenv("ISSUE_TITLE_PREFIX", ""),
            datadog=DatadogSettings(
                api_key=os.getenv("DD_API_KEY") or None,
                app_key=os.getenv("DD_APP_KEY") or None,
                site=os.getenv("DD_SITE") or "datadoghq.com",
                web_url=os.getenv("DD_WEB_URL") or "https://app.datadoghq.com",
            ),
        )


def _env_list(name: str) -> list[str]:
    """Split a comma-separated env var, dropping blanks."""
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
