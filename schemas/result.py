"""Result schemas.

Defines the output of one triage run: a GroupSummary per reported error
group and the TriageReport wrapping them. These are the only types that
cross the runtime boundary — ErrorGroup itself stays internal because it
holds raw, unredacted events.

Every free-text field in a summary has already been through the redactor.
"""

import uuid

from pydantic import BaseModel, Field, JsonValue

from schemas.status import StatusVerdict


class GroupSummary(BaseModel):
    """One ranked error group, ready for rendering or issue tracking.

    Attributes:
        identity: Group fingerprint. External trackers embed this in the
            issue body to find the issue again on the next run.
        title: Short issue title (see sre/tracking.issue_title).
        error_type: Error class name of the representative event.
        message: Masked error message of the representative event.
        source: error.source of the representative event.
        handling: "handled" / "unhandled", if reported.
        count: Total occurrences in this batch.
        first_seen: Earliest occurrence, epoch millis.
        last_seen: Latest occurrence, epoch millis.
        affected_users: Number of unique user IDs.
        affected_urls: Masked unique view URLs.
        browsers: browser name → occurrences.
        operating_systems: OS name → occurrences.
        devices: device type → occurrences.
        countries: country code → occurrences.
        services: Unique services that reported the error.
        has_replay: At least one occurrence has a session replay.
        is_crash: Crash flag of the representative event.
        verdict: Inferred lifecycle status.
        labels: Labels an issue tracker should apply.
        timeline: Hourly (UTC hour, count) buckets over the sample.
        sample: Redacted representative event.
    """

    identity: str
    title: str
    error_type: str
    message: str
    source: str
    handling: str | None = None
    count: int = Field(ge=1)
    first_seen: int
    last_seen: int
    affected_users: int = Field(ge=0)
    affected_urls: list[str] = Field(default_factory=list)
    browsers: dict[str, int] = Field(default_factory=dict)
    operating_systems: dict[str, int] = Field(default_factory=dict)
    devices: dict[str, int] = Field(default_factory=dict)
    countries: dict[str, int] = Field(default_factory=dict)
    services: list[str] = Field(default_factory=list)
    has_replay: bool = False
    is_crash: bool | None = None
    verdict: StatusVerdict
    labels: list[str] = Field(default_factory=list)
    timeline: list[tuple[str, int]] = Field(default_factory=list)
    sample: dict[str, JsonValue] = Field(default_factory=dict)


class TriageReport(BaseModel):
    """Final output of TriageRuntime.triage().

    Attributes:
        summaries: Reported groups, largest count first, capped at
            max_issues_per_run.
        total_events: Events received in the batch.
        skipped_events: Events dropped because they had no error payload.
        group_count: Distinct groups found, before the cap was applied.
        execution_id: Auto-generated UUID for this run. Useful for
            correlating log lines with a report.
    """

    summaries: list[GroupSummary]
    total_events: int
    skipped_events: int
    group_count: int
    execution_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
