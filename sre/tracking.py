"""Issue-tracker policy helpers.

The triage engine keeps no state between runs. What survives from one run
to the next lives in the external issue tracker: each tracking issue embeds
its group identity in an HTML comment marker, and the status comment keeps
a short history of per-run counts. The helpers here produce and parse those
markers and decide what a tracker integration should do with a group —
reopen a closed issue, which labels to apply, what to call it.

Everything is a pure function over strings, datetimes and ErrorGroups. No
network calls, no markdown templates.
"""

import re
from datetime import datetime, timezone

from pydantic import BaseModel

from aggregation.aggregator import ErrorGroup
from core.config import ReopenPolicy

IDENTITY_MARKER = "<!-- error-hash: {identity} -->"
STATUS_COMMENT_MARKER = "<!-- status-update-comment -->"
HISTORY_LIMIT = 10

_IDENTITY_RE = re.compile(r"<!--\s*error-hash:\s*(\S+)\s*-->")
_TOTAL_OCCURRENCES_RE = re.compile(r"\*\*Total Occurrences:\*\*\s*(\d+)")
_HISTORY_BLOCK_RE = re.compile(
    r"<!-- update-history-start -->(.*?)<!-- update-history-end -->", re.DOTALL
)
_HISTORY_ENTRY_RE = re.compile(r"- \*\*(.*?)\*\*: (\d+) occurrences, (\d+) users")
_URL_RE = re.compile(r"https?://\S+")
_FILE_RE = re.compile(r"/\S+\.(?:js|ts|jsx|tsx)+")


# ── Identity markers ──────────────────────────────────────────────────────────

def identity_marker(identity: str) -> str:
    """Return the HTML comment that ties an issue body to a group."""
    return IDENTITY_MARKER.format(identity=identity)


def extract_identity(body: str | None) -> str | None:
    """Recover the group identity embedded in an issue body, if any."""
    if not body:
        return None
    match = _IDENTITY_RE.search(body)
    return match.group(1) if match else None


# ── Cross-run counts ──────────────────────────────────────────────────────────

def extract_previous_occurrences(body: str | None) -> int:
    """Read the "**Total Occurrences:** N" line from a previous issue body.

    Returns:
        N, or 0 if the body has no such line.
    """
    if not body:
        return 0
    match = _TOTAL_OCCURRENCES_RE.search(body)
    return int(match.group(1)) if match else 0


def carry_forward(group: ErrorGroup, previous_occurrences: int) -> int:
    """Total occurrences across runs: this batch plus what was recorded before."""
    return max(previous_occurrences, 0) + group.count


class UpdateEntry(BaseModel):
    """One line of a status comment's update history."""

    date: str
    occurrences: int
    users: int

    def render(self) -> str:
        return f"- **{self.date}**: {self.occurrences} occurrences, {self.users} users"


def extract_update_history(comment_body: str | None) -> list[UpdateEntry]:
    """Parse the update history block of a previous status comment."""
    if not comment_body:
        return []

    block = _HISTORY_BLOCK_RE.search(comment_body)
    if not block:
        return []

    return [
        UpdateEntry(date=date, occurrences=int(occurrences), users=int(users))
        for date, occurrences, users in _HISTORY_ENTRY_RE.findall(block.group(1))
    ]


def append_update(
    history: list[UpdateEntry],
    entry: UpdateEntry,
    keep: int = HISTORY_LIMIT,
) -> list[UpdateEntry]:
    """Append an entry and keep only the most recent `keep` entries."""
    return [*history, entry][-keep:]


def update_entry_for(group: ErrorGroup, when: datetime | None = None) -> UpdateEntry:
    """Build the history entry recording this batch's count and users."""
    when = when or datetime.now(timezone.utc)
    return UpdateEntry(
        date=when.isoformat(),
        occurrences=group.count,
        users=len(group.affected_users),
    )


# ── Reopen policy ─────────────────────────────────────────────────────────────

def should_reopen(
    group: ErrorGroup,
    closed_at: datetime | None,
    now: datetime | None = None,
    policy: ReopenPolicy | None = None,
) -> bool:
    """Decide whether a closed issue should be reopened for a recurring group.

    Reopen if the issue was closed:
        - within reopen_window_days, or
        - within high_count_window_days and the group is high volume, or
        - within many_users_window_days and many users are affected.

    Args:
        group: The group that recurred in the current batch.
        closed_at: When the issue was closed. None → never reopen.
        now: Reference time. Defaults to the current UTC time.
        policy: Windows and thresholds. Defaults to ReopenPolicy().
    """
    if closed_at is None:
        return False

    policy = policy or ReopenPolicy()
    now = now or datetime.now(timezone.utc)
    if closed_at.tzinfo is None:
        closed_at = closed_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    days_since_closed = (now - closed_at).total_seconds() / 86400

    return (
        days_since_closed <= policy.reopen_window_days
        or (group.count >= policy.high_count and days_since_closed <= policy.high_count_window_days)
        or (
            len(group.affected_users) >= policy.many_users
            and days_since_closed <= policy.many_users_window_days
        )
    )


# ── Labels and titles ─────────────────────────────────────────────────────────

def labels_for(
    group: ErrorGroup,
    labels: list[str],
    fatal_labels: list[str],
    non_fatal_labels: list[str],
) -> list[str]:
    """Labels for a group: base labels plus crash / non-crash extras.

    A group whose representative never reported is_crash gets only the
    base labels.
    """
    expected = list(labels)
    if group.is_crash is True:
        expected.extend(fatal_labels)
    elif group.is_crash is False:
        expected.extend(non_fatal_labels)
    return expected


def labels_need_update(current: list[str], expected: list[str]) -> bool:
    """True if an issue's current labels differ from the expected set."""
    return len(current) != len(expected) or not all(label in current for label in expected)


def issue_title(group: ErrorGroup, prefix: str = "", max_length: int = 80) -> str:
    """Build a short, stable title for a group.

    URLs become "[URL]" and script paths become "[FILE]" so titles do not
    leak hostnames or churn between deploys. The title is "<prefix> <Type>:
    <message>", truncated with "..." to max_length characters.
    """
    error = group.error
    message = error.message or "Unknown Error"
    message = _URL_RE.sub("[URL]", message)
    message = _FILE_RE.sub("[FILE]", message)

    error_type = f"{error.type}: " if error.type else ""
    prefix_length = len(prefix) + 1 if prefix else 0
    max_message = max_length - prefix_length - len(error_type)

    if len(message) > max_message:
        message = message[: max(max_message - 3, 0)] + "..."

    return f"{prefix} {error_type}{message}" if prefix else f"{error_type}{message}"
