"""Error aggregator.

The ErrorAggregator folds a batch of raw RUM error events into a map of
group identity → ErrorGroup. Thousands of occurrences of the same bug
collapse into one group carrying its aggregate statistics:

1. Identity — each event is fingerprinted (signals/fingerprint.py). Events
   sharing a fingerprint share a group.

2. Statistics — occurrence count, first/last seen, unique users and URLs,
   browser / OS / device / country distributions, services, and whether
   any occurrence has a session replay.

3. Sampling — each group keeps a bounded sample of raw occurrences for
   later rendering and for the status analyzer's spike checks. Below the
   cap every event is stored; at the cap an event replaces a random slot
   with low probability, so the sample stays a cross-section of the whole
   batch rather than only its first members. count always reflects the
   true total.

The aggregator is stateless across batches. Callers that want cumulative
totals carry previous counts forward themselves (see sre/tracking.py).
"""

import logging
import random
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.config import AggregationConfig
from schemas.events import ErrorAttributes, RumErrorEvent
from signals.fingerprint import Fingerprinter

logger = logging.getLogger(__name__)


@dataclass
class ErrorGroup:
    """Aggregated record for all events sharing one identity in a batch.

    This is a dataclass rather than a Pydantic model because it is mutated
    on every folded event and holds sets and Counters. It is converted to
    a GroupSummary (schemas/result.py) before crossing the API boundary.

    Attributes:
        identity: The fingerprint that defines group membership.
        representative: First event observed for this identity. Used as
            the template when the group is rendered.
        first_seen: Earliest event timestamp (epoch millis).
        last_seen: Latest event timestamp (epoch millis).
        occurrences: Bounded sample of raw events — not the full history.
        count: Total events folded into the group, independent of the
            sample size.
        affected_users: Unique usr.id values.
        affected_urls: Unique view.url values.
        browsers: browser.name → occurrence count.
        operating_systems: os.name → occurrence count.
        devices: device.type → occurrence count.
        countries: geo.country → occurrence count.
        services: Unique service names.
        has_replay: True if any folded event had a session replay.
    """

    identity: str
    representative: RumErrorEvent
    first_seen: int
    last_seen: int
    occurrences: list[RumErrorEvent] = field(default_factory=list)
    count: int = 0
    affected_users: set[str] = field(default_factory=set)
    affected_urls: set[str] = field(default_factory=set)
    browsers: Counter = field(default_factory=Counter)
    operating_systems: Counter = field(default_factory=Counter)
    devices: Counter = field(default_factory=Counter)
    countries: Counter = field(default_factory=Counter)
    services: set[str] = field(default_factory=set)
    has_replay: bool = False

    @property
    def error(self) -> ErrorAttributes:
        """The representative's error payload. Always present for a group."""
        return self.representative.error

    @property
    def is_crash(self) -> bool | None:
        return self.representative.error.is_crash

    def hourly_timeline(self, limit: int = 24) -> list[tuple[str, int]]:
        """Bucket the sampled occurrences by UTC hour.

        Args:
            limit: Keep only the most recent buckets.

        Returns:
            (hour key "YYYY-MM-DDTHH:00", count) pairs, oldest first. Hours
            with no sampled occurrences are omitted.
        """
        buckets: Counter = Counter()
        for event in self.occurrences:
            hour = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
            buckets[hour.strftime("%Y-%m-%dT%H:00")] += 1
        return sorted(buckets.items())[-limit:]

    def url_occurrences(self) -> Counter:
        """Count sampled occurrences per view URL."""
        urls: Counter = Counter()
        for event in self.occurrences:
            view = event.detail.view
            if view and view.url:
                urls[view.url] += 1
        return urls


class ErrorAggregator:
    """Groups error events by fingerprint and accumulates statistics.

    Attributes:
        config: Sample cap, replacement probability and stack line cap.
        last_skipped: Number of events skipped by the most recent
            group_errors() call because they carried no error payload.
    """

    def __init__(
        self,
        config: AggregationConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise the aggregator.

        Args:
            config: Aggregation bounds. Defaults to AggregationConfig().
            rng: Random source for sample replacement. Inject a seeded
                random.Random to make sampling reproducible.
        """
        self.config = config or AggregationConfig()
        self._rng = rng or random.Random()
        self._fingerprinter = Fingerprinter(self.config.stack_normalization_lines)
        self.last_skipped = 0

    def group_errors(self, events: Iterable[RumErrorEvent]) -> dict[str, ErrorGroup]:
        """Fold a batch of events into groups keyed by identity.

        Steps for each event:
            1. Skip it if it has no nested error payload
            2. Fingerprint the error payload
            3. Create the group on first sight of the identity
            4. Fold the event into the group's statistics and sample

        Args:
            events: Raw RUM error events for one batch, in any order.

        Returns:
            Dict of identity → ErrorGroup in first-seen order. Every group
            has count >= 1 and first_seen <= last_seen.
        """
        groups: dict[str, ErrorGroup] = {}
        skipped = 0

        for event in events:
            error = event.error
            if error is None:
                skipped += 1
                continue

            identity = self._fingerprinter.fingerprint(error)

            group = groups.get(identity)
            if group is None:
                group = ErrorGroup(
                    identity=identity,
                    representative=event,
                    first_seen=event.timestamp,
                    last_seen=event.timestamp,
                )
                groups[identity] = group

            self._update_group(group, event)

        self.last_skipped = skipped
        logger.debug(
            "Grouped %d events into %d groups (%d skipped without error payload).",
            sum(g.count for g in groups.values()),
            len(groups),
            skipped,
        )
        return groups

    # ── Private helpers ───────────────────────────────────────────────────────

    def _update_group(self, group: ErrorGroup, event: RumErrorEvent) -> None:
        """Fold one event into a group's counters, sets and sample."""
        self._retain_sample(group, event)

        group.count += 1
        group.last_seen = max(group.last_seen, event.timestamp)
        group.first_seen = min(group.first_seen, event.timestamp)

        detail = event.detail

        if detail.usr and detail.usr.id:
            group.affected_users.add(detail.usr.id)

        if detail.view and detail.view.url:
            group.affected_urls.add(detail.view.url)

        if detail.browser and detail.browser.name:
            group.browsers[detail.browser.name] += 1

        if detail.os and detail.os.name:
            group.operating_systems[detail.os.name] += 1

        if detail.device and detail.device.type:
            group.devices[detail.device.type] += 1

        if detail.geo and detail.geo.country:
            group.countries[detail.geo.country] += 1

        if event.attributes.service:
            group.services.add(event.attributes.service)

        if detail.session and detail.session.has_replay:
            group.has_replay = True

    def _retain_sample(self, group: ErrorGroup, event: RumErrorEvent) -> None:
        """Store the event in the bounded sample, or maybe replace a slot.

        Below the cap every event is kept. At the cap the event replaces a
        uniformly random slot with probability replacement_probability.
        """
        cap = self.config.max_stored_occurrences
        if len(group.occurrences) < cap:
            group.occurrences.append(event)
        elif self._rng.random() < self.config.replacement_probability:
            group.occurrences[self._rng.randrange(cap)] = event


def group_errors(
    events: Iterable[RumErrorEvent],
    rng: random.Random | None = None,
) -> dict[str, ErrorGroup]:
    """Group a batch with default aggregation settings."""
    return ErrorAggregator(rng=rng).group_errors(events)
