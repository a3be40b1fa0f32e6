"""Triage runtime — the top-level pipeline orchestrator.

TriageRuntime is the single entry point for the engine. Callers construct it
once with a TriageSettings, then call triage() with a batch of RUM error
events as many times as needed. Each call is fully independent: a fresh
group map, fresh verdicts, a fresh report.

Pipeline order inside triage():
    1. Group events by fingerprint via ErrorAggregator
    2. Rank groups by occurrence count, largest first
    3. Keep the top max_issues_per_run groups
    4. Infer a status verdict for each kept group via ErrorStatusAnalyzer
    5. Build redacted GroupSummary objects with labels and titles
    6. Return a TriageReport

The runtime never performs I/O. Fetching events (sre/integrations) and
rendering results (display/, main.py) happen outside it.
"""

import logging
import random
from collections.abc import Iterable

from aggregation.aggregator import ErrorAggregator, ErrorGroup
from core.config import TriageSettings
from schemas.events import RumErrorEvent
from schemas.result import GroupSummary, TriageReport
from schemas.status import StatusVerdict
from signals.status_analyzer import ErrorStatusAnalyzer, now_ms
from sre.tracking import issue_title, labels_for
from utils.redaction import Redactor

logger = logging.getLogger(__name__)


class TriageRuntime:
    """Orchestrates grouping, status inference and ranking for one batch.

    Components are created once at construction time from the settings and
    reused across all triage() calls. None of them keep per-batch state, so
    one runtime can serve many batches sequentially.

    Attributes:
        settings: Thresholds, limits and label sets for this runtime.
        _aggregator: Folds events into ErrorGroups.
        _analyzer: Infers a StatusVerdict per group.
        _redactor: Masks every string that leaves the runtime.
    """

    def __init__(
        self,
        settings: TriageSettings | None = None,
        aggregator: ErrorAggregator | None = None,
        analyzer: ErrorStatusAnalyzer | None = None,
        redactor: Redactor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise the runtime.

        Args:
            settings: Run configuration. Defaults to TriageSettings().
            aggregator: Override the aggregator (e.g. with a seeded rng).
            analyzer: Override the status analyzer.
            redactor: Override the redactor.
            rng: Random source for the default aggregator's sampling.
        """
        self.settings = settings or TriageSettings()
        self._aggregator = aggregator or ErrorAggregator(self.settings.aggregation, rng=rng)
        self._analyzer = analyzer or ErrorStatusAnalyzer(self.settings.thresholds)
        self._redactor = redactor or Redactor(self.settings.redaction)

    def triage(self, events: Iterable[RumErrorEvent], now: int | None = None) -> TriageReport:
        """Group, classify and rank one batch of events.

        Args:
            events: Raw RUM error events. Events without an error payload
                are skipped and counted in the report.
            now: Reference time in epoch millis for status inference.
                Defaults to the wall clock.

        Returns:
            A TriageReport with at most max_issues_per_run summaries,
            sorted by occurrence count descending.
        """
        events = list(events)
        if now is None:
            now = now_ms()

        logger.info("Starting triage of %d events.", len(events))

        # Step 1 — grouping.
        groups = self._aggregator.group_errors(events)
        skipped = self._aggregator.last_skipped
        if skipped:
            logger.info("Skipped %d events without an error payload.", skipped)
        logger.info("Grouped into %d unique errors.", len(groups))

        # Steps 2-3 — rank by count, then cap. Ties keep first-seen order.
        ranked = sorted(groups.values(), key=lambda g: g.count, reverse=True)
        selected = ranked[: self.settings.max_issues_per_run]

        # Steps 4-5 — verdicts and summaries for the kept groups only.
        summaries = [
            self._summarize(group, self._analyzer.infer_status(group, now))
            for group in selected
        ]

        for summary in summaries:
            logger.debug(
                "Group %s: %d occurrences, status %s (%.1f).",
                summary.identity,
                summary.count,
                summary.verdict.status.value,
                summary.verdict.confidence,
            )

        return TriageReport(
            summaries=summaries,
            total_events=len(events),
            skipped_events=skipped,
            group_count=len(groups),
        )

    def verdicts(self, events: Iterable[RumErrorEvent], now: int | None = None) -> dict[str, StatusVerdict]:
        """Group a batch and return identity → verdict for every group, unranked."""
        if now is None:
            now = now_ms()
        groups = self._aggregator.group_errors(events)
        return {identity: self._analyzer.infer_status(g, now) for identity, g in groups.items()}

    # ── Private helpers ───────────────────────────────────────────────────────

    def _summarize(self, group: ErrorGroup, verdict: StatusVerdict) -> GroupSummary:
        """Convert an internal ErrorGroup into a redacted GroupSummary."""
        mask = self._redactor.mask_text
        error = group.error
        s = self.settings

        return GroupSummary(
            identity=group.identity,
            title=mask(issue_title(group, prefix=s.title_prefix)),
            error_type=error.type,
            message=mask(error.message) or "",
            source=error.source,
            handling=error.handling,
            count=group.count,
            first_seen=group.first_seen,
            last_seen=group.last_seen,
            affected_users=len(group.affected_users),
            affected_urls=sorted(mask(url) for url in group.affected_urls),
            browsers=dict(group.browsers.most_common()),
            operating_systems=dict(group.operating_systems.most_common()),
            devices=dict(group.devices.most_common()),
            countries=dict(group.countries.most_common()),
            services=sorted(group.services),
            has_replay=group.has_replay,
            is_crash=group.is_crash,
            verdict=verdict,
            labels=labels_for(group, s.labels, s.fatal_labels, s.non_fatal_labels),
            timeline=group.hourly_timeline(),
            sample=self._redactor.filter_context(group.representative),
        )
