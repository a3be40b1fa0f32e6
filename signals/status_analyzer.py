"""Status analyzer — infers a lifecycle status for one error group.

There is no database of past verdicts. Every call looks only at the
group's own timestamps, count and occurrence sample, compared against the
current time, and classifies it:

    LIKELY_RESOLVED  silent for 7+ days, or old (30+ days) and rare (< 5)
    FOR_REVIEW       new (< 24h), spiking (> 10 sampled in 24h), or
                     active again after 3+ quiet days
    ACTIVE           ongoing at volume (> 10 occurrences)
    UNKNOWN          everything else

Order matters: an old, rare group that also shows a burst in the last day
is still reported resolved. Spike and regression checks read the bounded
occurrence sample rather than the true count, so under heavy volume they
see at most max_stored_occurrences events.

Same group and same `now` always produce the same verdict.
"""

import time

from aggregation.aggregator import ErrorGroup
from core.config import StatusThresholds
from schemas.status import ErrorStatus, StatusVerdict


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ErrorStatusAnalyzer:
    """Classify error groups into lifecycle states.

    Regression after silence is read from gaps in the occurrence sample. A
    quiet-period check against last_seen could never fire, because a group
    with a recent occurrence always has a recent last_seen.

    Attributes:
        thresholds: Windows and counts the heuristics compare against.
    """

    RESOLVED_CONFIDENCE = 0.8
    REVIEW_CONFIDENCE = 0.9
    ACTIVE_CONFIDENCE = 0.7
    UNKNOWN_CONFIDENCE = 0.3

    def __init__(self, thresholds: StatusThresholds | None = None) -> None:
        self.thresholds = thresholds or StatusThresholds()

    def infer_status(self, group: ErrorGroup, now: int | None = None) -> StatusVerdict:
        """Return the status verdict for a group at time `now`.

        Args:
            group: An aggregated error group.
            now: Reference time in epoch millis. Defaults to the wall clock.

        Returns:
            A fresh StatusVerdict. Nothing is cached.
        """
        if now is None:
            now = now_ms()

        if self.is_likely_resolved(group, now):
            return StatusVerdict(
                status=ErrorStatus.LIKELY_RESOLVED,
                confidence=self.RESOLVED_CONFIDENCE,
                reason="No recent occurrences",
            )

        if self.is_for_review(group, now):
            return StatusVerdict(
                status=ErrorStatus.FOR_REVIEW,
                confidence=self.REVIEW_CONFIDENCE,
                reason="New error" if self._is_new(group, now) else "Recent spike or regression",
            )

        if group.count > self.thresholds.active_count:
            return StatusVerdict(
                status=ErrorStatus.ACTIVE,
                confidence=self.ACTIVE_CONFIDENCE,
                reason="Ongoing error with stable pattern",
            )

        return StatusVerdict(
            status=ErrorStatus.UNKNOWN,
            confidence=self.UNKNOWN_CONFIDENCE,
            reason="Insufficient data to determine status",
        )

    def is_likely_resolved(self, group: ErrorGroup, now: int) -> bool:
        """Silent past the resolution threshold, or old and rare."""
        t = self.thresholds

        if now - group.last_seen > t.resolved_threshold_ms:
            return True

        return now - group.first_seen > t.old_error_threshold_ms and group.count < t.rare_error_count

    def is_for_review(self, group: ErrorGroup, now: int) -> bool:
        """New, spiking, or regressed after a quiet period."""
        if self._is_new(group, now):
            return True

        window = self.thresholds.new_error_window_ms
        recent = [e.timestamp for e in group.occurrences if now - e.timestamp < window]

        if len(recent) > self.thresholds.recent_spike_count:
            return True

        return bool(recent) and self._regressed_after_silence(group, min(recent), now)

    # ── Private ───────────────────────────────────────────────────────────────

    def _is_new(self, group: ErrorGroup, now: int) -> bool:
        return now - group.first_seen < self.thresholds.new_error_window_ms

    def _regressed_after_silence(self, group: ErrorGroup, first_recent: int, now: int) -> bool:
        """True if the sample shows a quiet gap right before the recent window.

        The gap is measured between the newest sampled occurrence older than
        the recent window and the oldest one inside it.
        """
        window = self.thresholds.new_error_window_ms
        earlier = [e.timestamp for e in group.occurrences if now - e.timestamp >= window]
        if not earlier:
            return False
        return first_recent - max(earlier) > self.thresholds.quiet_period_ms


_default = ErrorStatusAnalyzer()


def infer_status(group: ErrorGroup, now: int | None = None) -> StatusVerdict:
    """Infer a group's status with the default thresholds."""
    return _default.infer_status(group, now)
