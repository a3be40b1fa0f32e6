"""Status verdict schema.

A StatusVerdict is the inferred lifecycle classification of one error group
at one point in time. It is recomputed on every call and never stored —
the same group evaluated an hour later may get a different verdict.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorStatus(str, Enum):
    """Lifecycle states an error group can be classified into.

    Extends str so values serialize to plain strings ("FOR_REVIEW") rather
    than "ErrorStatus.FOR_REVIEW" in JSON responses and log lines.

    Values:
        FOR_REVIEW: New, spiking, or regressed — someone should look at it.
        LIKELY_RESOLVED: Silent long enough that a fix probably landed.
        ACTIVE: Ongoing at a steady volume.
        UNKNOWN: Too little data to say anything useful.
    """

    FOR_REVIEW = "FOR_REVIEW"
    LIKELY_RESOLVED = "LIKELY_RESOLVED"
    ACTIVE = "ACTIVE"
    UNKNOWN = "UNKNOWN"


class StatusVerdict(BaseModel):
    """Inferred status of one error group.

    Attributes:
        status: The lifecycle state.
        confidence: How much the heuristic trusts itself, 0.0-1.0.
        reason: Short human-readable explanation of the verdict.
    """

    status: ErrorStatus
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
