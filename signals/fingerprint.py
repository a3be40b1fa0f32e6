"""Error fingerprinting — stable group identities for raw error events.

Two occurrences of the same logical bug should land in the same group even
when they were thrown from different bundle builds, different sessions, or
slightly different call sites. The fingerprint therefore hashes only the
error's type, message, source and a normalized stack trace.

If Datadog already assigned a fingerprint upstream, it is trusted verbatim.

Pure and deterministic: the same input always produces the same output.
"""

import hashlib
import re

from schemas.events import ErrorAttributes

FINGERPRINT_LENGTH = 16
DEFAULT_STACK_LINES = 5

# Applied in order — each rule rewrites the output of the previous one.
_STACK_RULES: list[tuple[re.Pattern, str]] = [
    # line:column pairs
    (re.compile(r":\d+:\d+"), ":*:*"),
    # query strings on script URLs
    (re.compile(r"\?[a-zA-Z0-9_\-=&]+"), ""),
    # content-hashed bundle names (main.3f9a1c2b.js)
    (re.compile(r"\.[a-f0-9]{8,}\."), ".*."),
    # UUIDs
    (re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}"), "*"),
    # millisecond timestamps
    (re.compile(r"\d{13,}"), "*"),
]


class Fingerprinter:
    """Derives group identities from error payloads.

    Attributes:
        max_lines: Number of leading stack lines kept after normalization.
            Bounds hashing cost and focuses the identity on the proximate
            cause rather than deep framework frames.
    """

    def __init__(self, max_lines: int = DEFAULT_STACK_LINES) -> None:
        self.max_lines = max_lines

    def fingerprint(self, error: ErrorAttributes | dict) -> str:
        """Return the group identity for one error payload.

        Args:
            error: The nested error payload of a RUM event. Plain dicts are
                validated into ErrorAttributes first.

        Returns:
            The upstream fingerprint when present, otherwise the first 16
            hex characters of SHA-256 over "type:message:source:stack".
        """
        if isinstance(error, dict):
            error = ErrorAttributes.model_validate(error)

        if error.fingerprint:
            return error.fingerprint

        normalized_stack = self.normalize_stack(error.stack)
        raw = f"{error.type}:{error.message}:{error.source}:{normalized_stack}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]

    def normalize_stack(self, stack: str | None) -> str:
        """Strip the variable parts of a stack trace.

        Line/column numbers, query strings, bundle hashes, UUIDs and
        millisecond timestamps are replaced, then only the first
        max_lines lines are kept.

        Returns:
            The normalized stack, or "" when stack is missing or empty.
        """
        if not stack:
            return ""

        for pattern, replacement in _STACK_RULES:
            stack = pattern.sub(replacement, stack)

        return "\n".join(stack.split("\n")[: self.max_lines])


_default = Fingerprinter()


def fingerprint(error: ErrorAttributes | dict) -> str:
    """Fingerprint an error payload with the default 5-line stack cap."""
    return _default.fingerprint(error)


def normalize_stack(stack: str | None, max_lines: int = DEFAULT_STACK_LINES) -> str:
    """Normalize a stack trace for hashing. See Fingerprinter.normalize_stack."""
    if max_lines == _default.max_lines:
        return _default.normalize_stack(stack)
    return Fingerprinter(max_lines).normalize_stack(stack)
