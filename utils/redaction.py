"""Sensitive-data redaction.

Anything that leaves the pipeline — log lines, API responses, samples handed
to an issue tracker — passes through this module first. Two entry points:

- mask_text(): rewrites free text with an ordered list of pattern rules.
- filter_context(): walks structured context (dicts, lists, pydantic
  models) and redacts values under sensitive keys, masking every other
  string with mask_text().

Rule order matters. Rules cascade: each one rewrites the output of the
previous rule, and the locale-specific phone formats must run before the
generic international one or the generic pattern would claim their digits.

Both functions are total. Empty or missing input is returned unchanged, and
masking already-masked text is a no-op.
"""

import re
from collections.abc import Mapping

from pydantic import BaseModel

from core.config import RedactionConfig

# ASCII semantics for \d and \b: a Japanese character next to a phone number
# must still count as a word boundary.
_FLAGS = re.ASCII
_IFLAGS = re.ASCII | re.IGNORECASE


def _build_rules(config: RedactionConfig) -> list[tuple[re.Pattern, str]]:
    """Compile the ordered (pattern, replacement) list for one config."""
    marker = config.redaction_marker
    prefix = config.email_prefix_length
    return [
        # Email: keep the first few local-part characters and the domain
        (
            re.compile(
                r"([a-zA-Z0-9._%+-]{1," + str(prefix) + r"})[a-zA-Z0-9._%+-]*"
                r"@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})",
                _FLAGS,
            ),
            r"\g<1>***@\g<2>",
        ),
        # Phone (Japanese, with hyphens)
        (re.compile(r"\b0\d{1,4}-\d{1,4}-\d{4}\b", _FLAGS), "0**-****-****"),
        # Phone (Japanese, no separators: 0 + 9-10 digits)
        (re.compile(r"\b0\d{9,10}\b", _FLAGS), "0**********"),
        # Phone (generic international)
        (
            re.compile(r"(\+\d{1,3}[\s-]?)?\(?\d{3}\)?[\s-]?\d{3}[\s-]?\d{4}", _FLAGS),
            "***-***-****",
        ),
        # Names in JSON-ish text: "firstName": "Jane"
        (
            re.compile(
                r'("(?:name|fullName|firstName|lastName|displayName|userName)"\s*:\s*")([^"]+)"',
                _IFLAGS,
            ),
            r'\g<1>' + _escape(config.name_marker) + '"',
        ),
        # Japanese postal code, address context only. The span stops at an
        # earlier mask or line break.
        (
            re.compile(r"(住所|郵便番号|postal|zip)[^〒\n]*?〒?(\d{3}-?\d{4})", _IFLAGS),
            r"\g<1> 〒***-****",
        ),
        # US ZIP code, address context only
        (
            re.compile(r"\b(zip|postal|postcode)[:\s]+(\d{5}(-\d{4})?)\b", _IFLAGS),
            r"\g<1>: *****\g<3>",
        ),
        # Credit card numbers
        (re.compile(r"\b(?:\d{4}[\s-]?){3}\d{4}\b", _FLAGS), "****-****-****-****"),
        # JWTs: keep the recognisable header prefix only
        (
            re.compile(r"eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+", _FLAGS),
            "eyJ***.[REDACTED].***",
        ),
        # key/token/secret assignments with a value of 8+ characters
        (
            re.compile(
                r"""(["']?(?:key|token|secret|password|auth|api_key|apikey)["']?\s*[:=]\s*["']?)"""
                r"""([a-zA-Z0-9_\-/+]{8,})["']?""",
                _IFLAGS,
            ),
            r"\g<1>" + _escape(marker),
        ),
    ]


def _escape(literal: str) -> str:
    """Escape a literal for use inside a re.sub replacement template."""
    return literal.replace("\\", "\\\\")


class Redactor:
    """Masks sensitive data in free text and structured context.

    Attributes:
        config: Markers, email prefix length and sensitive key list.
    """

    def __init__(self, config: RedactionConfig | None = None) -> None:
        self.config = config or RedactionConfig()
        self._rules = _build_rules(self.config)
        self._sensitive_keys = tuple(k.lower() for k in self.config.sensitive_context_keys)

    def mask_text(self, text: str | None) -> str | None:
        """Apply every masking rule, in order, to text.

        Args:
            text: Free text such as an error message, stack trace or URL.

        Returns:
            The masked text. Falsy input ("" or None) is returned as-is.
        """
        if not text:
            return text

        for pattern, replacement in self._rules:
            text = pattern.sub(replacement, text)
        return text

    def is_sensitive_key(self, key: str) -> bool:
        """True if the lower-cased key contains any sensitive keyword."""
        lowered = str(key).lower()
        return any(term in lowered for term in self._sensitive_keys)

    def filter_context(self, value):
        """Recursively redact a structured value.

        For each mapping key:
            - sensitive key, scalar value     → redaction marker
            - sensitive key, structured value → recurse (nested sensitive
              keys are still redacted; non-sensitive siblings are masked)
            - other key, string value         → mask_text()
            - other key, structured value     → recurse
            - anything else                   → unchanged

        Lists and tuples are mapped element-wise. Pydantic models are dumped
        to plain dicts first. Top-level scalars pass through unchanged.
        """
        if isinstance(value, BaseModel):
            value = value.model_dump(exclude_none=True)

        if isinstance(value, Mapping):
            return {key: self._filter_entry(key, item) for key, item in value.items()}

        if isinstance(value, (list, tuple)):
            return [self.filter_context(item) for item in value]

        return value

    # ── Private ───────────────────────────────────────────────────────────────

    def _filter_entry(self, key, item):
        structured = isinstance(item, (Mapping, list, tuple, BaseModel))

        if self.is_sensitive_key(key):
            if structured:
                return self.filter_context(item)
            return self.config.redaction_marker

        if isinstance(item, str):
            return self.mask_text(item)

        if structured:
            return self.filter_context(item)

        return item


_default = Redactor()


def mask_text(text: str | None) -> str | None:
    """Mask sensitive substrings using the default redaction config."""
    return _default.mask_text(text)


def filter_context(value):
    """Redact structured context using the default redaction config."""
    return _default.filter_context(value)


def secure_log(message: str) -> str:
    """Mask a message before it is written to a log handler."""
    return _default.mask_text(message)
