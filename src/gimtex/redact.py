"""Secret redaction.

Rules are applied to the whole file content, not line by line. When spans of
two rules overlap, the rule that comes first in the priority list wins and the
other one is neither applied nor counted for that span. Each redacted span is
replaced by a fixed `[REDACTED:<category>]` token; line breaks inside the span
are kept so that line numbers stay accurate.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Sequence


class RedactionCategory(StrEnum):
    """Kinds of secrets, used in placeholders and counts."""

    PRIVATE_KEY_BLOCK = "private-key-block"
    CLOUD_CREDENTIAL = "cloud-credential"
    API_TOKEN = "api-token"
    GENERIC_SECRET = "generic-secret"


PLACEHOLDER_RE = re.compile(r"\[REDACTED:[a-z-]+\]")


class RedactionRule(BaseModel):
    """A pattern and the category it reports.

    When `group` is set only that named group is replaced, so the key of a
    `key = value` assignment stays readable.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    category: RedactionCategory
    pattern: re.Pattern[str]
    group: str | None = None

    @property
    def placeholder(self) -> str:
        return f"[REDACTED:{self.category}]"

    def spans(self, text: str) -> list[tuple[int, int]]:
        out: list[tuple[int, int]] = []
        for m in self.pattern.finditer(text):
            start, end = m.span(self.group) if self.group else m.span()
            if end > start:
                out.append((start, end))
        return out


def _rule(name: str, category: RedactionCategory, pattern: str, group: str | None = None) -> RedactionRule:
    return RedactionRule(name=name, category=category, pattern=re.compile(pattern), group=group)


_SENSITIVE_KEY = r"(?:api[_-]?key|auth[_-]?token|access[_-]?key|secret|passw(?:or)?d|token|credential)"

# Priority order: earlier rules win on overlapping spans.
DEFAULT_RULES: tuple[RedactionRule, ...] = (
    _rule(
        "private-key",
        RedactionCategory.PRIVATE_KEY_BLOCK,
        r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----[\s\S]*?-----END (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----",
    ),
    _rule(
        "aws-access-key-id",
        RedactionCategory.CLOUD_CREDENTIAL,
        r"\b(?:AKIA|ASIA|AGPA|AIDA|AROA|ANPA|ANVA|AIPA)[0-9A-Z]{16}\b",
    ),
    _rule(
        "aws-secret-access-key",
        RedactionCategory.CLOUD_CREDENTIAL,
        r"(?i)aws_?secret_?access_?key['\"]?\s*(?::|=|:=|=>)\s*['\"]?(?P<secret>[A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])",
        group="secret",
    ),
    _rule("google-api-key", RedactionCategory.CLOUD_CREDENTIAL, r"\bAIza[0-9A-Za-z_\-]{35}(?![0-9A-Za-z_\-])"),
    _rule("openai-key", RedactionCategory.API_TOKEN, r"\bsk-(?:proj-|svcacct-|admin-)?[A-Za-z0-9_\-]{20,}"),
    _rule(
        "github-token",
        RedactionCategory.API_TOKEN,
        r"\b(?:gh[pousr]_[A-Za-z0-9]{36,255}|github_pat_[A-Za-z0-9_]{22,255})\b",
    ),
    _rule("slack-token", RedactionCategory.API_TOKEN, r"\bxox[abprs]-[A-Za-z0-9-]{10,}"),
    _rule("stripe-key", RedactionCategory.API_TOKEN, r"\b(?:sk|rk)_live_[A-Za-z0-9]{16,}"),
    _rule(
        "quoted-assignment",
        RedactionCategory.GENERIC_SECRET,
        rf"(?i)[\w.-]*{_SENSITIVE_KEY}[\w.-]*['\"]?\s*(?::|=|:=|=>)\s*(?P<q>['\"])(?P<secret>[^'\"\s]{{8,}})(?P=q)",
        group="secret",
    ),
    _rule(
        "env-assignment",
        RedactionCategory.GENERIC_SECRET,
        r"(?m)^[ \t]*(?:export[ \t]+)?[A-Z0-9_]*(?:API_?KEY|AUTH_?TOKEN|ACCESS_?KEY|SECRET|PASSWORD|PASSWD|TOKEN|CREDENTIALS?)"
        r"[A-Z0-9_]*[ \t]*=[ \t]*(?P<secret>[^\s'\"#]{8,})",
        group="secret",
    ),
)


class RedactionResult(NamedTuple):
    """Redacted text and the number of redactions per category."""

    text: str
    counts: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def _overlaps(span: tuple[int, int], taken: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < t_end and t_start < end for t_start, t_end in taken)


def redact(content: str, rules: Sequence[RedactionRule] = DEFAULT_RULES) -> RedactionResult:
    """Replace secrets in `content` with placeholders.

    Existing placeholders are treated as already redacted, which makes the
    function idempotent.

    Args:
        content (str): raw file content.
        rules (Sequence[RedactionRule]): rules in priority order.

    Returns:
        RedactionResult: the redacted text and per-category counts.
    """
    if not content:
        return RedactionResult(content, {})

    taken: list[tuple[int, int]] = [m.span() for m in PLACEHOLDER_RE.finditer(content)]
    accepted: list[tuple[int, int, RedactionRule]] = []
    for rule in rules:
        for span in rule.spans(content):
            if _overlaps(span, taken):
                continue
            taken.append(span)
            accepted.append((*span, rule))

    if not accepted:
        return RedactionResult(content, {})

    accepted.sort(key=lambda item: item[0])
    parts: list[str] = []
    counts: dict[str, int] = {}
    cursor = 0
    for start, end, rule in accepted:
        parts.append(content[cursor:start])
        parts.append(rule.placeholder + "\n" * content.count("\n", start, end))
        counts[str(rule.category)] = counts.get(str(rule.category), 0) + 1
        cursor = end
    parts.append(content[cursor:])
    return RedactionResult("".join(parts), counts)
