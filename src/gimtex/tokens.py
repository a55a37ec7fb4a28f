"""Token estimation and budget classification.

One tiktoken encoding is used for the whole run so that per-file counts add up
to a meaningful total. Counts are always taken on the text that is emitted,
i.e. after redaction.
"""

from __future__ import annotations

from enum import StrEnum, auto
from functools import cache
from typing import TYPE_CHECKING

import tiktoken
from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gimtex.config import FileRecord

DEFAULT_ENCODING = "cl100k_base"


class TokenTier(StrEnum):
    """Traffic-light classification of a token total."""

    GREEN = auto()
    YELLOW = auto()
    RED = auto()


class TokenThresholds(BaseModel):
    """Tier boundaries: totals at or above `yellow` are yellow, at or above `red` are red."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    yellow: int = Field(default=30_000, gt=0)
    red: int = Field(default=100_000, gt=0)
    context_window: int = Field(default=128_000, gt=0)

    @model_validator(mode="after")
    def _ordered(self) -> TokenThresholds:
        if self.yellow > self.red:
            msg = f"yellow threshold ({self.yellow}) must not exceed red threshold ({self.red})"
            raise ValueError(msg)
        return self


class TokenBudgetReport(BaseModel):
    """Total and per-file token counts with the resulting tier."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(..., ge=0)
    per_file: dict[str, int] = Field(default_factory=dict)
    tier: TokenTier
    thresholds: TokenThresholds

    @property
    def window_share(self) -> float:
        """Fraction of the assumed context window taken by the payload."""
        return self.total / self.thresholds.context_window

    def summary_line(self) -> str:
        return (
            f"{self.total} tokens ({self.tier}, {self.window_share:.1%} of "
            f"{self.thresholds.context_window} token window)"
        )


@cache
def _encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


class TokenCounter:
    """Count tokens with a fixed tiktoken encoding."""

    def __init__(self, encoding: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding
        self._encoding = _encoding(encoding)

    def count(self, content: str) -> int:
        """Return the number of tokens in `content`.

        Special-token strings (e.g. `<|endoftext|>`) appearing in a file are
        counted as ordinary text.
        """
        if not content:
            return 0
        return len(self._encoding.encode(content, disallowed_special=()))


def classify(total: int, thresholds: TokenThresholds) -> TokenTier:
    """Classify a token total against the configured thresholds."""
    if total >= thresholds.red:
        return TokenTier.RED
    if total >= thresholds.yellow:
        return TokenTier.YELLOW
    return TokenTier.GREEN


def build_report(records: Sequence[FileRecord], thresholds: TokenThresholds) -> TokenBudgetReport:
    """Aggregate per-file counts into a budget report.

    Skipped records are listed with 0 tokens.

    Args:
        records (Sequence[FileRecord]): records in output order.
        thresholds (TokenThresholds): tier boundaries.

    Returns:
        TokenBudgetReport: totals and tier.
    """
    per_file = {r.rel: r.tokens for r in records}
    total = sum(per_file.values())
    return TokenBudgetReport(
        total=total,
        per_file=per_file,
        tier=classify(total, thresholds),
        thresholds=thresholds,
    )
