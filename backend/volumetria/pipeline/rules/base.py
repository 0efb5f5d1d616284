"""
Rule primitives shared by every tier module.

A rule is a pure function ``(record, reference) -> record | Rejection``
wrapped in a Rule descriptor carrying its code and dependency tier.
Rules must be safe to run twice: each one inspects the current value
before changing it, so re-application is a no-op.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Callable, Union

from volumetria.core.constants import RuleTier
from volumetria.pipeline.record import ExamRecord, Rejection
from volumetria.pipeline.reference import ReferenceData

RuleResult = Union[ExamRecord, Rejection]
RuleFn = Callable[[ExamRecord, ReferenceData], RuleResult]


@dataclass(frozen=True)
class Rule:
    """One entry of the versioned rule table."""

    code: str
    tier: RuleTier
    description: str
    apply: RuleFn

    def __call__(self, record: ExamRecord, reference: ReferenceData) -> RuleResult:
        return self.apply(record, reference)


def normalize_key(text: str | None) -> str:
    """Accent-free, upper-case, single-spaced form used for comparisons."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.upper().split())


def contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    key = normalize_key(text)
    return any(keyword in key for keyword in keywords)
