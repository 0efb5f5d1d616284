"""
Single executor for the rule table.

Each rule runs at most once per record: its code is appended to
``record.applied_rules`` and skipped on later passes unless
``force=True``.  A Rejection short-circuits the record; other records
are unaffected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from volumetria.pipeline.record import ExamRecord, Rejection
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule
from volumetria.pipeline.rules.registry import RULE_TABLE


@dataclass
class RuleOutcome:
    """Result of running the rule table over one record."""

    record: ExamRecord
    rejection: Rejection | None = None
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    changed: bool = False

    @property
    def rejected(self) -> bool:
        return self.rejection is not None


@dataclass
class BatchOutcome:
    """Result of running the rule table over many records."""

    accepted: list[ExamRecord] = field(default_factory=list)
    rejected: list[tuple[ExamRecord, Rejection]] = field(default_factory=list)
    changed: int = 0
    applied_counts: dict[str, int] = field(default_factory=dict)


def apply_rules(
    record: ExamRecord,
    reference: ReferenceData,
    rules: Sequence[Rule] | None = None,
    force: bool = False,
) -> RuleOutcome:
    """Run `rules` (default: the whole table) over one record in order."""
    rules = RULE_TABLE if rules is None else rules
    outcome = RuleOutcome(record=record)
    current = record

    for rule in rules:
        if rule.code in current.applied_rules and not force:
            outcome.skipped.append(rule.code)
            continue

        result = rule(current, reference)
        if isinstance(result, Rejection):
            if result.rule_code is None:
                result = Rejection(result.reason, rule_code=rule.code, message=result.message)
            outcome.rejection = result
            outcome.record = current
            return outcome

        if result != current:
            outcome.changed = True
        current = result.with_rule(rule.code)
        outcome.applied.append(rule.code)

    outcome.record = current
    return outcome


def apply_rules_to_batch(
    records: Iterable[ExamRecord],
    reference: ReferenceData,
    rules: Sequence[Rule] | None = None,
    force: bool = False,
) -> BatchOutcome:
    """Run the table over every record; rejections never stop the batch."""
    batch = BatchOutcome()
    for record in records:
        outcome = apply_rules(record, reference, rules=rules, force=force)
        if outcome.rejected:
            batch.rejected.append((outcome.record, outcome.rejection))
            continue
        batch.accepted.append(outcome.record)
        if outcome.changed:
            batch.changed += 1
        for code in outcome.applied:
            batch.applied_counts[code] = batch.applied_counts.get(code, 0) + 1
    return batch
