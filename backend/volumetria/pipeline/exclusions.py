"""
Period exclusion filter.

Retroactive channels only:
    v003  realization_date >= 1st of the period month
    v002  report_date outside [08 of month, 07 of month+1]

Non-retroactive channels, optional (off by default):
    v031  realization outside the period month, or report outside
          [1st of month, 07 of month+1]

Null dates never match.  Exclusions are deletions, not rejections.
The same predicates exist in two forms: a Python check used on
in-flight records and a SQL expression used for store-level deletes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from volumetria.core.config import Settings, settings as default_settings
from volumetria.core.constants import ExclusionRule, SourceType
from volumetria.db.models import ExamRecord as ExamRecordRow
from volumetria.pipeline.period import ExclusionWindow
from volumetria.pipeline.record import ExamRecord

RETROACTIVE_SOURCES = tuple(s.value for s in SourceType if s.is_retroactive)
CURRENT_PERIOD_SOURCES = tuple(s.value for s in SourceType if not s.is_retroactive)


def is_retroactive_source(source_file: str) -> bool:
    return source_file in RETROACTIVE_SOURCES


@dataclass(frozen=True)
class ExclusionPolicy:
    """Which exclusion rules are switched on."""

    realization_rule: bool = True
    report_rule: bool = True
    current_period_filter: bool = False

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> ExclusionPolicy:
        config = config or default_settings
        return cls(
            realization_rule=config.EXCLUSION_REALIZATION_RULE_ENABLED,
            report_rule=config.EXCLUSION_REPORT_RULE_ENABLED,
            current_period_filter=config.CURRENT_PERIOD_FILTER_ENABLED,
        )

    def enabled_rules(self) -> list[ExclusionRule]:
        rules = []
        if self.realization_rule:
            rules.append(ExclusionRule.REALIZATION_DATE)
        if self.report_rule:
            rules.append(ExclusionRule.REPORT_DATE)
        if self.current_period_filter:
            rules.append(ExclusionRule.CURRENT_PERIOD)
        return rules


@dataclass
class ExclusionOutcome:
    kept: list[ExamRecord] = field(default_factory=list)
    excluded: list[tuple[ExamRecord, ExclusionRule]] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for _, rule in self.excluded:
            totals[rule.value] = totals.get(rule.value, 0) + 1
        return totals


# ═══════════════════════════════════════════════════════════
#  In-flight predicates
# ═══════════════════════════════════════════════════════════

def violates_realization_rule(record: ExamRecord, window: ExclusionWindow) -> bool:
    return record.realization_date is not None and record.realization_date >= window.realization_cutoff


def violates_report_rule(record: ExamRecord, window: ExclusionWindow) -> bool:
    return record.report_date is not None and (
        record.report_date < window.report_start or record.report_date > window.report_end
    )


def violates_current_period(record: ExamRecord, window: ExclusionWindow) -> bool:
    realization = record.realization_date
    report = record.report_date
    if realization is not None and not window.month_start <= realization <= window.month_end:
        return True
    return report is not None and not window.month_start <= report <= window.report_end


def exclusion_for(
    record: ExamRecord,
    window: ExclusionWindow,
    policy: ExclusionPolicy,
) -> ExclusionRule | None:
    """Return the first exclusion rule the record violates, if any."""
    if is_retroactive_source(record.source_file):
        if policy.realization_rule and violates_realization_rule(record, window):
            return ExclusionRule.REALIZATION_DATE
        if policy.report_rule and violates_report_rule(record, window):
            return ExclusionRule.REPORT_DATE
        return None

    if policy.current_period_filter and violates_current_period(record, window):
        return ExclusionRule.CURRENT_PERIOD
    return None


def filter_records(
    records: Iterable[ExamRecord],
    window: ExclusionWindow,
    policy: ExclusionPolicy,
) -> ExclusionOutcome:
    outcome = ExclusionOutcome()
    for record in records:
        rule = exclusion_for(record, window, policy)
        if rule is None:
            outcome.kept.append(record)
        else:
            outcome.excluded.append((record, rule))
    return outcome


# ═══════════════════════════════════════════════════════════
#  Store-level predicates (canonical exam_records)
# ═══════════════════════════════════════════════════════════

def sql_predicate(rule: ExclusionRule, window: ExclusionWindow) -> ColumnElement[bool]:
    """SQL form of one exclusion rule, already scoped to its channels."""
    row = ExamRecordRow
    if rule == ExclusionRule.REALIZATION_DATE:
        return and_(
            row.source_file.in_(RETROACTIVE_SOURCES),
            row.realization_date.is_not(None),
            row.realization_date >= window.realization_cutoff,
        )
    if rule == ExclusionRule.REPORT_DATE:
        return and_(
            row.source_file.in_(RETROACTIVE_SOURCES),
            row.report_date.is_not(None),
            or_(row.report_date < window.report_start, row.report_date > window.report_end),
        )
    return and_(
        row.source_file.in_(CURRENT_PERIOD_SOURCES),
        or_(
            and_(
                row.realization_date.is_not(None),
                or_(row.realization_date < window.month_start, row.realization_date > window.month_end),
            ),
            and_(
                row.report_date.is_not(None),
                or_(row.report_date < window.month_start, row.report_date > window.report_end),
            ),
        ),
    )
