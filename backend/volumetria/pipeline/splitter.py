"""
Exam splitter — composite exam descriptions fan out into billable children.

The parent is replaced, never kept: a matching record becomes N child
records sharing client, patient, dates and priority, each with the
child description and its resolved category.  Children carry
``split_from`` and are never split again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from volumetria.core.constants import DEFAULT_CATEGORY
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData


@dataclass
class SplitOutcome:
    records: list[ExamRecord] = field(default_factory=list)
    parents_split: int = 0
    children_created: int = 0
    by_parent: dict[str, int] = field(default_factory=dict)


def split_record(record: ExamRecord, reference: ReferenceData) -> list[ExamRecord]:
    """Return the children of `record`, or `[record]` when nothing matches."""
    if record.split_from is not None:
        return [record]

    children = reference.split_rules.get(record.study_description)
    if not children:
        return [record]

    return [
        replace(
            record,
            study_description=child.description,
            category=_child_category(child.category, record, reference),
            split_from=record.study_description,
            unit_value=None,
            price_status=None,
        )
        for child in children
    ]


def _child_category(category: str | None, parent: ExamRecord, reference: ReferenceData) -> str:
    """Split-rule category when it is a known one, else the parent's."""
    valid = reference.valid_categories
    if category and (not valid or category in valid):
        return category
    if parent.category and (not valid or parent.category in valid):
        return parent.category
    return DEFAULT_CATEGORY


def split_records(records: Iterable[ExamRecord], reference: ReferenceData) -> SplitOutcome:
    outcome = SplitOutcome()
    for record in records:
        expanded = split_record(record, reference)
        if len(expanded) == 1 and expanded[0] is record:
            outcome.records.append(record)
            continue
        outcome.parents_split += 1
        outcome.children_created += len(expanded)
        outcome.by_parent[record.study_description] = (
            outcome.by_parent.get(record.study_description, 0) + 1
        )
        outcome.records.extend(expanded)
    return outcome
