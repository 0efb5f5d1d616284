"""Tier 4 — category assignment from the exam catalog."""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import DEFAULT_CATEGORY, RuleTier
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult, contains_any

ONCOLOGY_KEYWORDS = ("ONCO", "PET", "CINTILOGRAFIA")
ONCOLOGY_CATEGORY = "ONCO"


def catalog_category(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    entry = reference.exam_catalog.get(record.study_description)
    if entry is None or not entry.category or entry.category == record.category:
        return record
    return replace(record, category=entry.category)


def oncology_keywords(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.category or not contains_any(record.study_description, ONCOLOGY_KEYWORDS):
        return record
    return replace(record, category=ONCOLOGY_CATEGORY)


def default_category(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.category:
        return record
    return replace(record, category=DEFAULT_CATEGORY)


RULES: tuple[Rule, ...] = (
    Rule("v011", RuleTier.CATEGORY, "Category from the exam catalog", catalog_category),
    Rule("v021", RuleTier.CATEGORY, "Oncology descriptions get category ONCO", oncology_keywords),
    Rule("v011d", RuleTier.CATEGORY, "Empty category defaults to SC", default_category),
)
