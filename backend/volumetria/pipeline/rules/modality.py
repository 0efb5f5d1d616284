"""
Tier 2 — modality correction.

Fixes systematically mis-tagged modalities before specialty and
category rules read them.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import RuleTier
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult, contains_any

PLAIN_RADIOGRAPHY = ("CR", "DX")
DENSITOMETRY_SOURCES = ("OT", "BMD")
MAMMOGRAPHY_KEYWORDS = ("MAMOGRAFIA", "TOMOSSINTESE")

# First token of the description → modality it implies
DESCRIPTION_PREFIXES: dict[str, str] = {
    "RX": "RX",
    "TC": "CT",
    "RM": "MR",
    "US": "US",
    "MG": "MG",
}


def _set_modality(record: ExamRecord, modality: str) -> ExamRecord:
    if record.modality == modality:
        return record
    return replace(record, modality=modality)


def catalog_modality(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    entry = reference.exam_catalog.get(record.study_description)
    if entry is None or not entry.modality:
        return record
    return _set_modality(record, entry.modality)


def breast_modality_from_catalog(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.modality not in PLAIN_RADIOGRAPHY:
        return record
    entry = reference.exam_catalog.get(record.study_description)
    if entry is None:
        return record
    if entry.specialty == "MAMO":
        return _set_modality(record, "MG")
    if entry.specialty == "MAMA":
        return _set_modality(record, "MR")
    return record


def mammography_keywords(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if contains_any(record.study_description, MAMMOGRAPHY_KEYWORDS):
        return _set_modality(record, "MG")
    return record


def description_prefix(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    tokens = record.study_description.split(maxsplit=1)
    if not tokens:
        return record
    modality = DESCRIPTION_PREFIXES.get(tokens[0])
    if modality is None:
        return record
    return _set_modality(record, modality)


def remap_legacy_modalities(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.modality in PLAIN_RADIOGRAPHY:
        return _set_modality(record, "RX")
    if record.modality in DENSITOMETRY_SOURCES:
        return _set_modality(record, "DO")
    return record


RULES: tuple[Rule, ...] = (
    Rule("v031m", RuleTier.MODALITY, "Catalog modality overrides the extract", catalog_modality),
    Rule("v005a", RuleTier.MODALITY, "CR/DX breast exams become MG (MAMO) or MR (MAMA)", breast_modality_from_catalog),
    Rule("v020", RuleTier.MODALITY, "Mammography/tomosynthesis descriptions are MG", mammography_keywords),
    Rule("v005c", RuleTier.MODALITY, "Description prefix enforces its modality", description_prefix),
    Rule("v005b", RuleTier.MODALITY, "Remaining CR/DX become RX, OT/BMD become DO", remap_legacy_modalities),
)
