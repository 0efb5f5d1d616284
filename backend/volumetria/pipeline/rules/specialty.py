"""
Tier 3 — specialty correction.

The synonym table is configuration: built-in defaults below, overridden
row by row by the specialty_mappings table (optionally per modality).
MEDICINA INTERNA is left untouched unless a mapping row says otherwise.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import RuleTier
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult, normalize_key

DEFAULT_SPECIALTY_MAP: dict[str, str] = {
    "ANGIOTCS": "MEDICINA INTERNA",
    "TORAX": "MEDICINA INTERNA",
    "CORPO": "MEDICINA INTERNA",
    "TOMOGRAFIA": "MEDICINA INTERNA",
    "ONCO MEDICINA INTERNA": "MEDICINA INTERNA",
    "CABECA-PESCOCO": "NEURO",
    "CABECA PESCOCO": "NEURO",
    "CARDIO COM SCORE": "CARDIO",
}

DEFAULT_BY_MODALITY: dict[str, str] = {
    "RX": "RX",
    "CT": "TC",
    "MR": "RM",
    "US": "US",
    "MG": "MAMO",
}

DENSITOMETRY_SPECIALTY = "D.O"


def _set_specialty(record: ExamRecord, specialty: str) -> ExamRecord:
    if record.specialty == specialty:
        return record
    return replace(record, specialty=specialty)


def _lookup(specialty: str, modality: str, reference: ReferenceData) -> str | None:
    key = normalize_key(specialty)
    configured = {
        (normalize_key(source), mod): target
        for (source, mod), target in reference.specialty_map.items()
    }
    for candidate in ((key, modality), (key, None)):
        if candidate in configured:
            return configured[candidate]
    return DEFAULT_SPECIALTY_MAP.get(key)


def catalog_specialty(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    entry = reference.exam_catalog.get(record.study_description)
    if entry is None or not entry.specialty:
        return record
    return _set_specialty(record, entry.specialty)


def map_specialty_synonyms(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if not record.specialty:
        return record
    current = record.specialty
    seen = {normalize_key(current)}
    # Follow chains (A→B, B→C) to the end so a second run changes nothing
    target = _lookup(current, record.modality, reference)
    while target is not None and normalize_key(target) not in seen:
        current = target
        seen.add(normalize_key(current))
        target = _lookup(current, record.modality, reference)
    return _set_specialty(record, current)


def breast_specialty_by_modality(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.modality == "MG" and record.specialty == "MAMA":
        return _set_specialty(record, "MAMO")
    if record.modality == "MR" and record.specialty == "MAMO":
        return _set_specialty(record, "MAMA")
    return record


def densitometry_specialty(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.modality != "DO":
        return record
    return _set_specialty(record, DENSITOMETRY_SPECIALTY)


def default_from_modality(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.specialty:
        return record
    default = DEFAULT_BY_MODALITY.get(record.modality)
    if default is None:
        return record
    return _set_specialty(record, default)


RULES: tuple[Rule, ...] = (
    Rule("v031s", RuleTier.SPECIALTY, "Catalog specialty overrides the extract", catalog_specialty),
    Rule("v007", RuleTier.SPECIALTY, "Merge specialty synonyms", map_specialty_synonyms),
    Rule("v044", RuleTier.SPECIALTY, "MAMO/MAMA follows modality (MG vs MR)", breast_specialty_by_modality),
    Rule("v007d", RuleTier.SPECIALTY, "Densitometry exams get specialty D.O", densitometry_specialty),
    Rule("v012", RuleTier.SPECIALTY, "Empty specialty defaults from modality", default_from_modality),
)
