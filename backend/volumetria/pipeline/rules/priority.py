"""Tier 5 — priority de-para to the canonical priority enum."""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import (
    PRIORITY_ON_CALL,
    PRIORITY_ROUTINE,
    PRIORITY_URGENT,
    RuleTier,
)
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult, normalize_key

EXACT_SYNONYMS: dict[str, str] = {
    "URG": PRIORITY_URGENT,
    "URGENTE": PRIORITY_URGENT,
    "URGENCIA": PRIORITY_URGENT,
    "EMERGENCIA": PRIORITY_URGENT,
    "ROT": PRIORITY_ROUTINE,
    "ROTINA": PRIORITY_ROUTINE,
    "AMBULATORIO": PRIORITY_ROUTINE,
    "INTERNADO": PRIORITY_ROUTINE,
    "ELETIVO": PRIORITY_ROUTINE,
    "PLANTAO": PRIORITY_ON_CALL,
}

# Checked in order against free text such as "PLANTÃO NOTURNO"
CONTAINED_SYNONYMS: tuple[tuple[str, str], ...] = (
    ("PLANTAO", PRIORITY_ON_CALL),
    ("URGEN", PRIORITY_URGENT),
    ("EMERGEN", PRIORITY_URGENT),
)

CANONICAL_PRIORITIES = frozenset({PRIORITY_ROUTINE, PRIORITY_URGENT, PRIORITY_ON_CALL})


def _set_priority(record: ExamRecord, priority: str) -> ExamRecord:
    if record.priority == priority:
        return record
    return replace(record, priority=priority)


def configured_mapping(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    target = reference.priority_map.get(record.priority)
    if target is None:
        target = reference.priority_map.get(normalize_key(record.priority))
    if target is None:
        return record
    return _set_priority(record, target)


def builtin_synonyms(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.priority in CANONICAL_PRIORITIES:
        return record
    key = normalize_key(record.priority)
    target = EXACT_SYNONYMS.get(key)
    if target is None:
        for fragment, canonical in CONTAINED_SYNONYMS:
            if fragment in key:
                target = canonical
                break
    if target is None:
        return record
    return _set_priority(record, target)


def default_routine(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.priority in CANONICAL_PRIORITIES:
        return record
    return _set_priority(record, PRIORITY_ROUTINE)


RULES: tuple[Rule, ...] = (
    Rule("v008", RuleTier.PRIORITY, "Priority de-para table", configured_mapping),
    Rule("v018", RuleTier.PRIORITY, "Priority synonyms (URG, ROT, PLANTAO...)", builtin_synonyms),
    Rule("v009", RuleTier.PRIORITY, "Empty or unknown priority becomes ROTINA", default_routine),
)
