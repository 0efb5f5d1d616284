"""
Tier 6 — client grouping that depends on normalized priority and modality.

CEMVALENCA is billed as three buckets:
    PLANTÃO (any modality)  → CEMVALENCA_PL
    RX (not PLANTÃO)        → CEMVALENCA_RX
    everything else         → CEMVALENCA
Rows from any bucket are re-routed, so a mis-bucketed extract is
corrected in both directions.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import PRIORITY_ON_CALL, RuleTier
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult

CEMVALENCA_BASE = "CEMVALENCA"
CEMVALENCA_ON_CALL = "CEMVALENCA_PL"
CEMVALENCA_RX = "CEMVALENCA_RX"
CEMVALENCA_FAMILY = frozenset({CEMVALENCA_BASE, CEMVALENCA_ON_CALL, CEMVALENCA_RX})


def cemvalenca_bucket(priority: str, modality: str) -> str:
    if priority == PRIORITY_ON_CALL:
        return CEMVALENCA_ON_CALL
    if modality == "RX":
        return CEMVALENCA_RX
    return CEMVALENCA_BASE


def route_cemvalenca(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if record.client_name not in CEMVALENCA_FAMILY:
        return record
    target = cemvalenca_bucket(record.priority, record.modality)
    if target == record.client_name:
        return record
    return replace(record, client_name=target)


RULES: tuple[Rule, ...] = (
    Rule("v010b", RuleTier.ROUTING, "Split CEMVALENCA into PL / RX / base buckets", route_cemvalenca),
)
