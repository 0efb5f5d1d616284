"""
Tier 7 — billing-type classification.

    CO client (or not registered as NC)           → CO-FT
    NC client and any billing trigger matches     → NC-FT
    NC client otherwise                           → NC-NF

Triggers: specialty in the global or per-client billed specialties,
PLANTÃO priority, description in the global or per-client billed
descriptions, physician in the per-client billed physicians.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import PRIORITY_ON_CALL, BillingType, RuleTier
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ClientInfo, ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult


def _nc_billable(record: ExamRecord, client: ClientInfo, reference: ReferenceData) -> bool:
    if record.specialty in reference.nc_billed_specialties or record.specialty in client.billed_specialties:
        return True
    if record.priority == PRIORITY_ON_CALL:
        return True
    if (
        record.study_description in reference.nc_billed_descriptions
        or record.study_description in client.billed_descriptions
    ):
        return True
    return bool(record.physician) and record.physician.strip().upper() in client.billed_physicians


def classify_billing_type(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    client = reference.client(record.client_name)
    if client is None or not client.is_nc:
        billing_type = BillingType.CO_FT.value
    elif _nc_billable(record, client, reference):
        billing_type = BillingType.NC_FT.value
    else:
        billing_type = BillingType.NC_NF.value

    if record.billing_type == billing_type:
        return record
    return replace(record, billing_type=billing_type)


RULES: tuple[Rule, ...] = (
    Rule("f005", RuleTier.BILLING, "Derive CO-FT / NC-FT / NC-NF from the client registry", classify_billing_type),
)
