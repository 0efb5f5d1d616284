"""
Tier 8 — closed-vocabulary and client-existence validation.

Last tier: everything it checks has been resolved by the tiers above.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import ClientStatus, RejectionReason, RuleTier
from volumetria.pipeline.record import ExamRecord, Rejection
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult


def validate_vocabularies(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if reference.valid_modalities and record.modality not in reference.valid_modalities:
        return Rejection(
            RejectionReason.INVALID_MODALITY,
            rule_code="v013",
            message=f"Modality {record.modality!r} is not in the configured vocabulary",
        )
    if reference.valid_specialties and record.specialty not in reference.valid_specialties:
        return Rejection(
            RejectionReason.INVALID_SPECIALTY,
            rule_code="v013",
            message=f"Specialty {record.specialty!r} is not in the configured vocabulary",
        )
    if reference.valid_categories and record.category not in reference.valid_categories:
        return Rejection(
            RejectionReason.INVALID_CATEGORY,
            rule_code="v013",
            message=f"Category {record.category!r} is not in the configured vocabulary",
        )
    if reference.valid_priorities and record.priority not in reference.valid_priorities:
        return Rejection(
            RejectionReason.INVALID_PRIORITY,
            rule_code="v013",
            message=f"Priority {record.priority!r} is not in the configured vocabulary",
        )
    return record


def validate_client(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    client = reference.client(record.client_name)
    if client is None:
        return Rejection(
            RejectionReason.CLIENT_NOT_FOUND,
            rule_code="v014",
            message=f"Client {record.client_name!r} is not registered",
        )
    if client.status == ClientStatus.PENDING.value:
        if record.client_unresolved:
            return record
        return replace(record, client_unresolved=True)
    if client.status != ClientStatus.ACTIVE.value:
        return Rejection(
            RejectionReason.CLIENT_INACTIVE,
            rule_code="v014",
            message=f"Client {record.client_name!r} is {client.status}",
        )
    if record.client_unresolved:
        return replace(record, client_unresolved=False)
    return record


RULES: tuple[Rule, ...] = (
    Rule("v013", RuleTier.VALIDATION, "Modality, specialty and category belong to the vocabularies", validate_vocabularies),
    Rule("v014", RuleTier.VALIDATION, "Client is registered and active", validate_client),
)
