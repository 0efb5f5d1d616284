"""
Tier 1 — client identity and name normalization.

Runs first: every later tier (routing, billing, validation) keys on
the resolved client name.
"""

from __future__ import annotations

from dataclasses import replace

from volumetria.core.constants import RejectionReason, RuleTier
from volumetria.pipeline.record import ExamRecord, Rejection
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules.base import Rule, RuleResult, normalize_key

# Client display-name variants that always resolve to one registered client
BUILTIN_CLIENT_ALIASES: dict[str, str] = {
    "CEDI-RJ": "CEDIDIAG",
    "CEDI-RO": "CEDIDIAG",
    "CEDI-UNIMED": "CEDIDIAG",
    "CEDI_RJ": "CEDIDIAG",
    "CEDI_RO": "CEDIDIAG",
    "CEDI_UNIMED": "CEDIDIAG",
}

TELE_SUFFIX = "_TELE"
SANTA_HELENA_KEY = "SANTA HELENA"
SANTA_HELENA_CLIENT = "HOSPITAL SANTA HELENA"
PREFIXED_CLIENTS: dict[str, str] = {
    "P-CEMVALENCA_MG": "CEMVALENCA_MG",
}


def require_fields(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    missing = [
        name
        for name, value in (
            ("EMPRESA", record.client_name),
            ("NOME_PACIENTE", record.patient_name),
            ("ESTUDO_DESCRICAO", record.study_description),
        )
        if not value or not value.strip()
    ]
    if missing:
        return Rejection(
            RejectionReason.MISSING_REQUIRED_FIELD,
            rule_code="v017",
            message=f"Missing required fields: {', '.join(missing)}",
        )
    return record


def normalize_client_name(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    normalized = " ".join(record.client_name.upper().split())
    if normalized == record.client_name:
        return record
    return replace(record, client_name=normalized)


def reject_excluded_clients(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    key = normalize_key(record.client_name)
    excluded_names = {normalize_key(n) for n in reference.excluded_client_names}
    if key in excluded_names or any(
        normalize_key(pattern) in key for pattern in reference.excluded_client_patterns
    ):
        return Rejection(
            RejectionReason.EXCLUDED_CLIENT,
            rule_code="v004",
            message=f"Client {record.client_name!r} is excluded from billing",
        )
    return record


def map_client_alias(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    name = record.client_name
    target = BUILTIN_CLIENT_ALIASES.get(name)

    for alias in reference.client_aliases:
        if alias.match_type == "exact" and alias.alias == name:
            target = alias.canonical_name
            break
    else:
        if target is None:
            for alias in reference.client_aliases:
                if alias.match_type == "contains" and alias.alias in name:
                    target = alias.canonical_name
                    break

    if target is None or target == name:
        return record
    return replace(record, client_name=target)


def strip_tele_suffix(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if not record.client_name.endswith(TELE_SUFFIX):
        return record
    return replace(record, client_name=record.client_name[: -len(TELE_SUFFIX)].rstrip())


def group_santa_helena(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if SANTA_HELENA_KEY not in normalize_key(record.client_name):
        return record
    if record.client_name == SANTA_HELENA_CLIENT:
        return record
    return replace(record, client_name=SANTA_HELENA_CLIENT)


def strip_client_prefix(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    target = PREFIXED_CLIENTS.get(record.client_name)
    if target is None:
        return record
    return replace(record, client_name=target)


def map_physician_alias(record: ExamRecord, reference: ReferenceData) -> RuleResult:
    if not record.physician:
        return record
    target = reference.physician_aliases.get(record.physician.strip().upper())
    if target is None or target == record.physician:
        return record
    return replace(record, physician=target)


RULES: tuple[Rule, ...] = (
    Rule("v017", RuleTier.IDENTITY, "Reject rows without client, patient or exam description", require_fields),
    Rule("v001n", RuleTier.IDENTITY, "Normalize client display name (case, whitespace)", normalize_client_name),
    Rule("v004", RuleTier.IDENTITY, "Reject internal and test clients", reject_excluded_clients),
    Rule("v001", RuleTier.IDENTITY, "Map client aliases to the registered name", map_client_alias),
    Rule("v001b", RuleTier.IDENTITY, "Strip the _TELE suffix from client names", strip_tele_suffix),
    Rule("v010", RuleTier.IDENTITY, "Group Santa Helena variants", group_santa_helena),
    Rule("v010a", RuleTier.IDENTITY, "Drop the P- prefix of CEMVALENCA_MG", strip_client_prefix),
    Rule("v001c", RuleTier.IDENTITY, "Map physician name variants", map_physician_alias),
)
