"""
The versioned, ordered rule table.

Bump RULESET_VERSION whenever a rule is added, removed, reordered or
changes behaviour; the version is stamped on every committed record
and on the upload batch.
"""

from __future__ import annotations

from volumetria.core.constants import RuleTier
from volumetria.pipeline.errors import RuleNotFoundError
from volumetria.pipeline.rules import billing, category, identity, modality, priority, routing, specialty, validation
from volumetria.pipeline.rules.base import Rule

RULESET_VERSION = "2025.07"

TIER_ORDER: tuple[RuleTier, ...] = (
    RuleTier.IDENTITY,
    RuleTier.MODALITY,
    RuleTier.SPECIALTY,
    RuleTier.CATEGORY,
    RuleTier.PRIORITY,
    RuleTier.ROUTING,
    RuleTier.BILLING,
    RuleTier.VALIDATION,
)

RULE_TABLE: tuple[Rule, ...] = (
    *identity.RULES,
    *modality.RULES,
    *specialty.RULES,
    *category.RULES,
    *priority.RULES,
    *routing.RULES,
    *billing.RULES,
    *validation.RULES,
)

RULES_BY_CODE: dict[str, Rule] = {rule.code: rule for rule in RULE_TABLE}

ALL_RULES = "all"


def rules_for(selector: str) -> tuple[Rule, ...]:
    """
    Resolve a selector to an ordered slice of the table.

    Accepts "all", a tier name ("specialty") or a rule code ("v007").
    The result always keeps table order.
    """
    key = selector.strip().lower()
    if key == ALL_RULES:
        return RULE_TABLE
    if key in {tier.value for tier in RuleTier}:
        return tuple(rule for rule in RULE_TABLE if rule.tier == key)
    if key in RULES_BY_CODE:
        return (RULES_BY_CODE[key],)
    raise RuleNotFoundError(f"Unknown rule or tier: {selector!r}", details={"selector": selector})


def describe_rules() -> list[dict[str, str]]:
    """Serializable listing for the API."""
    return [
        {"code": rule.code, "tier": rule.tier.value, "description": rule.description}
        for rule in RULE_TABLE
    ]
