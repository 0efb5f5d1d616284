"""
Rule engine — ordered, versioned table of pure record rules.

    from volumetria.pipeline.rules import RULE_TABLE, apply_rules

Tiers run in dependency order: identity → modality → specialty →
category → priority → routing → billing → validation.
"""

from volumetria.pipeline.rules.base import Rule, normalize_key
from volumetria.pipeline.rules.executor import BatchOutcome, RuleOutcome, apply_rules, apply_rules_to_batch
from volumetria.pipeline.rules.registry import (
    RULE_TABLE,
    RULES_BY_CODE,
    RULESET_VERSION,
    TIER_ORDER,
    describe_rules,
    rules_for,
)

__all__ = [
    "Rule",
    "RuleOutcome",
    "BatchOutcome",
    "RULE_TABLE",
    "RULES_BY_CODE",
    "RULESET_VERSION",
    "TIER_ORDER",
    "apply_rules",
    "apply_rules_to_batch",
    "describe_rules",
    "normalize_key",
    "rules_for",
]
