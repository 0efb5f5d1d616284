"""
Price resolver — first match wins, no blending.

    1. Direct price for the study description
    2. Split fallback: the description is a split parent or child →
       price of the composite (exame_original) description
    3. Unresolved: unit_value stays None and price_status says so

Unresolved prices are not rejections; the record still commits and
surfaces in the unpriced report.  Negative reference prices are
dropped when reference data is loaded, so a resolved value is
always >= 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable

from volumetria.core.constants import PriceStatus
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import ReferenceData


@dataclass
class PricingOutcome:
    records: list[ExamRecord] = field(default_factory=list)
    resolved: int = 0
    resolved_via_split: int = 0
    unresolved: int = 0
    unresolved_descriptions: dict[str, int] = field(default_factory=dict)


def lookup_price(description: str, reference: ReferenceData) -> tuple[Decimal | None, PriceStatus]:
    """Resolve a unit value for a study description."""
    direct = reference.prices.get(description)
    if direct is not None and direct >= 0:
        return direct, PriceStatus.RESOLVED

    parent = description if description in reference.split_rules else reference.split_parent_of(description)
    if parent is not None:
        fallback = reference.prices.get(parent)
        if fallback is not None and fallback >= 0:
            return fallback, PriceStatus.RESOLVED_VIA_SPLIT

    return None, PriceStatus.UNRESOLVED


def resolve_price(record: ExamRecord, reference: ReferenceData) -> ExamRecord:
    value, status = lookup_price(record.study_description, reference)
    if record.unit_value == value and record.price_status == status.value:
        return record
    return replace(record, unit_value=value, price_status=status.value)


def resolve_prices(records: Iterable[ExamRecord], reference: ReferenceData) -> PricingOutcome:
    outcome = PricingOutcome()
    for record in records:
        priced = resolve_price(record, reference)
        outcome.records.append(priced)
        if priced.price_status == PriceStatus.RESOLVED:
            outcome.resolved += 1
        elif priced.price_status == PriceStatus.RESOLVED_VIA_SPLIT:
            outcome.resolved_via_split += 1
        else:
            outcome.unresolved += 1
            outcome.unresolved_descriptions[priced.study_description] = (
                outcome.unresolved_descriptions.get(priced.study_description, 0) + 1
            )
    return outcome
