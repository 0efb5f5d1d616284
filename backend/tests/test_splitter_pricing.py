"""
tests/test_splitter_pricing.py

Unit tests for the exam splitter and the price resolver.

Coverage
--------
- Composite exams fan out into N children that replace the parent
- Children inherit patient, client, dates and priority
- Children are never split again
- Split categories outside the vocabulary fall back to the parent's
- Direct price, split fallback (child and parent), unresolved
- Negative reference prices never resolve
- Batch outcome counters
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from volumetria.core.constants import PriceStatus
from volumetria.pipeline.pricing import lookup_price, resolve_price, resolve_prices
from volumetria.pipeline.reference import SplitChild
from volumetria.pipeline.splitter import split_record, split_records


def composite(record_factory):
    return record_factory(
        study_description="TC ABDOME E PELVE",
        modality="CT",
        specialty="MEDICINA INTERNA",
        category="",
        priority="URGENTE",
    )


# ---------------------------------------------------------------------------
# Splitter
# ---------------------------------------------------------------------------


class TestSplitRecord:
    def test_parent_is_replaced_by_children(self, reference, record_factory) -> None:
        children = split_record(composite(record_factory), reference)
        assert [child.study_description for child in children] == ["TC ABDOME", "TC PELVE"]

    def test_children_inherit_shared_fields(self, reference, record_factory) -> None:
        parent = composite(record_factory)
        for child in split_record(parent, reference):
            assert child.patient_name == parent.patient_name
            assert child.client_name == parent.client_name
            assert child.realization_date == parent.realization_date
            assert child.report_date == parent.report_date
            assert child.priority == "URGENTE"
            assert child.category == "SC"
            assert child.split_from == "TC ABDOME E PELVE"

    def test_unknown_split_category_falls_back_to_parent(self, reference, record_factory) -> None:
        reference.split_rules["TC ABDOME E PELVE"] = [
            SplitChild(description="TC ABDOME", category="QUALQUER COISA"),
            SplitChild(description="TC PELVE", category="ONCO"),
        ]
        parent = replace(composite(record_factory), category="CC")
        children = split_record(parent, reference)
        assert [child.category for child in children] == ["CC", "ONCO"]

    def test_unknown_split_category_without_parent_category(self, reference, record_factory) -> None:
        reference.split_rules["TC ABDOME E PELVE"] = [
            SplitChild(description="TC ABDOME", category="QUALQUER COISA"),
        ]
        children = split_record(composite(record_factory), reference)
        assert children[0].category == "SC"
        assert children[0].category in reference.valid_categories

    def test_non_composite_is_returned_as_is(self, reference, record_factory) -> None:
        record = record_factory()
        assert split_record(record, reference) == [record]

    def test_children_are_not_split_again(self, reference, record_factory) -> None:
        child = split_record(composite(record_factory), reference)[0]
        again = replace(child, study_description="TC ABDOME E PELVE")
        assert split_record(again, reference) == [again]

    def test_batch_counts(self, reference, record_factory) -> None:
        outcome = split_records([composite(record_factory), record_factory()], reference)
        assert outcome.parents_split == 1
        assert outcome.children_created == 2
        assert len(outcome.records) == 3
        assert outcome.by_parent == {"TC ABDOME E PELVE": 1}


# ---------------------------------------------------------------------------
# Price resolver
# ---------------------------------------------------------------------------


class TestPriceResolver:
    def test_direct_price(self, reference) -> None:
        assert lookup_price("RM CRANIO", reference) == (Decimal("120.00"), PriceStatus.RESOLVED)

    def test_child_with_own_price_resolves_directly(self, reference) -> None:
        assert lookup_price("TC ABDOME", reference) == (Decimal("85.00"), PriceStatus.RESOLVED)

    def test_child_without_price_falls_back_to_parent(self, reference) -> None:
        assert lookup_price("TC PELVE", reference) == (Decimal("150.00"), PriceStatus.RESOLVED_VIA_SPLIT)

    def test_unknown_description_is_unresolved(self, reference) -> None:
        assert lookup_price("RM PUNHO", reference) == (None, PriceStatus.UNRESOLVED)

    def test_negative_price_never_resolves(self, reference) -> None:
        reference.prices["US ABDOME"] = Decimal("-1")
        assert lookup_price("US ABDOME", reference) == (None, PriceStatus.UNRESOLVED)

    def test_resolution_is_idempotent(self, reference, record_factory) -> None:
        priced = resolve_price(record_factory(), reference)
        assert priced.unit_value == Decimal("120.00")
        assert resolve_price(priced, reference) is priced

    def test_unresolved_is_not_a_rejection(self, reference, record_factory) -> None:
        outcome = resolve_prices(
            [record_factory(), record_factory(study_description="RM PUNHO"), record_factory(study_description="TC PELVE")],
            reference,
        )
        assert len(outcome.records) == 3
        assert (outcome.resolved, outcome.resolved_via_split, outcome.unresolved) == (1, 1, 1)
        assert outcome.unresolved_descriptions == {"RM PUNHO": 1}
