"""
tests/test_rules.py

Unit tests for the versioned rule table and its single executor.

Pure Python: an in-memory ReferenceData snapshot, no database.

Coverage
--------
- Identity tier: required fields, name normalization, excluded clients,
  built-in and contains aliases, _TELE suffix, Santa Helena, P- prefix,
  physician aliases
- Modality tier: catalog override, breast exams, keywords, description
  prefix, legacy CR/DX/OT/BMD remap
- Specialty tier: catalog, synonym defaults, DB overrides (global and
  per modality), MAMO/MAMA divergence, densitometry, modality default
- Category and priority tiers
- CEMVALENCA routing reads the normalized priority and modality
- Billing type (CO-FT / NC-FT / NC-NF)
- Validation (vocabularies, client registry, pending clients)
- Executor: table order, skip-if-applied, forced re-application is a
  no-op, rejections isolate one record
- Selector resolution (all / tier / code / unknown)
"""

from __future__ import annotations

import pytest

from volumetria.core.constants import RejectionReason
from volumetria.pipeline.errors import RuleNotFoundError
from volumetria.pipeline.reference import ReferenceData
from volumetria.pipeline.rules import RULE_TABLE, apply_rules, apply_rules_to_batch, rules_for


def run(record, reference, selector="all", force=False):
    return apply_rules(record, reference, rules=rules_for(selector), force=force)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentityTier:
    def test_empty_description_is_rejected(self, reference, record_factory) -> None:
        outcome = run(record_factory(study_description=""), reference, "identity")
        assert outcome.rejected
        assert outcome.rejection.reason == RejectionReason.MISSING_REQUIRED_FIELD
        assert outcome.rejection.rule_code == "v017"

    def test_builtin_alias_after_normalization(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="  cedi-rj "), reference, "identity")
        assert outcome.record.client_name == "CEDIDIAG"

    def test_contains_alias_from_reference(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="CLINICA CEDI CENTRO"), reference, "identity")
        assert outcome.record.client_name == "CEDIDIAG"

    @pytest.mark.parametrize("client", ["CLINICA SERCOR", "INMED", "PACIENTE TESTE LTDA"])
    def test_excluded_clients_are_rejected(self, reference, record_factory, client) -> None:
        outcome = run(record_factory(client_name=client), reference, "identity")
        assert outcome.rejection.reason == RejectionReason.EXCLUDED_CLIENT
        assert outcome.rejection.rule_code == "v004"

    def test_tele_suffix_is_stripped(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="HOSPITAL XYZ_TELE"), reference, "identity")
        assert outcome.record.client_name == "HOSPITAL XYZ"

    def test_santa_helena_variants_are_grouped(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="HOSP SANTA HELENA UNID 2"), reference, "identity")
        assert outcome.record.client_name == "HOSPITAL SANTA HELENA"

    def test_cemvalenca_mg_prefix_is_dropped(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="P-CEMVALENCA_MG"), reference, "identity")
        assert outcome.record.client_name == "CEMVALENCA_MG"

    def test_physician_alias(self, reference, record_factory) -> None:
        outcome = run(record_factory(physician="Dr. House"), reference, "identity")
        assert outcome.record.physician == "DR HOUSE"


# ---------------------------------------------------------------------------
# Modality
# ---------------------------------------------------------------------------


class TestModalityTier:
    def test_catalog_overrides_extract(self, reference, record_factory) -> None:
        outcome = run(record_factory(modality="CT"), reference, "modality")
        assert outcome.record.modality == "MR"

    def test_radiography_breast_exam_becomes_mg(self, reference, record_factory) -> None:
        record = record_factory(study_description="MAMOGRAFIA BILATERAL", modality="DX")
        assert run(record, reference, "modality").record.modality == "MG"

    def test_tomosynthesis_keyword(self, reference, record_factory) -> None:
        record = record_factory(study_description="TOMOSSINTESE MAMARIA", modality="CR")
        assert run(record, reference, "modality").record.modality == "MG"

    def test_description_prefix_enforces_modality(self, reference, record_factory) -> None:
        record = record_factory(study_description="TC TORAX", modality="MR")
        assert run(record, reference, "modality").record.modality == "CT"

    @pytest.mark.parametrize(
        "raw, expected",
        [("DX", "RX"), ("CR", "RX"), ("OT", "DO"), ("BMD", "DO")],
    )
    def test_legacy_modalities(self, reference, record_factory, raw, expected) -> None:
        record = record_factory(study_description="EXAME SEM PREFIXO", modality=raw)
        assert run(record, reference, "modality").record.modality == expected


# ---------------------------------------------------------------------------
# Specialty
# ---------------------------------------------------------------------------


class TestSpecialtyTier:
    def test_catalog_specialty(self, reference, record_factory) -> None:
        assert run(record_factory(specialty=""), reference, "specialty").record.specialty == "NEURO"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("TÓRAX", "MEDICINA INTERNA"),
            ("ANGIOTCS", "MEDICINA INTERNA"),
            ("CABEÇA-PESCOÇO", "NEURO"),
            ("CARDIO COM SCORE", "CARDIO"),
        ],
    )
    def test_default_synonyms(self, reference, record_factory, raw, expected) -> None:
        record = record_factory(study_description="TC TORAX", modality="CT", specialty=raw)
        assert run(record, reference, "specialty").record.specialty == expected

    def test_medicina_interna_is_left_alone_by_default(self, reference, record_factory) -> None:
        record = record_factory(study_description="TC TORAX", modality="CT", specialty="MEDICINA INTERNA")
        assert run(record, reference, "specialty").record.specialty == "MEDICINA INTERNA"

    def test_configured_mapping_overrides_defaults(self, record_factory) -> None:
        reference = ReferenceData(specialty_map={("MEDICINA INTERNA", None): "CLINICA MEDICA"})
        record = record_factory(study_description="TC TORAX", modality="CT", specialty="TÓRAX")
        outcome = apply_rules(record, reference, rules=rules_for("v007"))
        # TÓRAX → MEDICINA INTERNA (default) → CLINICA MEDICA (configured)
        assert outcome.record.specialty == "CLINICA MEDICA"

    def test_configured_mapping_per_modality(self, record_factory) -> None:
        reference = ReferenceData(specialty_map={("CORPO", "MR"): "MUSCULO ESQUELETICO"})
        mr = record_factory(study_description="RM JOELHO", modality="MR", specialty="CORPO")
        ct = record_factory(study_description="TC ABDOME", modality="CT", specialty="CORPO")
        assert apply_rules(mr, reference, rules=rules_for("v007")).record.specialty == "MUSCULO ESQUELETICO"
        assert apply_rules(ct, reference, rules=rules_for("v007")).record.specialty == "MEDICINA INTERNA"

    def test_mammography_and_breast_mri_divergence(self, reference, record_factory) -> None:
        mg = record_factory(study_description="MAMOGRAFIA DIGITAL", modality="MG", specialty="MAMA")
        mr = record_factory(study_description="RM MAMAS", modality="MR", specialty="MAMO")
        assert run(mg, reference, "specialty").record.specialty == "MAMO"
        assert run(mr, reference, "specialty").record.specialty == "MAMA"

    def test_densitometry(self, reference, record_factory) -> None:
        record = record_factory(study_description="DENSITOMETRIA OSSEA", modality="DO", specialty="")
        assert run(record, reference, "specialty").record.specialty == "D.O"

    def test_empty_specialty_from_modality(self, reference, record_factory) -> None:
        record = record_factory(study_description="TC ABDOME", modality="CT", specialty="")
        assert run(record, reference, "specialty").record.specialty == "TC"


# ---------------------------------------------------------------------------
# Category / priority
# ---------------------------------------------------------------------------


class TestCategoryTier:
    def test_catalog_category_overrides(self, reference, record_factory) -> None:
        assert run(record_factory(category="CC"), reference, "category").record.category == "SC"

    def test_oncology_keyword(self, reference, record_factory) -> None:
        record = record_factory(study_description="PET CT ONCOLOGICO", category="")
        assert run(record, reference, "category").record.category == "ONCO"

    def test_default_sc(self, reference, record_factory) -> None:
        record = record_factory(study_description="TC ABDOME", category="")
        assert run(record, reference, "category").record.category == "SC"


class TestPriorityTier:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("EMERG PS", "URGENTE"),
            ("URG", "URGENTE"),
            ("EMERGÊNCIA", "URGENTE"),
            ("PLANTAO", "PLANTÃO"),
            ("PLANTÃO NOTURNO", "PLANTÃO"),
            ("AMBULATORIO", "ROTINA"),
            ("", "ROTINA"),
            ("XPTO", "ROTINA"),
        ],
    )
    def test_priority_normalization(self, reference, record_factory, raw, expected) -> None:
        assert run(record_factory(priority=raw), reference, "priority").record.priority == expected


# ---------------------------------------------------------------------------
# Routing / billing
# ---------------------------------------------------------------------------


class TestCemvalencaRouting:
    def test_on_call_goes_to_pl_bucket(self, reference, record_factory) -> None:
        record = record_factory(
            client_name="CEMVALENCA",
            study_description="TC TORAX",
            modality="CT",
            specialty="MEDICINA INTERNA",
            priority="PLANTAO",
        )
        outcome = apply_rules(record, reference)
        assert not outcome.rejected
        assert outcome.record.client_name == "CEMVALENCA_PL"
        assert outcome.record.billing_type == "NC-FT"

    def test_rx_goes_to_rx_bucket(self, reference, record_factory) -> None:
        record = record_factory(
            client_name="CEMVALENCA_PL",
            study_description="RX TORAX",
            modality="DX",
            specialty="RX",
            priority="ROTINA",
        )
        assert apply_rules(record, reference).record.client_name == "CEMVALENCA_RX"

    def test_misbucketed_rows_return_to_base(self, reference, record_factory) -> None:
        record = record_factory(
            client_name="CEMVALENCA_RX",
            study_description="TC TORAX",
            modality="CT",
            specialty="MEDICINA INTERNA",
            priority="ROTINA",
        )
        outcome = apply_rules(record, reference)
        assert outcome.record.client_name == "CEMVALENCA"
        assert outcome.record.billing_type == "NC-NF"

    def test_other_clients_untouched(self, reference, record_factory) -> None:
        record = record_factory(priority="PLANTÃO")
        assert run(record, reference, "routing").record.client_name == "CEDIDIAG"


class TestBillingTier:
    def test_co_client(self, reference, record_factory) -> None:
        assert run(record_factory(), reference, "f005").record.billing_type == "CO-FT"

    def test_unregistered_client_defaults_to_co(self, reference, record_factory) -> None:
        record = record_factory(client_name="DESCONHECIDA")
        assert run(record, reference, "f005").record.billing_type == "CO-FT"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"specialty": "CARDIO"},
            {"specialty": "NEURO"},
            {"specialty": "US", "priority": "PLANTÃO"},
            {"specialty": "US", "physician": "DR HOUSE"},
            {"specialty": "US", "study_description": "RM CRANIO NEUROBRAIN"},
        ],
    )
    def test_nc_billed_triggers(self, reference, record_factory, overrides) -> None:
        record = record_factory(client_name="HOSPITAL NC", **overrides)
        assert run(record, reference, "f005").record.billing_type == "NC-FT"

    def test_nc_not_billed(self, reference, record_factory) -> None:
        record = record_factory(client_name="HOSPITAL NC", specialty="US", study_description="US ABDOME")
        assert run(record, reference, "f005").record.billing_type == "NC-NF"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidationTier:
    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"modality": "XX"}, RejectionReason.INVALID_MODALITY),
            ({"specialty": "ODONTO"}, RejectionReason.INVALID_SPECIALTY),
            ({"category": "ZZ"}, RejectionReason.INVALID_CATEGORY),
            ({"priority": "ALTA"}, RejectionReason.INVALID_PRIORITY),
            ({"client_name": "DESCONHECIDA"}, RejectionReason.CLIENT_NOT_FOUND),
            ({"client_name": "CLINICA FECHADA"}, RejectionReason.CLIENT_INACTIVE),
        ],
    )
    def test_rejections(self, reference, record_factory, overrides, reason) -> None:
        outcome = run(record_factory(**overrides), reference, "validation")
        assert outcome.rejection.reason == reason

    def test_pending_client_passes_unresolved(self, reference, record_factory) -> None:
        outcome = run(record_factory(client_name="CLINICA NOVA"), reference, "validation")
        assert not outcome.rejected
        assert outcome.record.client_unresolved is True


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class TestExecutor:
    def test_full_table_in_order(self, reference, record_factory) -> None:
        outcome = apply_rules(record_factory(), reference)
        assert outcome.record.applied_rules == tuple(rule.code for rule in RULE_TABLE)

    def test_second_pass_skips_applied_rules(self, reference, record_factory) -> None:
        first = apply_rules(record_factory(), reference)
        second = apply_rules(first.record, reference)
        assert second.applied == []
        assert len(second.skipped) == len(RULE_TABLE)
        assert second.record == first.record

    def test_forced_reapplication_is_a_noop(self, reference, record_factory) -> None:
        first = apply_rules(record_factory(client_name="cedi-ro", priority="urg"), reference)
        forced = apply_rules(first.record, reference, force=True)
        assert forced.record == first.record
        assert forced.changed is False

    def test_rejection_does_not_stop_batch(self, reference, record_factory) -> None:
        outcome = apply_rules_to_batch(
            [record_factory(), record_factory(client_name="INMED"), record_factory(patient_name="JOAO")],
            reference,
        )
        assert len(outcome.accepted) == 2
        assert len(outcome.rejected) == 1
        assert outcome.rejected[0][1].rule_code == "v004"


class TestSelectors:
    def test_all(self) -> None:
        assert rules_for("all") == RULE_TABLE

    def test_tier_keeps_table_order(self) -> None:
        assert [rule.code for rule in rules_for("specialty")] == ["v031s", "v007", "v044", "v007d", "v012"]

    def test_code_is_case_insensitive(self) -> None:
        assert [rule.code for rule in rules_for("V007")] == ["v007"]

    def test_unknown_selector(self) -> None:
        with pytest.raises(RuleNotFoundError):
            rules_for("v999")
