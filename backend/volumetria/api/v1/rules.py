"""
Rule endpoints — list the rule table and re-run rules on committed data.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.api.deps import get_actor, get_db
from volumetria.api.schemas.rules import ApplyRuleRequest, ApplyRuleResponse, RuleDescription
from volumetria.pipeline.rules import RULESET_VERSION, describe_rules
from volumetria.services import orchestrator

router = APIRouter(prefix="/rules", tags=["Rules"])


@router.get("")
async def list_rules() -> dict[str, object]:
    """The versioned rule table, in execution order."""
    return {
        "version": RULESET_VERSION,
        "data": [RuleDescription(**rule) for rule in describe_rules()],
    }


@router.post("/apply", response_model=ApplyRuleResponse)
async def apply_rule(
    payload: ApplyRuleRequest,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    """
    Re-run a rule code, tier name, `all`, an exclusion (v002/v003/v031)
    or a rule group (quebra_exames, resolucao_precos).
    """
    return await orchestrator.apply_rule(
        db,
        regra=payload.regra,
        arquivo_fonte=payload.arquivo_fonte,
        lote_upload=payload.lote_upload,
        periodo_referencia=payload.periodo_referencia,
        forcar_aplicacao=payload.forcar_aplicacao,
        actor=actor,
    )
