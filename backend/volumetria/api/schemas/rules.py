"""Per-rule invocation schemas (field names follow the operator contract)."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ApplyRuleRequest(BaseModel):
    """
    Re-run one rule, tier, exclusion or rule group on committed records.

    At least one of arquivo_fonte, lote_upload, periodo_referencia must
    be given; the service rejects unscoped invocations.
    """

    regra: str = Field(..., min_length=1, max_length=50)
    arquivo_fonte: str | None = None
    lote_upload: UUID | None = None
    periodo_referencia: str | None = None
    forcar_aplicacao: bool = False


class ApplyRuleResponse(BaseModel):
    sucesso: bool
    registros_atualizados: int
    detalhes: list[Any] = Field(default_factory=list)


class RuleDescription(BaseModel):
    code: str
    tier: str
    description: str
