"""
ReferenceData — read-only snapshot of every lookup table the rules need.

Loaded once per background invocation (load_reference_data) and then
passed to pure rule functions.  External edits made while a batch is
running are picked up by the next invocation; no locking is assumed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.core.config import Settings, settings as default_settings
from volumetria.core.constants import ClientStatus, ClientType
from volumetria.core.logging import get_logger
from volumetria.db.models import (
    ClientAlias,
    ClientRegistry,
    ExamCatalog,
    PhysicianAlias,
    PriceReference,
    PriorityMapping,
    SpecialtyMapping,
    SplitRule,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    name: str
    client_type: str = ClientType.CO.value
    status: str = ClientStatus.ACTIVE.value
    billed_specialties: frozenset[str] = frozenset()
    billed_descriptions: frozenset[str] = frozenset()
    billed_physicians: frozenset[str] = frozenset()

    @property
    def is_nc(self) -> bool:
        return self.client_type == ClientType.NC.value


@dataclass(frozen=True)
class CatalogEntry:
    modality: str | None = None
    specialty: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class SplitChild:
    description: str
    category: str | None = None


@dataclass(frozen=True)
class AliasEntry:
    alias: str
    canonical_name: str
    match_type: str = "exact"


@dataclass
class ReferenceData:
    """Everything a rule may consult, keyed for O(1) lookups."""

    clients: dict[str, ClientInfo] = field(default_factory=dict)
    client_aliases: list[AliasEntry] = field(default_factory=list)
    exam_catalog: dict[str, CatalogEntry] = field(default_factory=dict)
    priority_map: dict[str, str] = field(default_factory=dict)
    # (source_specialty, modality or None) → target
    specialty_map: dict[tuple[str, str | None], str] = field(default_factory=dict)
    physician_aliases: dict[str, str] = field(default_factory=dict)
    split_rules: dict[str, list[SplitChild]] = field(default_factory=dict)
    prices: dict[str, Decimal] = field(default_factory=dict)

    # From settings
    excluded_client_names: frozenset[str] = frozenset()
    excluded_client_patterns: tuple[str, ...] = ()
    valid_modalities: frozenset[str] = frozenset()
    valid_specialties: frozenset[str] = frozenset()
    valid_categories: frozenset[str] = frozenset()
    valid_priorities: frozenset[str] = frozenset()
    nc_billed_specialties: frozenset[str] = frozenset()
    nc_billed_descriptions: frozenset[str] = frozenset()

    _split_parent_of: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._split_parent_of = {
            child.description: parent
            for parent, children in self.split_rules.items()
            for child in children
        }

    def split_parent_of(self, description: str) -> str | None:
        """Composite description that `description` was split from, if any."""
        return self._split_parent_of.get(description)

    def client(self, name: str) -> ClientInfo | None:
        return self.clients.get(name)

    @classmethod
    def from_settings(cls, config: Settings | None = None, **tables) -> ReferenceData:
        """Build with vocabularies and client exclusions from settings."""
        config = config or default_settings
        return cls(
            excluded_client_names=frozenset(n.upper() for n in config.EXCLUDED_CLIENT_NAMES),
            excluded_client_patterns=tuple(p.upper() for p in config.EXCLUDED_CLIENT_PATTERNS),
            valid_modalities=frozenset(config.VALID_MODALITIES),
            valid_specialties=frozenset(config.VALID_SPECIALTIES),
            valid_categories=frozenset(config.VALID_CATEGORIES),
            valid_priorities=frozenset(config.VALID_PRIORITIES),
            nc_billed_specialties=frozenset(config.NC_BILLED_SPECIALTIES),
            nc_billed_descriptions=frozenset(d.upper() for d in config.NC_BILLED_DESCRIPTIONS),
            **tables,
        )


def _upper_set(values) -> frozenset[str]:
    return frozenset(str(v).strip().upper() for v in (values or []) if str(v).strip())


async def load_reference_data(db: AsyncSession, config: Settings | None = None) -> ReferenceData:
    """Read all reference tables into one snapshot."""
    clients = {
        row.name.strip().upper(): ClientInfo(
            name=row.name.strip().upper(),
            client_type=row.client_type,
            status=row.status,
            billed_specialties=_upper_set(row.billed_specialties),
            billed_descriptions=_upper_set(row.billed_descriptions),
            billed_physicians=_upper_set(row.billed_physicians),
        )
        for row in (await db.execute(select(ClientRegistry))).scalars()
    }

    aliases = [
        AliasEntry(
            alias=row.alias.strip().upper(),
            canonical_name=row.canonical_name.strip().upper(),
            match_type=row.match_type,
        )
        for row in (await db.execute(select(ClientAlias))).scalars()
    ]

    catalog = {
        row.study_description.strip().upper(): CatalogEntry(
            modality=(row.modality or "").upper() or None,
            specialty=(row.specialty or "").upper() or None,
            category=(row.category or "").upper() or None,
        )
        for row in (
            await db.execute(select(ExamCatalog).where(ExamCatalog.active.is_(True)))
        ).scalars()
    }

    priority_map = {
        row.raw_value.strip().upper(): row.canonical_value.strip().upper()
        for row in (await db.execute(select(PriorityMapping))).scalars()
    }

    specialty_map = {
        (row.source_specialty.strip().upper(), (row.modality or "").upper() or None): row.target_specialty.strip().upper()
        for row in (await db.execute(select(SpecialtyMapping))).scalars()
    }

    physician_aliases = {
        row.alias.strip().upper(): row.canonical_name.strip()
        for row in (await db.execute(select(PhysicianAlias))).scalars()
    }

    split_rules: dict[str, list[SplitChild]] = {}
    split_rows = (
        await db.execute(
            select(SplitRule)
            .where(SplitRule.active.is_(True))
            .order_by(SplitRule.exame_original, SplitRule.exame_quebrado)
        )
    ).scalars()
    for row in split_rows:
        split_rules.setdefault(row.exame_original.strip().upper(), []).append(
            SplitChild(
                description=row.exame_quebrado.strip().upper(),
                category=(row.categoria_quebrada or "").strip().upper() or None,
            )
        )

    prices: dict[str, Decimal] = {}
    ignored_negative = 0
    for row in (
        await db.execute(select(PriceReference).where(PriceReference.active.is_(True)))
    ).scalars():
        value = Decimal(row.unit_value)
        if value < 0:
            ignored_negative += 1
            continue
        prices[row.study_description.strip().upper()] = value

    reference = ReferenceData.from_settings(
        config,
        clients=clients,
        client_aliases=aliases,
        exam_catalog=catalog,
        priority_map=priority_map,
        specialty_map=specialty_map,
        physician_aliases=physician_aliases,
        split_rules=split_rules,
        prices=prices,
    )

    logger.info(
        "Reference data loaded",
        clients=len(clients),
        aliases=len(aliases),
        catalog=len(catalog),
        split_parents=len(split_rules),
        prices=len(prices),
        ignored_negative_prices=ignored_negative,
    )
    return reference
