"""
Seed reference tables for development.
Run: python -m scripts.seed_reference  (from backend/)
"""

import asyncio
from decimal import Decimal

from volumetria.core.constants import ClientStatus, ClientType
from volumetria.db.models import ClientAlias, ClientRegistry, ExamCatalog, PriceReference, SplitRule
from volumetria.db.session import async_session


SEED_CLIENTS = [
    {"name": "CEDIDIAG", "client_type": ClientType.CO.value},
    {"name": "HOSPITAL SANTA HELENA", "client_type": ClientType.CO.value},
    {"name": "CEMVALENCA", "client_type": ClientType.NC.value, "billed_specialties": ["NEURO"]},
    {"name": "CEMVALENCA_PL", "client_type": ClientType.NC.value},
    {"name": "CEMVALENCA_RX", "client_type": ClientType.NC.value},
    {"name": "CLINICA NOVA", "status": ClientStatus.PENDING.value},
]

SEED_ALIASES = [
    {"alias": "CEDI", "canonical_name": "CEDIDIAG", "match_type": "contains"},
]

SEED_CATALOG = [
    {"study_description": "RM CRANIO", "modality": "MR", "specialty": "NEURO", "category": "SC"},
    {"study_description": "TC TORAX", "modality": "CT", "specialty": "MEDICINA INTERNA", "category": "SC"},
    {"study_description": "MAMOGRAFIA BILATERAL", "modality": "MG", "specialty": "MAMO", "category": "SC"},
]

SEED_PRICES = [
    {"study_description": "RM CRANIO", "unit_value": Decimal("120.00")},
    {"study_description": "TC TORAX", "unit_value": Decimal("85.00")},
    {"study_description": "TC ABDOME", "unit_value": Decimal("85.00")},
    {"study_description": "TC PELVE", "unit_value": Decimal("85.00")},
    {"study_description": "MAMOGRAFIA BILATERAL", "unit_value": Decimal("40.00")},
]

SEED_SPLITS = [
    {"exame_original": "TC ABDOME E PELVE", "exame_quebrado": "TC ABDOME", "categoria_quebrada": "SC"},
    {"exame_original": "TC ABDOME E PELVE", "exame_quebrado": "TC PELVE", "categoria_quebrada": "SC"},
]


async def seed():
    """Insert seed reference rows."""
    async with async_session() as session:
        session.add_all(ClientRegistry(**data) for data in SEED_CLIENTS)
        session.add_all(ClientAlias(**data) for data in SEED_ALIASES)
        session.add_all(ExamCatalog(**data) for data in SEED_CATALOG)
        session.add_all(PriceReference(**data) for data in SEED_PRICES)
        session.add_all(SplitRule(**data) for data in SEED_SPLITS)
        await session.commit()
    print(
        f"Seeded {len(SEED_CLIENTS)} clients, {len(SEED_CATALOG)} catalog entries, "
        f"{len(SEED_PRICES)} prices, {len(SEED_SPLITS)} split rules."
    )


if __name__ == "__main__":
    asyncio.run(seed())
