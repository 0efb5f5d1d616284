#!/usr/bin/env python3
"""
Run one upload end to end locally, without Celery.

Stages the file, then drains the background phase in-process and
prints the batch counters.

Usage:
    cd backend
    python -m scripts.run_local <file> <source_type> [period_reference]

    python -m scripts.run_local volumetria.xlsx volumetria_padrao_retroativo jun/25
"""

import asyncio
import sys
import uuid

from volumetria.core.config import settings
from volumetria.core.logging import setup_logging
from volumetria.db.session import async_session
from volumetria.repositories import uploads as uploads_repo
from volumetria.services import orchestrator


def _print_batch(batch) -> None:
    print("\n" + "=" * 70)
    print(f"  Upload {batch.id}  [{batch.status}]")
    print("=" * 70)
    for name in ("records_staged", "records_processed", "records_inserted", "records_rejected", "records_excluded"):
        print(f"  {name:<20} {getattr(batch, name)}")
    if batch.error_detail:
        print(f"  error: {batch.error_detail}")


async def main(file_path: str, source_type: str, period_reference: str | None) -> None:
    setup_logging(settings.LOG_LEVEL)

    # Run Phase B inline instead of queueing it
    orchestrator.dispatch_background = lambda upload_id: "inline"

    async with async_session() as db:
        outcome = await orchestrator.trigger_ingestion(
            db,
            file_path=file_path,
            source_type=source_type,
            period_reference=period_reference,
        )
    if not outcome["success"]:
        print(f"Staging failed at {outcome.get('stage')}: {outcome.get('error')}")
        return

    upload_id = uuid.UUID(outcome["uploadId"])
    await orchestrator.run_background(upload_id, session_factory=async_session)

    async with async_session() as db:
        batch = await uploads_repo.get_upload_batch_or_raise(db, upload_id)
        _print_batch(batch)


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
