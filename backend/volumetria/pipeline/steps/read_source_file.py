"""
ReadSourceFileStep — detects the extract format and reads every row.

Sets ctx.detected_format and ctx.raw_rows (dicts keyed by canonical
column names).  A missing file, an unsupported extension or a missing
required column fails the stage.
"""

from __future__ import annotations

import asyncio
import os

from volumetria.core.constants import FileFormat
from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.errors import ExtractionError
from volumetria.pipeline.step import PipelineStep
from volumetria.processing.extractors import get_extractor

logger = get_logger(__name__)

# Extension → format mapping
EXTENSION_MAP: dict[str, FileFormat] = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".xlsx": FileFormat.XLSX,
    ".xlsm": FileFormat.XLSX,
    ".xls": FileFormat.XLS,
}


def detect_format(file_path: str) -> FileFormat | None:
    return EXTENSION_MAP.get(os.path.splitext(file_path)[1].lower())


class ReadSourceFileStep(PipelineStep):
    """Read the uploaded extract into raw row dicts."""

    name = "read_source_file"
    description = "Detect file format and read all rows"
    stage = "staging"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()

        if not ctx.file_path:
            raise self._error(ctx, "No file path on the pipeline context")
        if not os.path.exists(ctx.file_path):
            raise self._error(ctx, f"File not found: {ctx.file_path}", file=ctx.file_path)

        fmt = detect_format(ctx.file_path)
        if fmt is None:
            raise self._error(
                ctx,
                f"Unsupported file type: {os.path.splitext(ctx.file_path)[1] or '(none)'}",
                file=ctx.file_path,
            )
        ctx.detected_format = fmt.value

        try:
            extractor = get_extractor(fmt)
            rows = await asyncio.to_thread(extractor.extract, ctx.file_path)
        except ExtractionError as exc:
            raise self._error(ctx, str(exc), **exc.details) from exc

        ctx.raw_rows = rows
        logger.info(
            "Source file read",
            upload_id=str(ctx.upload_id),
            file=ctx.file_name or os.path.basename(ctx.file_path),
            format=fmt.value,
            rows=len(rows),
        )
        return self._success(started_at, metadata={"format": fmt.value, "rows": len(rows)})
