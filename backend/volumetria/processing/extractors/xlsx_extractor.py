"""
Spreadsheet reader for volumetry extracts.

Supports both .xls (via xlrd) and .xlsx (via openpyxl).  The header row
is the first row (within the top HEADER_SCAN_ROWS) that carries every
required column; report titles above the table are ignored.
"""

from __future__ import annotations

import os
from typing import Any, Iterator

from volumetria.core.constants import REQUIRED_COLUMNS, FileFormat
from volumetria.core.logging import get_logger
from volumetria.pipeline.errors import ExtractionError
from volumetria.processing.extractors.base import (
    BaseExtractor,
    build_rows,
    check_required_columns,
    normalize_header,
)

logger = get_logger(__name__)

HEADER_SCAN_ROWS = 20


# ═══════════════════════════════════════════════════════════
#  Sheet Adapters: uniform interface over xlrd / openpyxl
# ═══════════════════════════════════════════════════════════

class XlrdSheetAdapter:
    """Adapter for xlrd sheets; date cells come back as datetimes."""

    def __init__(self, workbook) -> None:
        self._book = workbook
        self._s = workbook.sheet_by_index(0)
        self._datemode = workbook.datemode
        self.nrows = self._s.nrows
        self.ncols = self._s.ncols

    def raw_value(self, r: int, c: int) -> Any:
        import xlrd

        value = self._s.cell_value(r, c)
        if value == "":
            return None
        if self._s.cell_type(r, c) == xlrd.XL_CELL_DATE:
            return xlrd.xldate.xldate_as_datetime(value, self._datemode)
        return value

    def rows(self) -> Iterator[list[Any]]:
        for r in range(self.nrows):
            yield [self.raw_value(r, c) for c in range(self.ncols)]

    def close(self) -> None:
        self._book.release_resources()


class OpenpyxlSheetAdapter:
    """Adapter for openpyxl worksheets (values only)."""

    def __init__(self, workbook) -> None:
        self._book = workbook
        self._ws = workbook.active

    def rows(self) -> Iterator[list[Any]]:
        for values in self._ws.iter_rows(values_only=True):
            yield list(values)

    def close(self) -> None:
        self._book.close()


def _load_sheet(path: str):
    """Open the first sheet of an XLS or XLSX file; the caller closes it."""
    extension = os.path.splitext(path)[1].lower()

    if extension == ".xls":
        import xlrd

        return XlrdSheetAdapter(xlrd.open_workbook(path, on_demand=True))

    if extension in (".xlsx", ".xlsm"):
        from openpyxl import load_workbook

        return OpenpyxlSheetAdapter(load_workbook(path, read_only=True, data_only=True))

    raise ExtractionError(f"Unsupported extension: {extension}", details={"file": path})


def _find_header_row(rows: list[list[Any]]) -> int:
    """Index of the first row carrying all required columns (0 if none)."""
    for index, values in enumerate(rows[:HEADER_SCAN_ROWS]):
        headers = {normalize_header(v) for v in values if v is not None}
        if all(column in headers for column in REQUIRED_COLUMNS):
            return index
    return 0


class XlsxExtractor(BaseExtractor):
    def extract(self, filepath: str) -> list[dict[str, Any]]:
        try:
            sheet = _load_sheet(filepath)
            try:
                all_rows = list(sheet.rows())
            finally:
                sheet.close()
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                f"Could not read spreadsheet: {exc}",
                details={"file": filepath},
            ) from exc

        if not all_rows:
            raise ExtractionError("Empty spreadsheet", details={"file": filepath})

        header_row = _find_header_row(all_rows)
        headers = [normalize_header(v) for v in all_rows[header_row]]
        check_required_columns(headers, filepath)

        rows = build_rows(headers, all_rows[header_row + 1:])
        logger.debug("Spreadsheet extracted", file=filepath, rows=len(rows), header_row=header_row)
        return rows

    def supports_format(self, format_type: str) -> bool:
        return format_type in (FileFormat.XLSX, FileFormat.XLS)
