"""CSV reader for volumetry extracts (';' or ',' delimited)."""

from __future__ import annotations

import csv
from typing import Any

from volumetria.core.constants import FileFormat
from volumetria.core.logging import get_logger
from volumetria.pipeline.errors import ExtractionError
from volumetria.processing.extractors.base import (
    BaseExtractor,
    build_rows,
    check_required_columns,
    normalize_header,
)

logger = get_logger(__name__)

ENCODINGS = ("utf-8-sig", "latin-1")


class CsvExtractor(BaseExtractor):
    def extract(self, filepath: str) -> list[dict[str, Any]]:
        text = self._read_text(filepath)
        if not text.strip():
            raise ExtractionError("Empty file", details={"file": filepath})

        try:
            delimiter = csv.Sniffer().sniff(text[:4096], delimiters=";,\t").delimiter
        except csv.Error:
            delimiter = ";" if text.count(";") > text.count(",") else ","

        reader = csv.reader(text.splitlines(), delimiter=delimiter)
        raw_headers = next(reader, [])
        headers = [normalize_header(h) for h in raw_headers]
        check_required_columns(headers, filepath)

        rows = build_rows(headers, reader)
        logger.debug("CSV extracted", file=filepath, rows=len(rows), delimiter=delimiter)
        return rows

    def supports_format(self, format_type: str) -> bool:
        return format_type == FileFormat.CSV

    @staticmethod
    def _read_text(filepath: str) -> str:
        for encoding in ENCODINGS:
            try:
                with open(filepath, encoding=encoding, newline="") as handle:
                    return handle.read()
            except UnicodeDecodeError:
                continue
        raise ExtractionError("Could not decode file", details={"file": filepath})
