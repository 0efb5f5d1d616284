"""Format → extractor lookup."""

from __future__ import annotations

from volumetria.pipeline.errors import ExtractionError
from volumetria.processing.extractors.base import BaseExtractor
from volumetria.processing.extractors.csv_extractor import CsvExtractor
from volumetria.processing.extractors.xlsx_extractor import XlsxExtractor

EXTRACTORS: tuple[BaseExtractor, ...] = (CsvExtractor(), XlsxExtractor())


def get_extractor(format_type: str) -> BaseExtractor:
    for extractor in EXTRACTORS:
        if extractor.supports_format(format_type):
            return extractor
    raise ExtractionError(f"No extractor for format {format_type!r}")
