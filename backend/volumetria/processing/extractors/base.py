"""
Abstract base class for all extractors, plus header normalisation.

Extractors return one dict per data row keyed by the canonical
volumetry column names (EMPRESA, NOME_PACIENTE, ...).  Unknown columns
are kept under their normalised header so nothing in the extract is
lost before staging.
"""

from __future__ import annotations

import unicodedata
from abc import ABC, abstractmethod
from typing import Any, Iterable

from volumetria.core.constants import EXPECTED_COLUMNS, REQUIRED_COLUMNS
from volumetria.pipeline.errors import ExtractionError

# Header spellings seen in the wild → canonical column
HEADER_ALIASES: dict[str, str] = {
    "CLIENTE": "EMPRESA",
    "NOME PACIENTE": "NOME_PACIENTE",
    "PACIENTE": "NOME_PACIENTE",
    "CODIGO PACIENTE": "CODIGO_PACIENTE",
    "COD PACIENTE": "CODIGO_PACIENTE",
    "ESTUDO DESCRICAO": "ESTUDO_DESCRICAO",
    "DESCRICAO ESTUDO": "ESTUDO_DESCRICAO",
    "ACCESSION": "ACCESSION_NUMBER",
    "ACCESSION NUMBER": "ACCESSION_NUMBER",
    "MEDICO LAUDADOR": "MEDICO",
    "DATA REALIZACAO": "DATA_REALIZACAO",
    "HORA REALIZACAO": "HORA_REALIZACAO",
    "DATA LAUDO": "DATA_LAUDO",
    "HORA LAUDO": "HORA_LAUDO",
    "VALOR": "VALORES",
}


def normalize_header(header: Any) -> str:
    """Upper-case, accent-free, trimmed header mapped to its canonical name."""
    if header is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(header))
    text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    text = " ".join(text.strip().upper().split())
    if text in HEADER_ALIASES:
        return HEADER_ALIASES[text]
    underscored = text.replace(" ", "_")
    if underscored in EXPECTED_COLUMNS:
        return underscored
    spaced = text.replace("_", " ")
    return HEADER_ALIASES.get(spaced, underscored)


def check_required_columns(headers: Iterable[str], filepath: str) -> None:
    """Raise ExtractionError when a required column is absent."""
    present = set(headers)
    missing = [column for column in REQUIRED_COLUMNS if column not in present]
    if missing:
        raise ExtractionError(
            f"Missing required columns: {', '.join(missing)}",
            details={"file": filepath, "missing": missing, "found": sorted(present)},
        )


def build_rows(headers: list[str], rows: Iterable[Iterable[Any]]) -> list[dict[str, Any]]:
    """Zip data rows with normalised headers; blank header cells are dropped."""
    output: list[dict[str, Any]] = []
    for values in rows:
        row: dict[str, Any] = {}
        for header, value in zip(headers, values):
            if not header:
                continue
            if isinstance(value, str):
                value = value.strip() or None
            row[header] = value
        output.append(row)
    return output


class BaseExtractor(ABC):
    """Base interface for volumetry extract readers."""

    @abstractmethod
    def extract(self, filepath: str) -> list[dict[str, Any]]:
        """Read every data row of the file. Returns list of raw dicts."""
        ...

    @abstractmethod
    def supports_format(self, format_type: str) -> bool:
        """Return True if this extractor handles the given format type."""
        ...
