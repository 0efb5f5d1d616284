"""
In-memory exam record carried through the background phase.

ExamRecord is an immutable value: rules, the splitter and the price
resolver all return new instances via dataclasses.replace(), so a
rule can never half-mutate a record before rejecting it.

Raw staged payloads are turned into ExamRecords by record_from_payload(),
which is also where malformed dates are caught as rejections.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from volumetria.core.constants import RejectionReason

EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_MAX_SERIAL = 2958465     # 9999-12-31

_DATE_FORMATS = ("%d/%m/%Y", "%d/%m/%y", "%Y-%m-%d", "%d-%m-%Y", "%Y/%m/%d")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?")


@dataclass(frozen=True)
class ExamRecord:
    """One billable imaging exam event."""

    client_name: str
    patient_name: str
    study_description: str
    modality: str = ""
    specialty: str = ""
    category: str = ""
    priority: str = ""
    physician: str = ""
    patient_code: str | None = None
    accession_number: str | None = None
    quantity: int = 1

    realization_date: date | None = None
    realization_time: str | None = None
    report_date: date | None = None
    report_time: str | None = None

    unit_value: Decimal | None = None
    price_status: str | None = None
    billing_type: str | None = None

    source_file: str = ""
    upload_batch_id: uuid.UUID | None = None
    period_reference: str | None = None
    staged_record_id: uuid.UUID | None = None
    row_number: int | None = None

    applied_rules: tuple[str, ...] = ()
    client_unresolved: bool = False
    split_from: str | None = None

    def with_rule(self, code: str) -> ExamRecord:
        """Record that `code` has been applied (once)."""
        if code in self.applied_rules:
            return self
        return replace(self, applied_rules=self.applied_rules + (code,))

    @classmethod
    def from_row(cls, row: Any) -> ExamRecord:
        """Rebuild from a committed exam_records row (store-level re-runs)."""
        return cls(
            client_name=row.client_name,
            patient_name=row.patient_name,
            study_description=row.study_description,
            modality=row.modality or "",
            specialty=row.specialty or "",
            category=row.category or "",
            priority=row.priority or "",
            physician=row.physician or "",
            patient_code=row.patient_code,
            accession_number=row.accession_number,
            quantity=row.quantity or 1,
            realization_date=row.realization_date,
            realization_time=row.realization_time,
            report_date=row.report_date,
            report_time=row.report_time,
            unit_value=Decimal(row.unit_value) if row.unit_value is not None else None,
            price_status=row.price_status,
            billing_type=row.billing_type,
            source_file=row.source_file,
            upload_batch_id=row.upload_batch_id,
            period_reference=row.period_reference,
            staged_record_id=row.staged_record_id,
            applied_rules=tuple(row.applied_rules or ()),
            client_unresolved=bool(row.client_unresolved),
            split_from=row.split_from,
        )

    def to_row(self, ruleset_version: str) -> dict[str, Any]:
        """Column values for the canonical exam_records table."""
        return {
            "upload_batch_id": self.upload_batch_id,
            "staged_record_id": self.staged_record_id,
            "source_file": self.source_file,
            "period_reference": self.period_reference,
            "client_name": self.client_name,
            "patient_name": self.patient_name,
            "patient_code": self.patient_code,
            "accession_number": self.accession_number,
            "physician": self.physician or None,
            "study_description": self.study_description,
            "modality": self.modality,
            "specialty": self.specialty,
            "category": self.category,
            "priority": self.priority,
            "quantity": self.quantity,
            "realization_date": self.realization_date,
            "realization_time": self.realization_time,
            "report_date": self.report_date,
            "report_time": self.report_time,
            "billing_type": self.billing_type,
            "unit_value": self.unit_value,
            "price_status": self.price_status,
            "applied_rules": list(self.applied_rules),
            "ruleset_version": ruleset_version,
            "client_unresolved": self.client_unresolved,
            "split_from": self.split_from,
        }


@dataclass(frozen=True)
class Rejection:
    """Why a record was diverted to RejectedRecord."""

    reason: RejectionReason
    rule_code: str | None = None
    message: str = ""


@dataclass
class RejectedItem:
    """A rejection tied to the staged row it came from."""

    rejection: Rejection
    staged_record_id: uuid.UUID | None
    row_number: int | None
    raw_payload: dict[str, Any] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════
#  Value parsing
# ═══════════════════════════════════════════════════════════

def clean_text(value: Any) -> str:
    """Trimmed string form of a cell; empty for None."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_date(value: Any) -> date | None:
    """
    Parse a date cell.

    Accepts date/datetime objects, Excel serial numbers, ISO strings and
    Brazilian dd/mm/yyyy.  Empty → None.  Raises ValueError otherwise.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a date: {value!r}")
    if isinstance(value, (int, float)):
        return _from_number(value)

    text = str(value).strip()
    if not text:
        return None
    # "2025-06-10T14:03:00" / "10/06/2025 14:03"
    head = text.replace("T", " ").split(" ")[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


def _from_number(value: int | float) -> date:
    """Excel serial day number, or a yyyymmdd integer typed into a numeric cell."""
    if not math.isfinite(value):
        raise ValueError(f"Not a date: {value!r}")
    number = int(value)
    if 0 < number <= EXCEL_MAX_SERIAL:
        return EXCEL_EPOCH + timedelta(days=number)
    try:
        return datetime.strptime(str(number), "%Y%m%d").date()
    except ValueError:
        raise ValueError(f"Date number out of range: {value!r}") from None


def parse_time(value: Any) -> str | None:
    """Normalise a time cell to HH:MM:SS; unparseable values become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%H:%M:%S")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and 0 <= value < 1:
        seconds = round(value * 86400)
        return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"

    text = clean_text(value).replace("T", " ")
    if " " in text:
        text = text.split(" ")[-1]
    match = _TIME_PATTERN.match(text)
    if not match:
        return None
    hours, minutes, seconds = match.group(1), match.group(2), match.group(3) or "00"
    return f"{int(hours):02d}:{minutes}:{seconds}"


def parse_quantity(value: Any) -> int:
    """VALORES column: number of exams in the row (defaults to 1)."""
    text = clean_text(value)
    if not text:
        return 1
    number = float(text.replace(",", "."))
    if not math.isfinite(number):
        raise ValueError(f"Not a quantity: {value!r}")
    if number < 0:
        raise ValueError(f"Negative quantity: {value!r}")
    return int(number)


def record_from_payload(
    payload: dict[str, Any],
    *,
    source_file: str,
    upload_batch_id: uuid.UUID | None = None,
    period_reference: str | None = None,
    staged_record_id: uuid.UUID | None = None,
    row_number: int | None = None,
) -> ExamRecord | Rejection:
    """Build an ExamRecord from a staged raw payload (canonical column names)."""
    try:
        realization_date = parse_date(payload.get("DATA_REALIZACAO"))
        report_date = parse_date(payload.get("DATA_LAUDO"))
    except (ValueError, OverflowError) as exc:
        return Rejection(RejectionReason.MALFORMED_DATE, message=str(exc))

    try:
        quantity = parse_quantity(payload.get("VALORES"))
    except (ValueError, OverflowError) as exc:
        return Rejection(RejectionReason.MALFORMED_ROW, message=str(exc))

    return ExamRecord(
        client_name=clean_text(payload.get("EMPRESA")),
        patient_name=clean_text(payload.get("NOME_PACIENTE")),
        patient_code=clean_text(payload.get("CODIGO_PACIENTE")) or None,
        accession_number=clean_text(payload.get("ACCESSION_NUMBER")) or None,
        study_description=clean_text(payload.get("ESTUDO_DESCRICAO")).upper(),
        modality=clean_text(payload.get("MODALIDADE")).upper(),
        specialty=clean_text(payload.get("ESPECIALIDADE")).upper(),
        category=clean_text(payload.get("CATEGORIA")).upper(),
        priority=clean_text(payload.get("PRIORIDADE")).upper(),
        physician=clean_text(payload.get("MEDICO")),
        quantity=quantity,
        realization_date=realization_date,
        realization_time=parse_time(payload.get("HORA_REALIZACAO")),
        report_date=report_date,
        report_time=parse_time(payload.get("HORA_LAUDO")),
        source_file=source_file,
        upload_batch_id=upload_batch_id,
        period_reference=period_reference,
        staged_record_id=staged_record_id,
        row_number=row_number,
    )
