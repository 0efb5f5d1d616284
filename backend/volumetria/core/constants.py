"""Shared constants and enums used across the application."""

from enum import StrEnum


class UploadStatus(StrEnum):
    """Lifecycle of an UploadBatch."""

    PENDING = "pending"
    PROCESSING = "processing"
    STAGING_COMPLETED = "staging_completed"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    ROLLBACK_EXECUTED = "rollback_executed"


class StagedRecordStatus(StrEnum):
    """Per-row status inside the Raw Record Store."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMMITTED = "committed"
    REJECTED = "rejected"
    EXCLUDED = "excluded"
    ERROR = "error"


class PipelineStatus(StrEnum):
    """Overall status of a pipeline execution."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StepStatus(StrEnum):
    """Status of an individual pipeline step."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    RETRYING = "RETRYING"


class SourceType(StrEnum):
    """The five ingestion channels."""

    PADRAO = "volumetria_padrao"
    FORA_PADRAO = "volumetria_fora_padrao"
    PADRAO_RETROATIVO = "volumetria_padrao_retroativo"
    FORA_PADRAO_RETROATIVO = "volumetria_fora_padrao_retroativo"
    ONCO_PADRAO = "volumetria_onco_padrao"

    @property
    def is_retroactive(self) -> bool:
        return self.value.endswith("_retroativo")


class BillingType(StrEnum):
    """Billing classification of an exam."""

    CO_FT = "CO-FT"
    NC_FT = "NC-FT"
    NC_NF = "NC-NF"


class ClientType(StrEnum):
    CO = "CO"
    NC = "NC"


class ClientStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"     # processed with unresolved client, manual follow-up


class PriceStatus(StrEnum):
    RESOLVED = "resolved"
    RESOLVED_VIA_SPLIT = "resolved_via_split"
    UNRESOLVED = "unresolved"


class RuleTier(StrEnum):
    """Dependency tiers of the rule table, in execution order."""

    IDENTITY = "identity"
    MODALITY = "modality"
    SPECIALTY = "specialty"
    CATEGORY = "category"
    PRIORITY = "priority"
    ROUTING = "routing"
    BILLING = "billing"
    VALIDATION = "validation"


class RejectionReason(StrEnum):
    """Structured reasons for record-level rejection."""

    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    LOCAL_CLIENT = "LOCAL_CLIENT"
    EXCLUDED_CLIENT = "EXCLUDED_CLIENT"
    MALFORMED_DATE = "MALFORMED_DATE"
    MALFORMED_ROW = "MALFORMED_ROW"
    INVALID_MODALITY = "INVALID_MODALITY"
    INVALID_SPECIALTY = "INVALID_SPECIALTY"
    INVALID_CATEGORY = "INVALID_CATEGORY"
    INVALID_PRIORITY = "INVALID_PRIORITY"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    CLIENT_INACTIVE = "CLIENT_INACTIVE"


class ExclusionRule(StrEnum):
    """Period exclusion rules (deletions, not rejections)."""

    REPORT_DATE = "v002"
    REALIZATION_DATE = "v003"
    CURRENT_PERIOD = "v031"


class FileFormat(StrEnum):
    """Inbound extract formats."""

    CSV = "CSV"
    XLSX = "XLSX"
    XLS = "XLS"


# Canonical priority values
PRIORITY_ROUTINE = "ROTINA"
PRIORITY_URGENT = "URGENTE"
PRIORITY_ON_CALL = "PLANTÃO"

DEFAULT_CATEGORY = "SC"

# Inbound column names (canonical volumetry header)
REQUIRED_COLUMNS = ("EMPRESA", "NOME_PACIENTE")
EXPECTED_COLUMNS = (
    "EMPRESA",
    "NOME_PACIENTE",
    "CODIGO_PACIENTE",
    "ESTUDO_DESCRICAO",
    "ACCESSION_NUMBER",
    "MODALIDADE",
    "PRIORIDADE",
    "VALORES",
    "ESPECIALIDADE",
    "MEDICO",
    "DATA_REALIZACAO",
    "HORA_REALIZACAO",
    "DATA_LAUDO",
    "HORA_LAUDO",
    "CATEGORIA",
)
