"""
Models package — re-exports Base and all models.

Import models here so Alembic's `target_metadata = Base.metadata`
picks up every table automatically.

When adding a new model:
    1. Create `volumetria/db/models/<table_name>.py`
    2. Import it here
"""

from volumetria.db.models.base import Base
from volumetria.db.models.audit_log import AuditLog
from volumetria.db.models.client import ClientAlias, ClientRegistry
from volumetria.db.models.exam_catalog import ExamCatalog
from volumetria.db.models.exam_record import ExamRecord
from volumetria.db.models.mappings import PhysicianAlias, PriorityMapping, SpecialtyMapping
from volumetria.db.models.pipeline_step_log import PipelineStepLog
from volumetria.db.models.price_reference import PriceReference
from volumetria.db.models.rejected_record import RejectedRecord
from volumetria.db.models.split_rule import SplitRule
from volumetria.db.models.staged_exam_record import StagedExamRecord
from volumetria.db.models.upload_batch import UploadBatch

__all__ = [
    "Base",
    "AuditLog",
    "ClientAlias",
    "ClientRegistry",
    "ExamCatalog",
    "ExamRecord",
    "PhysicianAlias",
    "PipelineStepLog",
    "PriceReference",
    "PriorityMapping",
    "RejectedRecord",
    "SpecialtyMapping",
    "SplitRule",
    "StagedExamRecord",
    "UploadBatch",
]
