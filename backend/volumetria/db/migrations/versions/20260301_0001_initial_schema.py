"""initial volumetria schema

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20260301_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = False) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if with_updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    # ── Batches and step logs ─────────────────
    op.create_table(
        "upload_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_path", sa.String(length=1000), nullable=True),
        sa.Column("source_type", sa.String(length=100), nullable=False),
        sa.Column("period_reference", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("current_stage", sa.String(length=100), nullable=True),
        sa.Column("ruleset_version", sa.String(length=20), nullable=True),
        sa.Column("records_staged", sa.Integer(), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=False),
        sa.Column("records_inserted", sa.Integer(), nullable=False),
        sa.Column("records_updated", sa.Integer(), nullable=False),
        sa.Column("records_rejected", sa.Integer(), nullable=False),
        sa.Column("records_excluded", sa.Integer(), nullable=False),
        sa.Column("error_detail", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(with_updated=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("staging_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_upload_batches_source_type", "upload_batches", ["source_type"])
    op.create_index("ix_upload_batches_period_reference", "upload_batches", ["period_reference"])
    op.create_index("ix_upload_batches_status", "upload_batches", ["status"])
    op.create_index("ix_upload_batches_updated_at", "upload_batches", ["updated_at"])

    op.create_table(
        "pipeline_step_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("execution_id", sa.String(length=64), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("step_index", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["upload_batch_id"], ["upload_batches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pipeline_step_logs_upload_batch_id", "pipeline_step_logs", ["upload_batch_id"])
    op.create_index("ix_pipeline_step_logs_execution_id", "pipeline_step_logs", ["execution_id"])
    op.create_index("ix_pipeline_step_logs_step_name", "pipeline_step_logs", ["step_name"])
    op.create_index("ix_pipeline_step_logs_status", "pipeline_step_logs", ["status"])

    # ── Staging / canonical / rejected ────────
    op.create_table(
        "staged_exam_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processing_status", sa.String(length=20), nullable=False),
        sa.Column("exclusion_rule", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["upload_batch_id"], ["upload_batches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_staged_exam_records_upload_batch_id", "staged_exam_records", ["upload_batch_id"])
    op.create_index("ix_staged_batch_status", "staged_exam_records", ["upload_batch_id", "processing_status"])

    op.create_table(
        "exam_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("staged_record_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("source_file", sa.String(length=100), nullable=False),
        sa.Column("period_reference", sa.String(length=20), nullable=True),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("patient_name", sa.String(length=255), nullable=False),
        sa.Column("patient_code", sa.String(length=100), nullable=True),
        sa.Column("accession_number", sa.String(length=100), nullable=True),
        sa.Column("physician", sa.String(length=255), nullable=True),
        sa.Column("study_description", sa.String(length=500), nullable=False),
        sa.Column("modality", sa.String(length=20), nullable=False),
        sa.Column("specialty", sa.String(length=100), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("priority", sa.String(length=50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("realization_date", sa.Date(), nullable=True),
        sa.Column("realization_time", sa.String(length=8), nullable=True),
        sa.Column("report_date", sa.Date(), nullable=True),
        sa.Column("report_time", sa.String(length=8), nullable=True),
        sa.Column("billing_type", sa.String(length=10), nullable=False),
        sa.Column("unit_value", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("price_status", sa.String(length=30), nullable=False),
        sa.Column("applied_rules", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("ruleset_version", sa.String(length=20), nullable=True),
        sa.Column("client_unresolved", sa.Boolean(), nullable=False),
        sa.Column("split_from", sa.Text(), nullable=True),
        *_timestamps(with_updated=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_exam_records_upload_batch_id", "exam_records", ["upload_batch_id"])
    op.create_index("ix_exam_records_staged_record_id", "exam_records", ["staged_record_id"])
    op.create_index("ix_exam_records_client_name", "exam_records", ["client_name"])
    op.create_index("ix_exam_records_study_description", "exam_records", ["study_description"])
    op.create_index("ix_exam_records_source_period", "exam_records", ["source_file", "period_reference"])

    op.create_table(
        "rejected_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("staged_record_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("row_number", sa.Integer(), nullable=True),
        sa.Column("rule_code", sa.String(length=20), nullable=True),
        sa.Column("reason", sa.String(length=50), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("raw_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rejected_records_upload_batch_id", "rejected_records", ["upload_batch_id"])
    op.create_index("ix_rejected_records_reason", "rejected_records", ["reason"])
    op.create_index("ix_rejected_records_created_at", "rejected_records", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("table_name", sa.String(length=100), nullable=False),
        sa.Column("operation", sa.String(length=100), nullable=False),
        sa.Column("record_id", sa.String(length=64), nullable=True),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("severity", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_operation", "audit_logs", ["operation"])
    op.create_index("ix_audit_logs_record_id", "audit_logs", ["record_id"])

    # ── Reference data ────────────────────────
    op.create_table(
        "client_registry",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("client_type", sa.String(length=2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("billed_specialties", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("billed_descriptions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("billed_physicians", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(with_updated=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_client_registry_name", "client_registry", ["name"], unique=True)

    op.create_table(
        "client_aliases",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("alias", sa.String(length=255), nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("match_type", sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_client_aliases_alias", "client_aliases", ["alias"])

    op.create_table(
        "exam_catalog",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("study_description", sa.String(length=500), nullable=False),
        sa.Column("modality", sa.String(length=20), nullable=True),
        sa.Column("specialty", sa.String(length=100), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_exam_catalog_study_description", "exam_catalog", ["study_description"], unique=True)

    op.create_table(
        "price_references",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("study_description", sa.String(length=500), nullable=False),
        sa.Column("unit_value", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(with_updated=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_price_references_study_description", "price_references", ["study_description"])

    op.create_table(
        "split_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("exame_original", sa.String(length=500), nullable=False),
        sa.Column("exame_quebrado", sa.String(length=500), nullable=False),
        sa.Column("categoria_quebrada", sa.String(length=50), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_split_rules_exame_original", "split_rules", ["exame_original"])
    op.create_index("ix_split_rules_exame_quebrado", "split_rules", ["exame_quebrado"])

    op.create_table(
        "priority_mappings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("raw_value", sa.String(length=100), nullable=False),
        sa.Column("canonical_value", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("raw_value"),
    )

    op.create_table(
        "specialty_mappings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source_specialty", sa.String(length=100), nullable=False),
        sa.Column("target_specialty", sa.String(length=100), nullable=False),
        sa.Column("modality", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_specialty_mappings_source_specialty", "specialty_mappings", ["source_specialty"])

    op.create_table(
        "physician_aliases",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("alias", sa.String(length=255), nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("alias"),
    )


def downgrade() -> None:
    op.drop_table("physician_aliases")
    op.drop_index("ix_specialty_mappings_source_specialty", table_name="specialty_mappings")
    op.drop_table("specialty_mappings")
    op.drop_table("priority_mappings")
    op.drop_index("ix_split_rules_exame_quebrado", table_name="split_rules")
    op.drop_index("ix_split_rules_exame_original", table_name="split_rules")
    op.drop_table("split_rules")
    op.drop_index("ix_price_references_study_description", table_name="price_references")
    op.drop_table("price_references")
    op.drop_index("ix_exam_catalog_study_description", table_name="exam_catalog")
    op.drop_table("exam_catalog")
    op.drop_index("ix_client_aliases_alias", table_name="client_aliases")
    op.drop_table("client_aliases")
    op.drop_index("ix_client_registry_name", table_name="client_registry")
    op.drop_table("client_registry")

    op.drop_index("ix_audit_logs_record_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_operation", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_rejected_records_created_at", table_name="rejected_records")
    op.drop_index("ix_rejected_records_reason", table_name="rejected_records")
    op.drop_index("ix_rejected_records_upload_batch_id", table_name="rejected_records")
    op.drop_table("rejected_records")
    op.drop_index("ix_exam_records_source_period", table_name="exam_records")
    op.drop_index("ix_exam_records_study_description", table_name="exam_records")
    op.drop_index("ix_exam_records_client_name", table_name="exam_records")
    op.drop_index("ix_exam_records_staged_record_id", table_name="exam_records")
    op.drop_index("ix_exam_records_upload_batch_id", table_name="exam_records")
    op.drop_table("exam_records")
    op.drop_index("ix_staged_batch_status", table_name="staged_exam_records")
    op.drop_index("ix_staged_exam_records_upload_batch_id", table_name="staged_exam_records")
    op.drop_table("staged_exam_records")

    op.drop_index("ix_pipeline_step_logs_status", table_name="pipeline_step_logs")
    op.drop_index("ix_pipeline_step_logs_step_name", table_name="pipeline_step_logs")
    op.drop_index("ix_pipeline_step_logs_execution_id", table_name="pipeline_step_logs")
    op.drop_index("ix_pipeline_step_logs_upload_batch_id", table_name="pipeline_step_logs")
    op.drop_table("pipeline_step_logs")
    op.drop_index("ix_upload_batches_updated_at", table_name="upload_batches")
    op.drop_index("ix_upload_batches_status", table_name="upload_batches")
    op.drop_index("ix_upload_batches_period_reference", table_name="upload_batches")
    op.drop_index("ix_upload_batches_source_type", table_name="upload_batches")
    op.drop_table("upload_batches")
