"""initial audit lifecycle schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

TS = sa.DateTime(timezone=True)


def _enum():
    # Enums are stored as checked VARCHARs
    return sa.String(40)


def upgrade() -> None:
    op.create_table(
        "audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.Integer(), nullable=False),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("provider_id", sa.String(64), nullable=False),
        sa.Column("primary_auditor_id", sa.String(64), nullable=False),
        sa.Column("secondary_auditor_id", sa.String(64), nullable=True),
        sa.Column("scheduled_date", TS, nullable=False),
        sa.Column("deadline", TS, nullable=False),
        sa.Column("stage_config", sa.JSON(), nullable=False),
        sa.Column("notification_sent_at", TS, nullable=True),
        sa.Column("stage_entered_at", TS, nullable=True),
        sa.Column("completed_at", TS, nullable=True),
        sa.Column("archived_at", TS, nullable=True),
        sa.Column("total_score", sa.Float(), nullable=True),
        sa.Column("compliance_tier", _enum(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", TS, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", TS, server_default=sa.func.now(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("stage >= 1 AND stage <= 8", name="ck_audits_stage_range"),
    )
    op.create_index("ix_audits_id", "audits", ["id"])
    op.create_index("ix_audits_code", "audits", ["code"], unique=True)
    op.create_index("ix_audits_stage", "audits", ["stage"])
    op.create_index("ix_audits_status", "audits", ["status"])
    op.create_index("ix_audits_provider_id", "audits", ["provider_id"])
    op.create_index("ix_audits_primary_auditor_id", "audits", ["primary_auditor_id"])
    op.create_index("ix_audits_scheduled_date", "audits", ["scheduled_date"])

    op.create_table(
        "section_evaluations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("section_id", sa.String(40), nullable=False),
        sa.Column("obligatory", sa.Boolean(), nullable=False),
        sa.Column("state", _enum(), nullable=False),
        sa.Column("result", _enum(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("automatic_score", sa.Float(), nullable=True),
        sa.Column("auditor_id", sa.String(64), nullable=True),
        sa.Column("requires_site_visit", sa.Boolean(), nullable=False),
        sa.Column("clarifications_pending", sa.Boolean(), nullable=False),
        sa.Column("queries_count", sa.Integer(), nullable=False),
        sa.Column("auditor_comments", sa.Text(), nullable=True),
        sa.Column("provider_response", sa.Text(), nullable=True),
        sa.Column("evaluation_started_at", TS, nullable=True),
        sa.Column("evaluation_finished_at", TS, nullable=True),
        sa.Column("evaluation_minutes", sa.Integer(), nullable=True),
        sa.Column("created_at", TS, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", TS, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("audit_id", "section_id", name="uq_section_evaluations_audit_section"),
        sa.CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_section_evaluations_score"),
        sa.CheckConstraint(
            "automatic_score IS NULL OR (automatic_score >= 0 AND automatic_score <= 100)",
            name="ck_section_evaluations_automatic_score",
        ),
    )
    for column in ("id", "audit_id", "section_id", "state", "result", "auditor_id"):
        op.create_index(f"ix_section_evaluations_{column}", "section_evaluations", [column])

    op.create_table(
        "validation_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("document_id", sa.String(64), nullable=True),
        sa.Column("section_id", sa.String(40), nullable=True),
        sa.Column("validation_type", _enum(), nullable=False),
        sa.Column("result", _enum(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("critical_errors", sa.JSON(), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=False),
        sa.Column("suggestions", sa.JSON(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("items_total", sa.Integer(), nullable=True),
        sa.Column("items_conformant", sa.Integer(), nullable=True),
        sa.Column("items_non_conformant", sa.Integer(), nullable=True),
        sa.Column("executor", _enum(), nullable=False),
        sa.Column("executed_by", sa.String(64), nullable=True),
        sa.Column("created_at", TS, nullable=False),
    )
    for column in ("id", "audit_id", "document_id", "section_id", "validation_type", "created_at"):
        op.create_index(f"ix_validation_records_{column}", "validation_records", [column])
    op.create_index("ix_validation_records_audit_created", "validation_records", ["audit_id", "created_at"])

    op.create_table(
        "visits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("auditor_id", sa.String(64), nullable=False),
        sa.Column("companion_auditor_id", sa.String(64), nullable=True),
        sa.Column("site_code", sa.String(20), nullable=False),
        sa.Column("site_name", sa.String(200), nullable=False),
        sa.Column("site_address", sa.Text(), nullable=True),
        sa.Column("reference_latitude", sa.Float(), nullable=True),
        sa.Column("reference_longitude", sa.Float(), nullable=True),
        sa.Column("scheduled_at", TS, nullable=False),
        sa.Column("confirmed_at", TS, nullable=True),
        sa.Column("state", _enum(), nullable=False),
        sa.Column("sections_to_verify", sa.JSON(), nullable=False),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("started_at", TS, nullable=True),
        sa.Column("finished_at", TS, nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("arrival_latitude", sa.Float(), nullable=True),
        sa.Column("arrival_longitude", sa.Float(), nullable=True),
        sa.Column("departure_latitude", sa.Float(), nullable=True),
        sa.Column("departure_longitude", sa.Float(), nullable=True),
        sa.Column("distance_to_reference_m", sa.Float(), nullable=True),
        sa.Column("location_verification", _enum(), nullable=False),
        sa.Column("observations", sa.Text(), nullable=True),
        sa.Column("visit_score", sa.Float(), nullable=True),
        sa.Column("created_at", TS, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", TS, server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "visit_score IS NULL OR (visit_score >= 0 AND visit_score <= 100)", name="ck_visits_score"
        ),
    )
    for column in ("id", "audit_id", "auditor_id", "site_code", "scheduled_at", "state"):
        op.create_index(f"ix_visits_{column}", "visits", [column])

    op.create_table(
        "findings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visit_id", sa.Integer(), sa.ForeignKey("visits.id"), nullable=False),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("auditor_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(30), nullable=False),
        sa.Column("finding_type", _enum(), nullable=False),
        sa.Column("category", _enum(), nullable=False),
        sa.Column("severity", _enum(), nullable=False),
        sa.Column("section_id", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("evidence", sa.Text(), nullable=True),
        sa.Column("corrective_action", sa.Text(), nullable=True),
        sa.Column("recommended_timeframe", _enum(), nullable=True),
        sa.Column("remediation_deadline", TS, nullable=True),
        sa.Column("tracking_state", _enum(), nullable=False),
        sa.Column("communicated_to_provider", sa.Boolean(), nullable=False),
        sa.Column("communicated_at", TS, nullable=True),
        sa.Column("provider_response", sa.Text(), nullable=True),
        sa.Column("provider_responded_at", TS, nullable=True),
        sa.Column("verification_result", _enum(), nullable=False),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verified_at", TS, nullable=True),
        sa.Column("affects_score", sa.Boolean(), nullable=False),
        sa.Column("deduction_points", sa.Float(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_findings_code", "findings", ["code"], unique=True)
    for column in ("id", "visit_id", "audit_id", "finding_type", "category", "severity", "tracking_state"):
        op.create_index(f"ix_findings_{column}", "findings", [column])
    op.create_index("ix_findings_audit_created", "findings", ["audit_id", "created_at"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Float(), nullable=False),
        sa.Column("section_scores", sa.JSON(), nullable=False),
        sa.Column("compliance_tier", _enum(), nullable=False),
        sa.Column("conclusion", _enum(), nullable=False),
        sa.Column("findings_summary", sa.JSON(), nullable=False),
        sa.Column("inventory_summary", sa.JSON(), nullable=True),
        sa.Column("visits_summary", sa.JSON(), nullable=False),
        sa.Column("requires_follow_up", sa.Boolean(), nullable=False),
        sa.Column("content_digest", sa.String(64), nullable=False),
        sa.Column("generated_at", TS, nullable=False),
        sa.Column("approval_state", _enum(), nullable=False),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("approved_at", TS, nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("delivered_at", TS, nullable=True),
        sa.Column("provider_observations", sa.Text(), nullable=True),
        sa.Column("provider_responded_at", TS, nullable=True),
    )
    op.create_index("ix_reports_id", "reports", ["id"])
    op.create_index("ix_reports_audit_id", "reports", ["audit_id"], unique=True)
    op.create_index("ix_reports_compliance_tier", "reports", ["compliance_tier"])
    op.create_index("ix_reports_conclusion", "reports", ["conclusion"])
    op.create_index("ix_reports_approval_state", "reports", ["approval_state"])

    op.create_table(
        "evidence_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("section_id", sa.String(40), nullable=False),
        sa.Column("file_id", sa.String(64), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
        sa.Column("uploaded_by", sa.String(64), nullable=True),
        sa.Column("uploaded_at", TS, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
    )
    for column in ("id", "audit_id", "section_id"):
        op.create_index(f"ix_evidence_documents_{column}", "evidence_documents", [column])

    op.create_table(
        "inventory_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False),
        sa.Column("conformant_count", sa.Integer(), nullable=False),
        sa.Column("non_conformant_count", sa.Integer(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("critical_errors", sa.JSON(), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=False),
        sa.Column("processed_at", TS, nullable=False),
        sa.UniqueConstraint("audit_id", name="uq_inventory_results_audit"),
    )
    op.create_index("ix_inventory_results_id", "inventory_results", ["id"])
    op.create_index("ix_inventory_results_audit_id", "inventory_results", ["audit_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timestamp", TS, nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("actor_role", sa.String(50), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.Integer(), nullable=True),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
    )
    for column in ("id", "timestamp", "actor_id", "action", "resource_type", "resource_id", "audit_id"):
        op.create_index(f"ix_activity_logs_{column}", "activity_logs", [column])


def downgrade() -> None:
    for table in (
        "activity_logs",
        "inventory_results",
        "evidence_documents",
        "reports",
        "findings",
        "visits",
        "validation_records",
        "section_evaluations",
        "audits",
    ):
        op.drop_table(table)
