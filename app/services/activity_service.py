"""
Activity logging service for audit trail.
"""
import logging
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.core.auth import Actor

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    actor: Actor,
    action: str,
    audit_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ActivityLog:
    """
    Add an activity entry to the audit trail.

    The entry joins the caller's transaction; it is committed (or rolled
    back) together with the mutation it describes.

    Args:
        db: Database session
        actor: Acting user
        action: Action name (e.g., "stage_advanced", "finding_registered")
        audit_id: Audit the action belongs to
        resource_type: Type of resource affected (e.g., "audit", "visit", "report")
        resource_id: ID of the affected resource
        details: Additional JSON details about the action

    Returns:
        Pending ActivityLog record
    """
    activity = ActivityLog(
        actor_id=actor.user_id,
        actor_role=actor.role,
        action=action,
        audit_id=audit_id,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )
    db.add(activity)

    logger.debug(f"Logged activity: {action} by {actor.user_id} ({actor.role})")

    return activity


def list_activity(
    db: Session,
    audit_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[ActivityLog]:
    """Most recent activity first."""
    query = db.query(ActivityLog)
    if audit_id is not None:
        query = query.filter(ActivityLog.audit_id == audit_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    return (
        query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


# Common action constants
class ActivityAction:
    """Constants for activity actions."""
    AUDIT_CREATE = "audit_create"
    NOTIFICATION_SENT = "notification_sent"
    STAGE_ADVANCED = "stage_advanced"
    AUDIT_SUSPEND = "audit_suspend"
    AUDIT_CANCEL = "audit_cancel"
    AUDIT_COMPLETE = "audit_complete"
    AUDIT_ARCHIVE = "audit_archive"
    DOCUMENT_REGISTER = "document_register"
    INVENTORY_INGEST = "inventory_ingest"
    EVALUATION_ASSIGN = "evaluation_assign"
    EVALUATION_RESOLVE = "evaluation_resolve"
    EVALUATION_CLARIFY = "evaluation_clarify"
    EVALUATION_RESPONSE = "evaluation_response"
    EVALUATION_SITE_VISIT = "evaluation_site_visit"
    EVALUATION_AUTO_SCORE = "evaluation_auto_score"
    VISIT_SCHEDULE = "visit_schedule"
    VISIT_CONFIRM = "visit_confirm"
    VISIT_RESCHEDULE = "visit_reschedule"
    VISIT_CANCEL = "visit_cancel"
    VISIT_START = "visit_start"
    VISIT_END = "visit_end"
    VISIT_REVERIFY = "visit_reverify"
    FINDING_REGISTER = "finding_register"
    FINDING_TRACK = "finding_track"
    FINDING_COMMUNICATE = "finding_communicate"
    FINDING_VERIFY = "finding_verify"
    REPORT_FINALIZE = "report_finalize"
    REPORT_REVIEW = "report_review"
    REPORT_APPROVE = "report_approve"
    REPORT_DELIVER = "report_deliver"
    REPORT_PROVIDER_RESPONSE = "report_provider_response"


# Common resource types
class ResourceType:
    """Constants for resource types."""
    AUDIT = "audit"
    EVALUATION = "section_evaluation"
    VISIT = "visit"
    FINDING = "finding"
    REPORT = "report"
    DOCUMENT = "evidence_document"
    INVENTORY = "inventory_result"
