"""
Domain errors raised by the audit lifecycle services.

Every error carries a structured ``detail`` dict so the HTTP layer (or any
other caller) can render an actionable message without parsing text.
"""
from typing import Any, Dict, Iterable, List, Optional


class AuditPortalError(Exception):
    """Base class for all domain errors."""
    status_code = 500
    error_kind = "AuditPortalError"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_kind, "message": self.message, "detail": self.detail}


class NotFoundError(AuditPortalError):
    """Unknown audit, section, visit, finding or report."""
    status_code = 404
    error_kind = "NotFoundError"

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "id": identifier},
        )


class InvalidStateTransitionError(AuditPortalError):
    """A per-entity state machine (evaluation, visit, finding, report) rejected a transition."""
    status_code = 409
    error_kind = "InvalidStateTransitionError"

    def __init__(self, entity: str, current: Any, target: Any, reason: Optional[str] = None):
        message = f"{entity}: transition {current} -> {target} not allowed"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            {"entity": entity, "current": _value(current), "target": _value(target), "reason": reason},
        )


class InvalidTransitionError(AuditPortalError):
    """The audit stage machine rejected a transition (skip, terminal status...)."""
    status_code = 409
    error_kind = "InvalidTransitionError"

    def __init__(self, message: str, current_stage: Any = None, requested: Any = None, status: Any = None):
        super().__init__(
            message,
            {"current_stage": _value(current_stage), "requested": _value(requested), "status": _value(status)},
        )


class PreconditionNotMetError(AuditPortalError):
    """A stage gate failed. ``missing`` lists what the caller must supply."""
    status_code = 422
    error_kind = "PreconditionNotMetError"

    def __init__(self, message: str, missing: Iterable[Any] = (), gate: Optional[str] = None,
                 extra: Optional[Dict[str, Any]] = None):
        self.missing: List[Any] = list(missing)
        detail = {"gate": gate, "missing": self.missing}
        if extra:
            detail.update(extra)
        super().__init__(message, detail)


class IncompleteEvidenceError(PreconditionNotMetError):
    error_kind = "IncompleteEvidenceError"

    def __init__(self, missing_sections: Iterable[str]):
        missing_sections = list(missing_sections)
        super().__init__(
            f"Obligatory sections without evidence: {', '.join(missing_sections)}",
            missing=missing_sections,
            gate="evidence_complete",
        )


class IncompleteEvaluationError(PreconditionNotMetError):
    error_kind = "IncompleteEvaluationError"

    def __init__(self, unresolved_sections: Iterable[str]):
        unresolved_sections = list(unresolved_sections)
        super().__init__(
            f"Obligatory sections not resolved: {', '.join(unresolved_sections)}",
            missing=unresolved_sections,
            gate="evaluation_complete",
        )


class PendingVisitError(PreconditionNotMetError):
    error_kind = "PendingVisitError"

    def __init__(self, sections: Iterable[str]):
        sections = list(sections)
        super().__init__(
            f"Sections awaiting a completed site visit: {', '.join(sections)}",
            missing=sections,
            gate="site_visit_complete",
        )


class ConcurrencyError(AuditPortalError):
    """Stale version or lost race. The caller may retry."""
    status_code = 409
    error_kind = "ConcurrencyError"


class LockTimeoutError(ConcurrencyError):
    error_kind = "LockTimeoutError"

    def __init__(self, audit_id: int, timeout: float):
        super().__init__(
            f"Timed out after {timeout}s waiting for lock on audit {audit_id}",
            {"audit_id": audit_id, "timeout_seconds": timeout},
        )


class StorageError(AuditPortalError):
    """Persistence unavailable. Fatal to the current operation."""
    status_code = 503
    error_kind = "StorageError"


def _value(v: Any) -> Any:
    return getattr(v, "value", v)
