"""
Domain events published after a mutation commits.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from app.core.database import utcnow


@dataclass(frozen=True)
class DomainEvent:
    audit_id: int
    occurred_at: datetime = field(default_factory=utcnow, compare=False)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        payload["event"] = self.name
        return payload


@dataclass(frozen=True)
class StageAdvanced(DomainEvent):
    from_stage: int = 0
    to_stage: int = 0
    actor_id: Optional[str] = None


@dataclass(frozen=True)
class SectionResolved(DomainEvent):
    section_id: str = ""
    result: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class FindingRegistered(DomainEvent):
    finding_id: int = 0
    code: str = ""
    severity: Optional[str] = None


@dataclass(frozen=True)
class ReportFinalized(DomainEvent):
    report_id: int = 0
    code: str = ""
    total_score: float = 0.0
    revision: int = 1
