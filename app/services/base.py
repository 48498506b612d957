"""
Shared plumbing for services that mutate an audit.

Every mutation runs under the per-audit lock, re-reads the audit row,
commits once and only then publishes its domain events.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.database import utcnow
from app.core.exceptions import ConcurrencyError, NotFoundError, StorageError
from app.core.locks import AuditLockRegistry, audit_locks
from app.models.audit import Audit
from app.services.collaborators import LoggingDispatcher, NotificationDispatcher, publish
from app.services.events import DomainEvent

logger = logging.getLogger(__name__)


class Mutation:
    """Handle passed to the body of a locked mutation."""

    def __init__(self, audit: Audit):
        self.audit = audit
        self.events: List[DomainEvent] = []

    def emit(self, event: DomainEvent) -> None:
        self.events.append(event)


class AuditBoundService:
    """Base class for services whose writes are scoped to one audit."""

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: Optional[AuditLockRegistry] = None,
    ):
        """
        Args:
            db: Database session
            dispatcher: Receiver of committed domain events
            locks: Per-audit lock registry (the process-wide one by default)
        """
        self.db = db
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.locks = locks or audit_locks

    def get_audit(self, audit_id: int) -> Audit:
        audit = self.db.query(Audit).filter(Audit.id == audit_id).first()
        if not audit:
            raise NotFoundError("Audit", audit_id)
        return audit

    @contextmanager
    def mutation(self, audit_id: int) -> Iterator[Mutation]:
        """
        Run the body as one atomic, serialized mutation of ``audit_id``.

        Raises:
            LockTimeoutError: the audit lock was not acquired in time
            ConcurrencyError: another process changed the audit meanwhile
            StorageError: the database failed
        """
        with self.locks.hold(audit_id):
            try:
                audit = (
                    self.db.query(Audit)
                    .populate_existing()
                    .filter(Audit.id == audit_id)
                    .first()
                )
                if not audit:
                    raise NotFoundError("Audit", audit_id)
                mutation = Mutation(audit)
                yield mutation
                # Touching the row bumps its version so concurrent writers collide
                audit.updated_at = utcnow()
                self.db.commit()
            except StaleDataError as e:
                self.db.rollback()
                logger.warning(f"Stale audit {audit_id}: {e}")
                raise ConcurrencyError(
                    f"Audit {audit_id} was modified concurrently",
                    {"audit_id": audit_id},
                ) from e
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Database error while mutating audit {audit_id}: {e}", exc_info=True)
                raise StorageError(
                    f"Storage failure while updating audit {audit_id}",
                    {"audit_id": audit_id},
                ) from e
            except Exception:
                self.db.rollback()
                raise

        publish(self.dispatcher, mutation.events)
