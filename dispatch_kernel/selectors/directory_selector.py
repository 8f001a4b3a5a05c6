"""
DirectorySelector -- read-only lookups in the staff and courier directory.

Responsibility:
    Worker and handler lookups for validation, the set of courier companies
    a staff member is registered under, and actor resolution for callers
    that only hold an authenticated staff id.

Architecture position:
    Kernel > Selectors.  Used by the work-order and dispatch-guide services
    and by the transaction coordinator.
"""

from sqlalchemy import select

from dispatch_kernel.domain.actor import Actor
from dispatch_kernel.domain.dtos import HandlerInfo, WorkerInfo
from dispatch_kernel.models.directory import Handler, Worker
from dispatch_kernel.selectors.base import BaseSelector


class DirectorySelector(BaseSelector[Worker]):
    """Staff, handler and registration lookups."""

    def worker(self, worker_id: int) -> WorkerInfo | None:
        model = self.session.get(Worker, worker_id)
        return WorkerInfo.from_model(model) if model is not None else None

    def handler(self, handler_id: int) -> HandlerInfo | None:
        model = self.session.get(Handler, handler_id)
        return HandlerInfo.from_model(model) if model is not None else None

    def companies_for_staff(self, staff_id: int) -> frozenset[int]:
        """Courier companies the staff member has a handler registration under."""
        rows = self.session.execute(
            select(Handler.company_id).where(Handler.staff_id == staff_id)
        ).scalars()
        return frozenset(rows)

    def resolve_actor(self, actor_id: int | None) -> Actor | None:
        """
        Build the acting identity for an authenticated staff id.

        Returns None when no id is given or the id is not in the directory;
        callers treat that as unauthenticated.
        """
        if actor_id is None:
            return None
        model = self.session.get(Worker, actor_id)
        if model is None:
            return None
        return Actor.of(model.id, model.role)
