"""
AssignmentService -- least-loaded rotation over an eligible pool.

Responsibility:
    Loads the eligible pool for a counter category together with each
    member's rotation counter, hands it to the pure ``select_candidate``
    rule, and records the pick through CounterService.

Architecture position:
    Kernel > Services -- imperative shell around
    ``domain/selection.py`` (functional core).

Failure modes:
    - An empty pool is not an error: ``pick`` returns None and the caller
      records an unassigned state.
"""

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from dispatch_kernel.domain.actor import CounterCategory, StaffRole
from dispatch_kernel.domain.selection import Candidate, select_candidate
from dispatch_kernel.logging_config import get_logger
from dispatch_kernel.models.assignment_counter import AssignmentCounter
from dispatch_kernel.models.directory import Handler, Worker
from dispatch_kernel.services.base import BaseService
from dispatch_kernel.services.counter_service import CounterService

logger = get_logger("services.assignment")

# Worker role eligible for each worker-backed pool
_POOL_ROLES: dict[CounterCategory, StaffRole] = {
    CounterCategory.WORKER_LOGISTICS: StaffRole.WORKER_LOGISTICS,
    CounterCategory.COURIER: StaffRole.COURIER,
}


class AssignmentService(BaseService[AssignmentCounter]):
    """
    Picks the next assignee of a category.

    Usage:
        worker_id = assignments.assign(CounterCategory.WORKER_LOGISTICS)
    """

    def __init__(self, session: Session, counters: CounterService | None = None):
        super().__init__(session)
        self._counters = counters or CounterService(session)

    def pool(self, category: CounterCategory | str) -> list[Candidate]:
        """Eligible candidates of the category with their counters (if any)."""
        category = CounterCategory(category)
        if category is CounterCategory.HANDLER:
            subject = Handler.id
            stmt = select(subject, AssignmentCounter.value).select_from(Handler)
        else:
            subject = Worker.id
            stmt = (
                select(subject, AssignmentCounter.value)
                .select_from(Worker)
                .where(Worker.role == _POOL_ROLES[category].value)
            )
        stmt = stmt.outerjoin(
            AssignmentCounter,
            and_(
                AssignmentCounter.subject_id == subject,
                AssignmentCounter.category == category.value,
            ),
        )
        return [
            Candidate(subject_id=subject_id, counter=counter)
            for subject_id, counter in self.session.execute(stmt)
        ]

    def pick(self, category: CounterCategory | str) -> int | None:
        """Choose the next assignee without recording it."""
        category = CounterCategory(category)
        candidates = self.pool(category)
        chosen = select_candidate(candidates)
        if chosen is None:
            logger.warning(
                "assignment_pool_empty",
                extra={"category": category.value},
            )
            return None
        logger.info(
            "assignment_selected",
            extra={
                "category": category.value,
                "subject_id": chosen.subject_id,
                "counter": chosen.counter,
                "pool_size": len(candidates),
            },
        )
        return chosen.subject_id

    def assign(self, category: CounterCategory | str) -> int | None:
        """Choose the next assignee and increment its counter."""
        subject_id = self.pick(category)
        if subject_id is not None:
            self._counters.increment(category, subject_id)
        return subject_id
