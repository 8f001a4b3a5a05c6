"""
BalanceSelector -- load distribution across assignable subjects.

Responsibility:
    Reports, per logistics worker, the number of pending work orders and the
    rotation counter, and per courier company the number of active guides
    and the rotation counter.  Used to inspect how evenly the rotation is
    spreading work.

Architecture position:
    Kernel > Selectors.  Read-only; counters are reported, never adjusted.
"""

from collections.abc import Iterable

from sqlalchemy import and_, func, select

from dispatch_kernel.domain.actor import CounterCategory, StaffRole
from dispatch_kernel.domain.dtos import BalanceStats, SubjectLoad
from dispatch_kernel.domain.states import GuideState, WorkOrderState
from dispatch_kernel.models.assignment_counter import AssignmentCounter
from dispatch_kernel.models.directory import Worker
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder
from dispatch_kernel.selectors.base import BaseSelector

DEFAULT_PENDING_STATES: tuple[str, ...] = (
    WorkOrderState.CREATED.value,
    WorkOrderState.ASSIGNED.value,
    WorkOrderState.IN_PROGRESS.value,
)


class BalanceSelector(BaseSelector[Worker]):
    """Load and counter projections for the rotation pools."""

    def __init__(self, session, pending_states: Iterable[str] | None = None):
        super().__init__(session)
        self._pending_states = tuple(pending_states or DEFAULT_PENDING_STATES)

    def get_balance_stats(self) -> BalanceStats:
        return BalanceStats(
            workers=self.worker_loads(),
            couriers=self.courier_loads(),
        )

    def worker_loads(self) -> tuple[SubjectLoad, ...]:
        """Pending work orders per logistics worker."""
        pending = (
            select(
                WorkOrder.worker_id.label("subject_id"),
                func.count(WorkOrder.id).label("load"),
            )
            .where(WorkOrder.state.in_(self._pending_states))
            .group_by(WorkOrder.worker_id)
            .subquery()
        )
        return self._loads(
            StaffRole.WORKER_LOGISTICS, CounterCategory.WORKER_LOGISTICS, pending
        )

    def courier_loads(self) -> tuple[SubjectLoad, ...]:
        """Active (not delivered) guides per courier company."""
        active = (
            select(
                DispatchGuide.courier_id.label("subject_id"),
                func.count(DispatchGuide.id).label("load"),
            )
            .where(DispatchGuide.state != GuideState.ENTREGADA.value)
            .group_by(DispatchGuide.courier_id)
            .subquery()
        )
        return self._loads(StaffRole.COURIER, CounterCategory.COURIER, active)

    def _loads(self, role: StaffRole, category: CounterCategory, load_subquery):
        stmt = (
            select(
                Worker,
                func.coalesce(load_subquery.c.load, 0),
                AssignmentCounter.value,
            )
            .outerjoin(load_subquery, load_subquery.c.subject_id == Worker.id)
            .outerjoin(
                AssignmentCounter,
                and_(
                    AssignmentCounter.subject_id == Worker.id,
                    AssignmentCounter.category == category.value,
                ),
            )
            .where(Worker.role == role.value)
        )
        loads = [
            SubjectLoad(
                subject_id=worker.id,
                name=worker.full_name,
                load=int(load),
                counter=counter,
            )
            for worker, load, counter in self.session.execute(stmt)
        ]
        loads.sort(key=lambda item: (item.load, item.subject_id))
        return tuple(loads)
