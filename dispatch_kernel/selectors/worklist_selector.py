"""
WorklistSelector -- the work orders and guides that belong to one actor.

Responsibility:
    Lists the work orders a logistics worker is picking and the dispatch
    guides held by a courier company, newest first, with the names needed
    to act on them.

Architecture position:
    Kernel > Selectors.  Read-only.
"""

from sqlalchemy import select
from sqlalchemy.orm import aliased

from dispatch_kernel.domain.actor import Actor
from dispatch_kernel.domain.dtos import GuideView, WorkOrderView
from dispatch_kernel.exceptions import UnauthenticatedError
from dispatch_kernel.models.directory import Handler, Worker
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder
from dispatch_kernel.selectors.base import BaseSelector


class WorklistSelector(BaseSelector[WorkOrder]):
    """Per-actor projections ordered by date, then id, descending."""

    def work_orders_for(self, actor: Actor | None) -> tuple[WorkOrderView, ...]:
        """Work orders whose worker is the actor.

        Raises:
            UnauthenticatedError: no actor.
        """
        if actor is None:
            raise UnauthenticatedError()
        stmt = (
            select(WorkOrder, Worker)
            .outerjoin(Worker, Worker.id == WorkOrder.worker_id)
            .where(WorkOrder.worker_id == actor.id)
            .order_by(WorkOrder.date.desc(), WorkOrder.id.desc())
        )
        return tuple(
            WorkOrderView.from_model(
                work_order, worker.full_name if worker is not None else None
            )
            for work_order, worker in self.session.execute(stmt)
        )

    def guides_for(self, actor: Actor | None) -> tuple[GuideView, ...]:
        """Guides whose courier company is the actor.

        Guides never stamped with a date sort after every dated one.

        Raises:
            UnauthenticatedError: no actor.
        """
        if actor is None:
            raise UnauthenticatedError()
        courier = aliased(Worker)
        stmt = (
            select(DispatchGuide, WorkOrder.state, courier, Handler)
            .join(WorkOrder, WorkOrder.id == DispatchGuide.work_order_id)
            .outerjoin(courier, courier.id == DispatchGuide.courier_id)
            .outerjoin(Handler, Handler.id == DispatchGuide.handler_id)
            .where(DispatchGuide.courier_id == actor.id)
            .order_by(DispatchGuide.date.desc().nulls_last(), DispatchGuide.id.desc())
        )
        return tuple(
            GuideView.from_model(
                guide,
                work_order_state=work_order_state,
                courier_name=company.full_name if company is not None else None,
                handler_name=(
                    f"{handler.first_name} {handler.last_name}".strip()
                    if handler is not None
                    else None
                ),
            )
            for guide, work_order_state, company, handler in self.session.execute(stmt)
        )
