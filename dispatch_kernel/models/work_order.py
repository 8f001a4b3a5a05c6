"""
Module: dispatch_kernel.models.work_order
Responsibility: ORM persistence for picking work orders (OT) and their paired
    dispatch guides.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one work order per sales order (uq_work_order_sales_order).
    - At most one dispatch guide per work order (uq_guide_work_order).
    - States are stored as canonical codes (see domain/states.py).
    - Neither entity is ever deleted.

Failure modes:
    - IntegrityError on a second work order for the same sales order; the
      work-order service reports it as DuplicateWorkOrderError.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dispatch_kernel.db.base import TrackedBase
from dispatch_kernel.db.types import LongText, StateCode


class WorkOrder(TrackedBase):
    """
    Picking work order for one sales order.

    Contract:
        Created by the order-intake flow in CREATED or ASSIGNED, or by hand
        for a chosen worker; mutated only through the locked update path of
        WorkOrderService.
    """

    __tablename__ = "work_orders"

    __table_args__ = (
        UniqueConstraint("sales_order_id", name="uq_work_order_sales_order"),
        Index("idx_work_order_worker", "worker_id"),
        Index("idx_work_order_state", "state"),
    )

    # Null for work orders opened by hand
    sales_order_id: Mapped[int | None] = mapped_column(
        ForeignKey("sales_orders.id"),
        nullable=True,
    )

    worker_id: Mapped[int | None] = mapped_column(
        ForeignKey("workers.id"),
        nullable=True,
    )

    date: Mapped[datetime] = mapped_column(nullable=False)

    state: Mapped[StateCode] = mapped_column(nullable=False)

    # Human-readable back-reference to the originating order
    notes: Mapped[LongText | None] = mapped_column(nullable=True)

    guide: Mapped["DispatchGuide | None"] = relationship(
        back_populates="work_order",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<WorkOrder {self.id}: {self.state}>"


class DispatchGuide(TrackedBase):
    """
    Delivery record paired 1:1 with a work order.

    Contract:
        Created together with its work order in EN_PICKING, or by hand for
        an existing work order; mutated only through the locked update path
        of DispatchGuideService.
    """

    __tablename__ = "dispatch_guides"

    __table_args__ = (
        UniqueConstraint("work_order_id", name="uq_guide_work_order"),
        Index("idx_guide_courier", "courier_id"),
        Index("idx_guide_handler", "handler_id"),
        Index("idx_guide_state", "state"),
    )

    work_order_id: Mapped[int] = mapped_column(
        ForeignKey("work_orders.id"),
        nullable=False,
    )

    # Courier company (a COURIER worker)
    courier_id: Mapped[int | None] = mapped_column(
        ForeignKey("workers.id"),
        nullable=True,
    )

    handler_id: Mapped[int | None] = mapped_column(
        ForeignKey("courier_handlers.id"),
        nullable=True,
    )

    delivery_address: Mapped[LongText | None] = mapped_column(nullable=True)

    date: Mapped[datetime | None] = mapped_column(nullable=True)

    state: Mapped[StateCode] = mapped_column(nullable=False)

    work_order: Mapped[WorkOrder] = relationship(back_populates="guide")

    def __repr__(self) -> str:
        return f"<DispatchGuide {self.id}: {self.state}>"
