"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable results handed back across the kernel boundary: the outcome of
    work-order creation, the outcome of an update batch, the work-order and
    guide views, and the directory and balance projections produced by the
    selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``from_model()``
    converters exist at the boundary but are only invoked from services and
    selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dispatch_kernel.models.work_order import DispatchGuide as GuideModel
    from dispatch_kernel.models.work_order import WorkOrder as WorkOrderModel
    from dispatch_kernel.models.directory import Handler as HandlerModel
    from dispatch_kernel.models.directory import Worker as WorkerModel


@dataclass(frozen=True)
class WorkOrderCreated:
    """Outcome of creating a work order and its dispatch guide."""

    work_order_id: int
    guide_id: int
    order_number: str
    assigned_worker_id: int | None = None
    assigned_courier_id: int | None = None

    @property
    def is_assigned(self) -> bool:
        return self.assigned_worker_id is not None


@dataclass(frozen=True)
class UpdateResult:
    """Ids updated by one batch, in the order supplied."""

    updated_ids: tuple[int, ...]

    @property
    def count(self) -> int:
        return len(self.updated_ids)


@dataclass(frozen=True)
class WorkerInfo:
    id: int
    role: str
    full_name: str

    @classmethod
    def from_model(cls, model: WorkerModel) -> WorkerInfo:
        return cls(id=model.id, role=model.role, full_name=model.full_name)


@dataclass(frozen=True)
class HandlerInfo:
    id: int
    company_id: int
    staff_id: int | None
    full_name: str

    @classmethod
    def from_model(cls, model: HandlerModel) -> HandlerInfo:
        return cls(
            id=model.id,
            company_id=model.company_id,
            staff_id=model.staff_id,
            full_name=f"{model.first_name} {model.last_name}".strip(),
        )


@dataclass(frozen=True)
class SubjectLoad:
    """Current load and rotation counter of one assignable subject."""

    subject_id: int
    name: str
    load: int
    counter: int | None


@dataclass(frozen=True)
class BalanceStats:
    """Load distribution across logistics workers and courier companies.

    ``workers`` load is pending work orders; ``couriers`` load is active
    (not delivered) guides.  Both are ordered by load, then id.
    """

    workers: tuple[SubjectLoad, ...]
    couriers: tuple[SubjectLoad, ...]


@dataclass(frozen=True)
class WorkOrderView:
    """A work order as shown to the worker picking it."""

    id: int
    sales_order_id: int | None
    worker_id: int | None
    worker_name: str | None
    date: datetime
    state: str
    notes: str | None

    @classmethod
    def from_model(
        cls, model: WorkOrderModel, worker_name: str | None = None
    ) -> WorkOrderView:
        return cls(
            id=model.id,
            sales_order_id=model.sales_order_id,
            worker_id=model.worker_id,
            worker_name=worker_name,
            date=model.date,
            state=model.state,
            notes=model.notes,
        )


@dataclass(frozen=True)
class GuideView:
    """A dispatch guide with the names a courier needs to act on it."""

    id: int
    work_order_id: int
    work_order_state: str | None
    courier_id: int | None
    courier_name: str | None
    handler_id: int | None
    handler_name: str | None
    delivery_address: str | None
    date: datetime | None
    state: str

    @classmethod
    def from_model(
        cls,
        model: GuideModel,
        *,
        work_order_state: str | None = None,
        courier_name: str | None = None,
        handler_name: str | None = None,
    ) -> GuideView:
        return cls(
            id=model.id,
            work_order_id=model.work_order_id,
            work_order_state=work_order_state,
            courier_id=model.courier_id,
            courier_name=courier_name,
            handler_id=model.handler_id,
            handler_name=handler_name,
            delivery_address=model.delivery_address,
            date=model.date,
            state=model.state,
        )
