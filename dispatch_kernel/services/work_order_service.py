"""
WorkOrderService -- picking work-order (OT) lifecycle.

Responsibility:
    Creates a work order and its paired dispatch guide from a sales order,
    opens work orders by hand for a chosen worker, and applies role-filtered
    updates to existing work orders under row locks, including the
    completion cascade onto the paired guide.

Architecture position:
    Kernel > Services -- imperative shell.  Uses the pure workflow in
    ``domain/states.py``, the permission table in ``domain/permissions.py``
    and rotation through AssignmentService/CounterService.

Invariants enforced:
    - One work order per sales order (pre-check plus unique constraint).
    - Work orders created from a sales order get exactly one guide; those
      opened by hand get none until one is created for them.
    - Work orders move forward only; COMPLETED and CANCELLED are terminal.
    - Every mutation happens under ``SELECT ... FOR UPDATE`` on the row.
    - Entering COMPLETED resets the paired guide to POR_ASIGNAR with handler
      and date cleared.

Failure modes:
    - SalesOrderNotFoundError, DuplicateWorkOrderError on creation;
      UnauthorizedError and InvalidWorkerError on manual creation.
    - UnauthenticatedError, UnauthorizedError, WorkOrderNotFoundError,
      InvalidWorkerError, InvalidDateError, InvalidStateError,
      InvalidTransitionError on update.  All are raised before the
      offending item is written.
"""

from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dispatch_kernel.domain.actor import (
    Actor,
    CounterCategory,
    StaffRole,
    normalize_role,
)
from dispatch_kernel.domain.clock import Clock, SystemClock
from dispatch_kernel.domain.dates import normalize_instant, precedes_beyond_tolerance
from dispatch_kernel.domain.dtos import UpdateResult, WorkOrderCreated, WorkOrderView
from dispatch_kernel.domain.patches import WorkOrderPatch
from dispatch_kernel.domain.permissions import (
    Entity,
    FieldPermissionTable,
    WorkOrderField,
)
from dispatch_kernel.domain.states import (
    WORK_ORDER_WORKFLOW,
    GuideState,
    WorkOrderState,
    WorkOrderWorkflow,
    initial_guide_state,
    normalize_work_order_state,
)
from dispatch_kernel.exceptions import (
    DispatchKernelError,
    DuplicateWorkOrderError,
    InvalidDateError,
    InvalidTransitionError,
    InvalidWorkerError,
    SalesOrderNotFoundError,
    UnauthenticatedError,
    UnauthorizedError,
    WorkOrderNotFoundError,
)
from dispatch_kernel.logging_config import get_logger
from dispatch_kernel.models.directory import SalesOrder, Worker
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder
from dispatch_kernel.services.assignment_service import AssignmentService
from dispatch_kernel.services.base import BaseService
from dispatch_kernel.services.counter_service import CounterService

logger = get_logger("services.work_order")

DEFAULT_DATE_TOLERANCE = timedelta(hours=24)
DEFAULT_ORDER_NUMBER_PREFIX = "PV"


class WorkOrderService(BaseService[WorkOrder]):
    """
    Service for creating and updating work orders.

    Contract:
        Flush-only.  ``update`` applies patches in the order supplied and
        stops at the first failure; the caller rolls the transaction back.

    Non-goals:
        - Does NOT authenticate; it consumes an already resolved Actor.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        permissions: FieldPermissionTable,
        clock: Clock | None = None,
        counters: CounterService | None = None,
        assignments: AssignmentService | None = None,
        *,
        date_tolerance: timedelta = DEFAULT_DATE_TOLERANCE,
        order_number_prefix: str = DEFAULT_ORDER_NUMBER_PREFIX,
        workflow: WorkOrderWorkflow = WORK_ORDER_WORKFLOW,
    ):
        super().__init__(session)
        self._permissions = permissions
        self._clock = clock or SystemClock()
        self._counters = counters or CounterService(session)
        self._assignments = assignments or AssignmentService(session, self._counters)
        self._date_tolerance = date_tolerance
        self._prefix = order_number_prefix
        self._workflow = workflow

    # -----------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------

    def create_from_order(self, sales_order_id: int) -> WorkOrderCreated:
        """
        Create the work order and dispatch guide for a sales order.

        Preconditions:
            - The sales order exists and has no work order yet.

        Postconditions:
            - Work order in ASSIGNED (worker picked) or CREATED (empty pool).
            - Guide in EN_PICKING with the picked courier company, no
              handler, no date and the order's delivery address.
            - Worker and courier rotation counters incremented.

        Raises:
            SalesOrderNotFoundError: the order does not exist.
            DuplicateWorkOrderError: a work order already references it.
        """
        order = self._unclaimed_order(sales_order_id)
        order_number = order.display_number(self._prefix)
        worker_id = self._assignments.pick(CounterCategory.WORKER_LOGISTICS)
        state = (
            WorkOrderState.ASSIGNED if worker_id is not None else WorkOrderState.CREATED
        )

        work_order = WorkOrder(
            sales_order_id=order.id,
            worker_id=worker_id,
            date=self._clock.now(),
            state=state.value,
            notes=self._order_notes(order),
        )
        self._insert(work_order)

        if worker_id is not None:
            self._counters.increment(CounterCategory.WORKER_LOGISTICS, worker_id)

        courier_id = self._assignments.assign(CounterCategory.COURIER)

        guide = DispatchGuide(
            work_order_id=work_order.id,
            courier_id=courier_id,
            handler_id=None,
            delivery_address=order.delivery_address,
            date=None,
            state=initial_guide_state(state).value,
        )
        self.session.add(guide)
        self.session.flush()

        logger.info(
            "work_order_created",
            extra={
                "work_order_id": work_order.id,
                "guide_id": guide.id,
                "sales_order_id": order.id,
                "order_number": order_number,
                "state": state.value,
                "worker_id": worker_id,
                "courier_id": courier_id,
            },
        )

        return WorkOrderCreated(
            work_order_id=work_order.id,
            guide_id=guide.id,
            order_number=order_number,
            assigned_worker_id=worker_id,
            assigned_courier_id=courier_id,
        )

    def create_manual(
        self,
        actor: Actor | None,
        worker_id: int | None,
        *,
        sales_order_id: int | None = None,
        date: Any = None,
        state: Any = None,
        notes: str | None = None,
    ) -> WorkOrderView:
        """
        Open a work order by hand for a chosen logistics worker.

        No rotation pick and no guide; the guide is created separately with
        ``DispatchGuideService.create``.  Without explicit notes, a linked
        sales order gets the same back-reference as automatic creation.

        Raises:
            UnauthenticatedError: no actor.
            UnauthorizedError: the actor's role may not assign workers.
            InvalidWorkerError, InvalidDateError, InvalidStateError.
            SalesOrderNotFoundError, DuplicateWorkOrderError: for a linked
                sales order.
        """
        if actor is None:
            raise UnauthenticatedError()
        if not self._permissions.permits(
            Entity.WORK_ORDER, actor.role, WorkOrderField.WORKER_ID.value
        ):
            raise UnauthorizedError(actor.role, Entity.WORK_ORDER.value)

        worker_id = self._validated_worker(worker_id)
        when = normalize_instant(date) if date not in (None, "") else self._clock.now()
        initial = (
            normalize_work_order_state(state)
            if state not in (None, "")
            else WorkOrderState.ASSIGNED
        )
        order = None
        if sales_order_id is not None:
            order = self._unclaimed_order(sales_order_id)
            if notes is None:
                notes = self._order_notes(order)

        work_order = WorkOrder(
            sales_order_id=sales_order_id,
            worker_id=worker_id,
            date=when,
            state=initial.value,
            notes=notes,
        )
        self._insert(work_order)
        self._counters.increment(CounterCategory.WORKER_LOGISTICS, worker_id)

        logger.info(
            "work_order_created",
            extra={
                "work_order_id": work_order.id,
                "sales_order_id": sales_order_id,
                "state": initial.value,
                "worker_id": worker_id,
                "manual": True,
            },
        )
        worker = self.session.get(Worker, worker_id)
        return WorkOrderView.from_model(work_order, worker.full_name)

    def _unclaimed_order(self, sales_order_id: int) -> SalesOrder:
        order = self.session.get(SalesOrder, sales_order_id)
        if order is None:
            raise SalesOrderNotFoundError(sales_order_id)

        existing_id = self.session.execute(
            select(WorkOrder.id).where(WorkOrder.sales_order_id == sales_order_id)
        ).scalar_one_or_none()
        if existing_id is not None:
            raise DuplicateWorkOrderError(sales_order_id, existing_id)
        return order

    def _order_notes(self, order: SalesOrder) -> str:
        return (
            f"Order: {order.display_number(self._prefix)} | "
            f"Customer: {order.customer_name} | "
            f"Address: {order.delivery_address or 'not specified'}"
        )

    def _insert(self, work_order: WorkOrder) -> None:
        # The unique constraint settles concurrent creations for one order
        savepoint = self.session.begin_nested()
        try:
            self.session.add(work_order)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "work_order_duplicate_race",
                extra={"sales_order_id": work_order.sales_order_id},
            )
            raise DuplicateWorkOrderError(work_order.sales_order_id) from None

    # -----------------------------------------------------------------
    # Update
    # -----------------------------------------------------------------

    def update(
        self, actor: Actor | None, patches: Iterable[WorkOrderPatch]
    ) -> UpdateResult:
        """
        Apply role-filtered patches to work orders, one locked row at a time.

        Raises:
            UnauthenticatedError: no actor.
            UnauthorizedError: the actor's role may not edit work orders.
            DispatchKernelError: the first rule violation in the batch.
        """
        if actor is None:
            raise UnauthenticatedError()
        allowed = self._permissions.allowed_fields(Entity.WORK_ORDER, actor.role)

        updated: list[int] = []
        for patch in patches:
            try:
                self._apply_patch(actor, allowed, patch)
            except DispatchKernelError as exc:
                logger.warning(
                    "work_order_update_rejected",
                    extra={
                        "work_order_id": patch.work_order_id,
                        "code": exc.code,
                        "applied_before_failure": len(updated),
                    },
                )
                raise
            updated.append(patch.work_order_id)
        return UpdateResult(updated_ids=tuple(updated))

    def _lock(self, work_order_id: int) -> WorkOrder:
        work_order = self.session.execute(
            select(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if work_order is None:
            raise WorkOrderNotFoundError(work_order_id)
        return work_order

    def _apply_patch(
        self, actor: Actor, allowed: frozenset[str], patch: WorkOrderPatch
    ) -> None:
        work_order = self._lock(patch.work_order_id)
        changes: dict[str, Any] = {
            name: value for name, value in patch.changes.items() if name in allowed
        }
        ignored = patch.fields() - allowed
        if ignored:
            logger.debug(
                "work_order_fields_ignored",
                extra={
                    "work_order_id": work_order.id,
                    "role": actor.role,
                    "fields": sorted(ignored),
                },
            )

        current_state = normalize_work_order_state(work_order.state)

        # Validate everything before writing anything
        new_worker_id = work_order.worker_id
        requested_worker = changes.get(WorkOrderField.WORKER_ID.value, new_worker_id)
        # Re-sending the current worker is a no-op, even if their role changed
        if requested_worker != work_order.worker_id:
            new_worker_id = self._validated_worker(requested_worker)

        new_date = None
        if WorkOrderField.DATE.value in changes:
            raw = changes[WorkOrderField.DATE.value]
            new_date = normalize_instant(raw)
            if precedes_beyond_tolerance(
                new_date, work_order.date, self._date_tolerance
            ):
                raise InvalidDateError(
                    raw, "earlier than the current date beyond the allowed tolerance"
                )

        target_state = current_state
        if WorkOrderField.STATE.value in changes:
            target_state = normalize_work_order_state(
                changes[WorkOrderField.STATE.value]
            )
            if not self._workflow.can_transition(current_state, target_state):
                raise InvalidTransitionError(
                    "work order", work_order.id, current_state.value, target_state.value
                )

        old_worker_id = work_order.worker_id
        work_order.worker_id = new_worker_id
        if new_date is not None:
            work_order.date = new_date
        if target_state != current_state:
            work_order.state = target_state.value
        if WorkOrderField.NOTES.value in changes:
            work_order.notes = changes[WorkOrderField.NOTES.value]
        self.session.flush()

        if new_worker_id != old_worker_id:
            self._counters.reassign(
                CounterCategory.WORKER_LOGISTICS, old_worker_id, new_worker_id
            )

        logger.info(
            "work_order_updated",
            extra={
                "work_order_id": work_order.id,
                "fields": sorted(changes),
                "from_state": current_state.value,
                "to_state": target_state.value,
            },
        )

        if (
            target_state == WorkOrderState.COMPLETED
            and current_state != WorkOrderState.COMPLETED
        ):
            self._cascade_completion(work_order)

    def _validated_worker(self, worker_id: int | None) -> int:
        if worker_id is None:
            raise InvalidWorkerError(worker_id, "a worker is required")
        worker = self.session.get(Worker, worker_id)
        if worker is None:
            raise InvalidWorkerError(worker_id, "worker does not exist")
        if normalize_role(worker.role) != StaffRole.WORKER_LOGISTICS.value:
            raise InvalidWorkerError(
                worker_id, f"role {worker.role} cannot pick orders"
            )
        return worker.id

    def _cascade_completion(self, work_order: WorkOrder) -> None:
        """Reset the paired guide so it can be handed to a courier."""
        guide = self.session.execute(
            select(DispatchGuide)
            .where(DispatchGuide.work_order_id == work_order.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if guide is None:
            logger.info(
                "work_order_completed_without_guide",
                extra={"work_order_id": work_order.id},
            )
            return

        previous_state = guide.state
        previous_handler_id = guide.handler_id
        guide.state = GuideState.POR_ASIGNAR.value
        guide.handler_id = None
        guide.date = None
        self.session.flush()

        if previous_handler_id is not None:
            self._counters.decrement(CounterCategory.HANDLER, previous_handler_id)

        logger.info(
            "work_order_completed_cascade",
            extra={
                "work_order_id": work_order.id,
                "guide_id": guide.id,
                "from_state": previous_state,
                "released_handler_id": previous_handler_id,
            },
        )

