"""
DispatchGuideService -- dispatch-guide lifecycle.

Responsibility:
    Creates the guide for a work order that has none, and applies
    role-filtered updates to dispatch guides under row locks:
    the picking gate, the delivery lock, handler/company validation,
    automatic state promotion, date stamping and courier/handler counter
    bookkeeping.

Architecture position:
    Kernel > Services -- imperative shell.  Reads the directory through
    DirectorySelector and adjusts counters through CounterService.

Invariants enforced:
    - A guide whose work order is not COMPLETED accepts no change to
      courier, date, state or handler.
    - ENTREGADA is terminal for state, courier and handler.
    - EN_PICKING is never re-entered once left.
    - Every state change stamps the guide date with the current time.
    - Every mutation happens under ``SELECT ... FOR UPDATE`` on the row.

Failure modes:
    - UnauthorizedError, WorkOrderNotFoundError, WorkOrderCancelledError,
      DuplicateGuideError on creation.
    - WorkOrderNotCompletedError, AlreadyDeliveredError,
      InvalidTransitionError, InvalidHandlerError,
      InvalidHandlerCompanyError, MissingHandlerError,
      ForbiddenDateChangeError, InvalidCourierError, InvalidDateError,
      InvalidStateError, DispatchGuideNotFoundError.  All are raised before
      the offending guide is written.

Gate checks (picking gate, delivery lock) look at every field the caller
sent; writes only use the fields the caller's role may edit.
"""

from collections.abc import Iterable
from datetime import datetime
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
from dispatch_kernel.domain.dates import normalize_instant
from dispatch_kernel.domain.dtos import GuideView, UpdateResult
from dispatch_kernel.domain.patches import GuidePatch
from dispatch_kernel.domain.permissions import Entity, FieldPermissionTable, GuideField
from dispatch_kernel.domain.states import (
    GuideState,
    WorkOrderState,
    initial_guide_state,
    normalize_guide_state,
    normalize_work_order_state,
)
from dispatch_kernel.exceptions import (
    AlreadyDeliveredError,
    DispatchGuideNotFoundError,
    DispatchKernelError,
    DuplicateGuideError,
    ForbiddenDateChangeError,
    InvalidCourierError,
    InvalidHandlerCompanyError,
    InvalidHandlerError,
    InvalidTransitionError,
    MissingHandlerError,
    UnauthenticatedError,
    UnauthorizedError,
    WorkOrderCancelledError,
    WorkOrderNotCompletedError,
    WorkOrderNotFoundError,
)
from dispatch_kernel.logging_config import get_logger
from dispatch_kernel.models.directory import SalesOrder
from dispatch_kernel.models.work_order import DispatchGuide, WorkOrder
from dispatch_kernel.selectors.directory_selector import DirectorySelector
from dispatch_kernel.services.base import BaseService
from dispatch_kernel.services.counter_service import CounterService

logger = get_logger("services.dispatch_guide")

# Fields frozen until the work order is completed
PICKING_LOCKED_FIELDS: tuple[str, ...] = (
    GuideField.COURIER_ID.value,
    GuideField.DATE.value,
    GuideField.STATE.value,
    GuideField.HANDLER_ID.value,
)

# Fields frozen once the guide is delivered
DELIVERY_LOCKED_FIELDS: tuple[str, ...] = (
    GuideField.STATE.value,
    GuideField.COURIER_ID.value,
    GuideField.HANDLER_ID.value,
)


class DispatchGuideService(BaseService[DispatchGuide]):
    """
    Service for creating and updating dispatch guides.

    Contract:
        Flush-only.  ``update`` applies patches in the order supplied and
        stops at the first failure; the caller rolls the transaction back.
    """

    def __init__(
        self,
        session: Session,
        permissions: FieldPermissionTable,
        clock: Clock | None = None,
        counters: CounterService | None = None,
        directory: DirectorySelector | None = None,
    ):
        super().__init__(session)
        self._permissions = permissions
        self._clock = clock or SystemClock()
        self._counters = counters or CounterService(session)
        self._directory = directory or DirectorySelector(session)

    def create(
        self,
        actor: Actor | None,
        work_order_id: int,
        *,
        courier_id: int | None = None,
        date: Any = None,
        delivery_address: str | None = None,
    ) -> GuideView:
        """
        Create the dispatch guide for a work order that has none.

        The guide starts in EN_PICKING, or POR_ASIGNAR when the work order
        is already COMPLETED.  A courier company is only kept for a
        completed work order; before that it is dropped.  The delivery
        address defaults to the linked sales order's.

        Raises:
            UnauthenticatedError: no actor.
            UnauthorizedError: the actor's role may not choose couriers.
            WorkOrderNotFoundError, WorkOrderCancelledError,
            DuplicateGuideError, InvalidCourierError, InvalidDateError.
        """
        if actor is None:
            raise UnauthenticatedError()
        if not self._permissions.permits(
            Entity.DISPATCH_GUIDE, actor.role, GuideField.COURIER_ID.value
        ):
            raise UnauthorizedError(actor.role, Entity.DISPATCH_GUIDE.value)

        work_order = self.session.execute(
            select(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if work_order is None:
            raise WorkOrderNotFoundError(work_order_id)
        work_order_state = normalize_work_order_state(work_order.state)
        if work_order_state == WorkOrderState.CANCELLED:
            raise WorkOrderCancelledError(work_order.id)

        existing_id = self.session.execute(
            select(DispatchGuide.id).where(DispatchGuide.work_order_id == work_order.id)
        ).scalar_one_or_none()
        if existing_id is not None:
            raise DuplicateGuideError(work_order.id, existing_id)

        if work_order_state != WorkOrderState.COMPLETED and courier_id is not None:
            logger.debug(
                "guide_courier_dropped",
                extra={"work_order_id": work_order.id, "courier_id": courier_id},
            )
            courier_id = None
        if courier_id is not None:
            courier_id = self._validated_courier(courier_id)

        if delivery_address is None and work_order.sales_order_id is not None:
            order = self.session.get(SalesOrder, work_order.sales_order_id)
            delivery_address = order.delivery_address if order is not None else None

        guide = DispatchGuide(
            work_order_id=work_order.id,
            courier_id=courier_id,
            handler_id=None,
            delivery_address=delivery_address,
            date=normalize_instant(date) if date not in (None, "") else None,
            state=initial_guide_state(work_order_state).value,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(guide)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateGuideError(work_order.id) from None

        if courier_id is not None:
            self._counters.increment(CounterCategory.COURIER, courier_id)

        logger.info(
            "guide_created",
            extra={
                "guide_id": guide.id,
                "work_order_id": work_order.id,
                "state": guide.state,
                "courier_id": courier_id,
            },
        )
        courier = self._directory.worker(courier_id) if courier_id is not None else None
        return GuideView.from_model(
            guide,
            work_order_state=work_order_state.value,
            courier_name=courier.full_name if courier is not None else None,
        )

    def update(
        self, actor: Actor | None, patches: Iterable[GuidePatch]
    ) -> UpdateResult:
        """
        Apply role-filtered patches to guides, one locked row at a time.

        Raises:
            UnauthenticatedError: no actor.
            UnauthorizedError: the actor's role may not edit guides.
            DispatchKernelError: the first rule violation in the batch.
        """
        if actor is None:
            raise UnauthenticatedError()
        allowed = self._permissions.allowed_fields(Entity.DISPATCH_GUIDE, actor.role)

        updated: list[int] = []
        for patch in patches:
            try:
                self._apply_patch(actor, allowed, patch)
            except DispatchKernelError as exc:
                logger.warning(
                    "guide_update_rejected",
                    extra={
                        "guide_id": patch.guide_id,
                        "code": exc.code,
                        "role": actor.role,
                        "applied_before_failure": len(updated),
                    },
                )
                raise
            updated.append(patch.guide_id)
        return UpdateResult(updated_ids=tuple(updated))

    def _lock(self, guide_id: int) -> DispatchGuide:
        guide = self.session.execute(
            select(DispatchGuide)
            .where(DispatchGuide.id == guide_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if guide is None:
            raise DispatchGuideNotFoundError(guide_id)
        return guide

    def _apply_patch(
        self, actor: Actor, allowed: frozenset[str], patch: GuidePatch
    ) -> None:
        guide = self._lock(patch.guide_id)
        current = normalize_guide_state(guide.state)
        work_order = self.session.get(WorkOrder, guide.work_order_id)
        work_order_completed = (
            work_order is not None
            and normalize_work_order_state(work_order.state) == WorkOrderState.COMPLETED
        )

        # Picking gate
        if not work_order_completed:
            blocked = [name for name in PICKING_LOCKED_FIELDS if patch.has(name)]
            if blocked:
                raise WorkOrderNotCompletedError(
                    guide.id,
                    guide.work_order_id,
                    work_order.state if work_order is not None else "",
                )

        # Delivery lock
        if current == GuideState.ENTREGADA:
            for name in DELIVERY_LOCKED_FIELDS:
                if patch.has(name):
                    raise AlreadyDeliveredError(guide.id, name)

        changes: dict[str, Any] = {
            name: value for name, value in patch.changes.items() if name in allowed
        }

        requested = None
        raw_state = changes.get(GuideField.STATE.value)
        if raw_state not in (None, ""):
            requested = normalize_guide_state(raw_state)
            if requested == GuideState.EN_PICKING and current != GuideState.EN_PICKING:
                raise InvalidTransitionError(
                    "dispatch guide", guide.id, current.value, requested.value
                )

        handler_sent = GuideField.HANDLER_ID.value in changes
        new_handler_id = guide.handler_id
        if handler_sent:
            new_handler_id = changes[GuideField.HANDLER_ID.value]
            if new_handler_id is not None:
                self._check_handler(actor, guide, new_handler_id)

        target = self._target_state(
            guide,
            current,
            requested,
            handler_sent,
            new_handler_id,
            work_order_completed,
        )
        state_changed = target is not None and target != current

        new_date = self._new_date(actor, guide, patch, allowed, changes, state_changed)

        new_courier_id = guide.courier_id
        if GuideField.COURIER_ID.value in changes:
            new_courier_id = self._validated_courier(
                changes[GuideField.COURIER_ID.value]
            )

        # Writes
        old_courier_id = guide.courier_id
        old_handler_id = guide.handler_id
        guide.courier_id = new_courier_id
        guide.handler_id = new_handler_id
        if state_changed:
            guide.state = target.value
        if new_date is not None:
            guide.date = new_date
        if GuideField.DELIVERY_ADDRESS.value in changes:
            guide.delivery_address = changes[GuideField.DELIVERY_ADDRESS.value]
        self.session.flush()

        if new_courier_id != old_courier_id:
            self._counters.reassign(
                CounterCategory.COURIER, old_courier_id, new_courier_id
            )
        if new_handler_id != old_handler_id:
            self._counters.reassign(
                CounterCategory.HANDLER, old_handler_id, new_handler_id
            )

        logger.info(
            "guide_updated",
            extra={
                "guide_id": guide.id,
                "fields": sorted(changes),
                "from_state": current.value,
                "to_state": guide.state,
                "courier_id": guide.courier_id,
                "handler_id": guide.handler_id,
            },
        )

    def _check_handler(
        self, actor: Actor, guide: DispatchGuide, handler_id: int
    ) -> None:
        handler = self._directory.handler(handler_id)
        if handler is None:
            raise InvalidHandlerError(handler_id)
        if not actor.is_courier:
            return
        if guide.courier_id is None or handler.company_id == guide.courier_id:
            return
        # A courier may hand the guide to another company it is registered under
        if handler.company_id in self._directory.companies_for_staff(actor.id):
            return
        raise InvalidHandlerCompanyError(guide.id, handler.id, handler.company_id)

    @staticmethod
    def _target_state(
        guide: DispatchGuide,
        current: GuideState,
        requested: GuideState | None,
        handler_sent: bool,
        new_handler_id: int | None,
        work_order_completed: bool,
    ) -> GuideState | None:
        eligible = current == GuideState.EN_PICKING or (
            current == GuideState.POR_ASIGNAR and work_order_completed
        )
        if handler_sent and new_handler_id is None:
            if requested == GuideState.ASIGNADA:
                raise MissingHandlerError(guide.id)
            return GuideState.POR_ASIGNAR
        if not eligible:
            return requested
        if requested == GuideState.ASIGNADA and new_handler_id is None:
            raise MissingHandlerError(guide.id)
        # A handler on an unassigned guide always means ASIGNADA, whatever
        # other state was requested
        if handler_sent and requested != GuideState.ASIGNADA:
            return GuideState.ASIGNADA
        return requested

    def _new_date(
        self,
        actor: Actor,
        guide: DispatchGuide,
        patch: GuidePatch,
        allowed: frozenset[str],
        changes: dict[str, Any],
        state_changed: bool,
    ) -> datetime | None:
        date_field = GuideField.DATE.value
        if state_changed:
            if patch.has(date_field) and date_field not in allowed:
                raise ForbiddenDateChangeError(guide.id, actor.role)
            return self._clock.now()
        if date_field in changes:
            return normalize_instant(changes[date_field])
        return None

    def _validated_courier(self, courier_id: int | None) -> int:
        if courier_id is None:
            raise InvalidCourierError(courier_id, "a courier company is required")
        courier = self._directory.worker(courier_id)
        if courier is None:
            raise InvalidCourierError(courier_id, "courier does not exist")
        if normalize_role(courier.role) != StaffRole.COURIER.value:
            raise InvalidCourierError(
                courier_id, f"role {courier.role} is not a courier"
            )
        return courier.id
