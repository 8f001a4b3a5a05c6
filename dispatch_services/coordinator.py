"""
dispatch_services.coordinator -- transaction boundary for every public operation.

Responsibility:
    Opens one session per call, wires the kernel services for it, binds the
    log context, and commits on success or rolls back on any exception.
    This is the only place in the system that commits.

Architecture position:
    Services -- orchestration over the kernel.  Builds the permission table
    from ``dispatch_config`` through its bridge; the kernel never sees the
    configuration package.

Invariants enforced:
    - One transaction per public call; kernel services only flush.
    - A failing item in a batch rolls back every item of the batch.
    - Single and batch updates share one code path.

Failure modes:
    - DispatchKernelError subclasses propagate unchanged after rollback.
    - SQLAlchemyError is wrapped in DatastoreError after rollback.

Usage:
    coordinator = build_transaction_coordinator("postgresql+psycopg2://...")
    created = coordinator.create_work_order(42)
    actor = coordinator.resolve_actor(7)
    coordinator.update_dispatch_guide(actor, created.guide_id, {"handler_id": 3})
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dispatch_config import get_active_config
from dispatch_config.bridges import build_permission_table, date_drift_tolerance
from dispatch_config.schema import DispatchConfiguration
from dispatch_kernel.db.engine import get_session_factory, init_engine_from_url
from dispatch_kernel.domain.actor import Actor
from dispatch_kernel.domain.clock import Clock, SystemClock
from dispatch_kernel.domain.dtos import (
    BalanceStats,
    GuideView,
    UpdateResult,
    WorkOrderCreated,
    WorkOrderView,
)
from dispatch_kernel.domain.patches import GuidePatch, WorkOrderPatch
from dispatch_kernel.exceptions import DatastoreError, DispatchKernelError
from dispatch_kernel.logging_config import LogContext, get_logger
from dispatch_kernel.selectors.balance_selector import BalanceSelector
from dispatch_kernel.selectors.directory_selector import DirectorySelector
from dispatch_kernel.selectors.worklist_selector import WorklistSelector
from dispatch_kernel.services.assignment_service import AssignmentService
from dispatch_kernel.services.counter_service import CounterService
from dispatch_kernel.services.dispatch_guide_service import DispatchGuideService
from dispatch_kernel.services.work_order_service import WorkOrderService

logger = get_logger("services.coordinator")


@dataclass(frozen=True)
class _SessionServices:
    """Kernel services wired to one session."""

    directory: DirectorySelector
    balance: BalanceSelector
    worklists: WorklistSelector
    work_orders: WorkOrderService
    guides: DispatchGuideService


class TransactionCoordinator:
    """
    Single entry point for dispatch operations.

    Contract:
        Every public method runs in its own transaction.  Callers never
        see a partially applied batch.

    Non-goals:
        - Does NOT authenticate tokens; callers pass an Actor (or use
          ``resolve_actor`` with an already authenticated staff id).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        config: DispatchConfiguration | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._config = config or get_active_config()
        self._permissions = build_permission_table(self._config)
        self._date_tolerance = date_drift_tolerance(self._config)
        self._clock = clock or SystemClock()

    @property
    def config(self) -> DispatchConfiguration:
        return self._config

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    def create_work_order(self, sales_order_id: int) -> WorkOrderCreated:
        """Create the work order and dispatch guide for a sales order."""
        with self._transaction(
            "create_work_order", entity_id=str(sales_order_id)
        ) as services:
            return services.work_orders.create_from_order(sales_order_id)

    def create_manual_work_order(
        self,
        actor: Actor | None,
        worker_id: int | None,
        *,
        sales_order_id: int | None = None,
        date: Any = None,
        state: Any = None,
        notes: str | None = None,
    ) -> WorkOrderView:
        """Open a work order by hand for a chosen logistics worker."""
        with self._transaction(
            "create_manual_work_order", actor=actor, entity_id=str(worker_id)
        ) as services:
            return services.work_orders.create_manual(
                actor,
                worker_id,
                sales_order_id=sales_order_id,
                date=date,
                state=state,
                notes=notes,
            )

    def create_dispatch_guide(
        self,
        actor: Actor | None,
        work_order_id: int,
        *,
        courier_id: int | None = None,
        date: Any = None,
        delivery_address: str | None = None,
    ) -> GuideView:
        """Create the dispatch guide for a work order that has none."""
        with self._transaction(
            "create_dispatch_guide", actor=actor, entity_id=str(work_order_id)
        ) as services:
            return services.guides.create(
                actor,
                work_order_id,
                courier_id=courier_id,
                date=date,
                delivery_address=delivery_address,
            )

    def update_work_orders(
        self,
        actor: Actor | None,
        patches: Iterable[WorkOrderPatch | Mapping[str, Any]],
    ) -> UpdateResult:
        """Apply a batch of work-order patches atomically."""
        batch = [
            p if isinstance(p, WorkOrderPatch) else WorkOrderPatch.from_payload(p)
            for p in patches
        ]
        with self._transaction(
            "update_work_orders", actor=actor, batch_size=len(batch)
        ) as services:
            return services.work_orders.update(actor, batch)

    def update_work_order(
        self, actor: Actor | None, work_order_id: int, changes: Mapping[str, Any]
    ) -> UpdateResult:
        patch = WorkOrderPatch.from_payload(
            {**changes, "work_order_id": work_order_id}
        )
        return self.update_work_orders(actor, [patch])

    def update_dispatch_guides(
        self,
        actor: Actor | None,
        patches: Iterable[GuidePatch | Mapping[str, Any]],
    ) -> UpdateResult:
        """Apply a batch of guide patches atomically."""
        batch = [
            p if isinstance(p, GuidePatch) else GuidePatch.from_payload(p)
            for p in patches
        ]
        with self._transaction(
            "update_dispatch_guides", actor=actor, batch_size=len(batch)
        ) as services:
            return services.guides.update(actor, batch)

    def update_dispatch_guide(
        self, actor: Actor | None, guide_id: int, changes: Mapping[str, Any]
    ) -> UpdateResult:
        patch = GuidePatch.from_payload({**changes, "guide_id": guide_id})
        return self.update_dispatch_guides(actor, [patch])

    def get_balance_stats(self) -> BalanceStats:
        with self._transaction("get_balance_stats") as services:
            return services.balance.get_balance_stats()

    def my_work_orders(self, actor: Actor | None) -> tuple[WorkOrderView, ...]:
        """Work orders assigned to the actor, newest first."""
        with self._transaction("my_work_orders", actor=actor) as services:
            return services.worklists.work_orders_for(actor)

    def my_dispatch_guides(self, actor: Actor | None) -> tuple[GuideView, ...]:
        """Guides held by the acting courier company, newest first."""
        with self._transaction("my_dispatch_guides", actor=actor) as services:
            return services.worklists.guides_for(actor)

    def resolve_actor(self, actor_id: int | None) -> Actor | None:
        """Actor for an authenticated staff id, or None if unknown."""
        with self._transaction("resolve_actor") as services:
            return services.directory.resolve_actor(actor_id)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _wire(self, session: Session) -> _SessionServices:
        counters = CounterService(session)
        directory = DirectorySelector(session)
        return _SessionServices(
            directory=directory,
            balance=BalanceSelector(
                session, pending_states=self._config.pending_work_order_states
            ),
            worklists=WorklistSelector(session),
            work_orders=WorkOrderService(
                session,
                self._permissions,
                clock=self._clock,
                counters=counters,
                assignments=AssignmentService(session, counters),
                date_tolerance=self._date_tolerance,
                order_number_prefix=self._config.order_number_prefix,
            ),
            guides=DispatchGuideService(
                session,
                self._permissions,
                clock=self._clock,
                counters=counters,
                directory=directory,
            ),
        )

    @contextmanager
    def _transaction(
        self,
        operation: str,
        actor: Actor | None = None,
        entity_id: str | None = None,
        batch_size: int | None = None,
    ) -> Iterator[_SessionServices]:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.id) if actor is not None else None,
            entity_id=entity_id,
            batch_id=str(uuid4()) if batch_size is not None else None,
        ):
            session = self._session_factory()
            try:
                yield self._wire(session)
                session.commit()
                logger.info(
                    "transaction_committed",
                    extra={"operation": operation, "batch_size": batch_size},
                )
            except DispatchKernelError as exc:
                session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation, "code": exc.code},
                )
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error(
                    "transaction_rolled_back",
                    extra={"operation": operation, "code": DatastoreError.code},
                    exc_info=True,
                )
                raise DatastoreError(operation, str(exc)) from exc
            except Exception:
                session.rollback()
                logger.error(
                    "transaction_rolled_back",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise
            finally:
                session.close()


def build_transaction_coordinator(
    database_url: str,
    config_path: Path | None = None,
    clock: Clock | None = None,
) -> TransactionCoordinator:
    """Build a coordinator from a database URL (single entrypoint for production).

    Initializes the engine, loads the active configuration and wires the
    coordinator to the engine's session factory.
    """
    init_engine_from_url(database_url)
    return TransactionCoordinator(
        session_factory=get_session_factory(),
        config=get_active_config(config_path),
        clock=clock,
    )
