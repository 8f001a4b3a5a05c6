"""
Kernel Invariants Contract.

These invariants are structural law for work orders and dispatch guides.
No configuration set or permission table may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across CounterService, WorkOrderService,
DispatchGuideService and the database constraints on the models.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Configuration decides *who* may edit *which* field, never *whether*
    these rules apply.
    """

    ONE_WORK_ORDER_PER_ORDER = "one_work_order_per_order"
    """At most one work order per originating sales order. Enforced by the
    pre-insert check in WorkOrderService and the unique constraint on
    work_orders.sales_order_id. Work orders opened by hand may have none."""

    ONE_GUIDE_PER_WORK_ORDER = "one_guide_per_work_order"
    """A work order has at most one dispatch guide. Enforced by the pre-insert
    check in DispatchGuideService and the unique constraint on
    dispatch_guides.work_order_id."""

    NO_GUIDE_FOR_CANCELLED = "no_guide_for_cancelled"
    """A cancelled work order never gets a dispatch guide. Enforced by
    DispatchGuideService."""

    COUNTER_NON_NEGATIVE = "counter_non_negative"
    """Rotation counters never drop below zero. Enforced by CounterService
    (floored decrement) and a DB check constraint."""

    PICKING_GATE = "picking_gate"
    """A guide cannot leave EN_PICKING, nor change courier, handler or date,
    until its work order is COMPLETED. Enforced by DispatchGuideService."""

    DELIVERY_TERMINAL = "delivery_terminal"
    """ENTREGADA guides keep their state, courier and handler forever.
    Enforced by DispatchGuideService."""

    NO_PICKING_REGRESSION = "no_picking_regression"
    """A guide that left EN_PICKING never returns to it. Enforced by
    DispatchGuideService."""

    LOCKED_MUTATION = "locked_mutation"
    """Every update reads its target row with SELECT ... FOR UPDATE before
    writing. Enforced by WorkOrderService and DispatchGuideService."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_dispatch_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "dispatch_services",
    "dispatch_config",
)
