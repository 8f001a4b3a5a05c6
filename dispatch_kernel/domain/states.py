"""
Lifecycle states (``dispatch_kernel.domain.states``).

Responsibility
--------------
Canonical state vocabularies for work orders and dispatch guides, the
normalization of the loosely-spelled strings found in stored rows and
incoming requests, and the work-order transition table.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Stored states are always canonical enum values.
* Work orders move forward only; CANCELLED is reachable from every
  non-terminal state; COMPLETED and CANCELLED are terminal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from dispatch_kernel.exceptions import InvalidStateError


class WorkOrderState(str, Enum):
    """Lifecycle state of a picking work order (OT)."""

    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GuideState(str, Enum):
    """Lifecycle state of a dispatch guide.

    Contract: EN_PICKING -> POR_ASIGNAR <-> ASIGNADA -> ENTREGADA.
    ENTREGADA is terminal; EN_PICKING is never re-entered.
    """

    EN_PICKING = "EN_PICKING"
    POR_ASIGNAR = "POR_ASIGNAR"
    ASIGNADA = "ASIGNADA"
    ENTREGADA = "ENTREGADA"


_WORK_ORDER_ALIASES: dict[str, WorkOrderState] = {
    "CREADA": WorkOrderState.CREATED,
    "PENDIENTE": WorkOrderState.CREATED,
    "PENDING": WorkOrderState.CREATED,
    "ASIGNADA": WorkOrderState.ASSIGNED,
    "EN_PROCESO": WorkOrderState.IN_PROGRESS,
    "COMPLETADA": WorkOrderState.COMPLETED,
    "CANCELADA": WorkOrderState.CANCELLED,
    "CANCELED": WorkOrderState.CANCELLED,
}

_GUIDE_ALIASES: dict[str, GuideState] = {
    "ENPICKING": GuideState.EN_PICKING,
    "PENDIENTE": GuideState.POR_ASIGNAR,
    "PENDING": GuideState.POR_ASIGNAR,
    "TO_BE_ASSIGNED": GuideState.POR_ASIGNAR,
    "ASSIGNED": GuideState.ASIGNADA,
    "DELIVERED": GuideState.ENTREGADA,
}

_SEPARATORS = re.compile(r"[\s\-]+")


def _canonical_token(value: object) -> str:
    return _SEPARATORS.sub("_", str(value or "").strip()).upper()


def normalize_work_order_state(value: object) -> WorkOrderState:
    """Map any stored or incoming spelling onto a WorkOrderState.

    Raises:
        InvalidStateError: if the value matches no known state.
    """
    if isinstance(value, WorkOrderState):
        return value
    token = _canonical_token(value)
    try:
        return WorkOrderState(token)
    except ValueError:
        pass
    if token in _WORK_ORDER_ALIASES:
        return _WORK_ORDER_ALIASES[token]
    raise InvalidStateError("work order", value)


def normalize_guide_state(value: object) -> GuideState:
    """Map any stored or incoming spelling onto a GuideState.

    Raises:
        InvalidStateError: if the value matches no known state.
    """
    if isinstance(value, GuideState):
        return value
    token = _canonical_token(value)
    try:
        return GuideState(token)
    except ValueError:
        pass
    if token in _GUIDE_ALIASES:
        return _GUIDE_ALIASES[token]
    raise InvalidStateError("dispatch guide", value)


@dataclass(frozen=True)
class WorkOrderWorkflow:
    """Ordered work-order lifecycle.

    Contract: frozen; ``progression`` lists the forward path in order.
    Guarantees: ``cancel_state`` and ``progression[-1]`` are terminal.
    """

    progression: tuple[WorkOrderState, ...]
    cancel_state: WorkOrderState

    @property
    def terminal_states(self) -> frozenset[WorkOrderState]:
        return frozenset({self.progression[-1], self.cancel_state})

    def can_transition(
        self, from_state: WorkOrderState, to_state: WorkOrderState
    ) -> bool:
        if from_state == to_state:
            return True
        if from_state in self.terminal_states:
            return False
        if to_state == self.cancel_state:
            return True
        return self.progression.index(to_state) > self.progression.index(from_state)


WORK_ORDER_WORKFLOW = WorkOrderWorkflow(
    progression=(
        WorkOrderState.CREATED,
        WorkOrderState.ASSIGNED,
        WorkOrderState.IN_PROGRESS,
        WorkOrderState.COMPLETED,
    ),
    cancel_state=WorkOrderState.CANCELLED,
)


def initial_guide_state(work_order_state: WorkOrderState) -> GuideState:
    """State a new guide starts in, given its work order's state."""
    if work_order_state == WorkOrderState.COMPLETED:
        return GuideState.POR_ASIGNAR
    return GuideState.EN_PICKING
