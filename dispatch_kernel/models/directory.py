"""
Module: dispatch_kernel.models.directory
Responsibility: ORM persistence for the staff, courier and sales-order
    directory the engine reads from.  These rows are owned by external
    collaborators (HR, courier onboarding, order intake) and are read-only
    to every kernel service.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Worker.role holds a canonical role tag (SUPERVISOR, WORKER_LOGISTICS,
      COURIER).
    - A Handler belongs to exactly one courier company; a staff member
      registered under several companies has one Handler row per company
      (uq_handler_company_staff).

Failure modes:
    - IntegrityError on a Handler whose company_id is not a worker row.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_kernel.db.base import TrackedBase
from dispatch_kernel.db.types import LongText, PersonName, RoleCode, StateCode


class Worker(TrackedBase):
    """
    Staff directory entry.

    A COURIER worker is a courier company account: guides are assigned to
    it as ``courier_id``.  Supervisors and logistics workers act on work
    orders.
    """

    __tablename__ = "workers"

    __table_args__ = (Index("idx_worker_role", "role"),)

    first_name: Mapped[PersonName] = mapped_column(nullable=False)

    last_name: Mapped[PersonName] = mapped_column(nullable=False, default="")

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[RoleCode] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Worker {self.id}: {self.role}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Handler(TrackedBase):
    """
    Individual courier employee ("encargado") executing deliveries for a
    courier company.

    ``staff_id`` links the handler to a Worker login when the courier
    employee also acts in the system; the set of Handler rows sharing a
    ``staff_id`` are the companies that person is registered under.
    """

    __tablename__ = "courier_handlers"

    __table_args__ = (
        UniqueConstraint("company_id", "staff_id", name="uq_handler_company_staff"),
        Index("idx_handler_company", "company_id"),
        Index("idx_handler_staff", "staff_id"),
    )

    company_id: Mapped[int] = mapped_column(
        ForeignKey("workers.id"),
        nullable=False,
    )

    staff_id: Mapped[int | None] = mapped_column(
        ForeignKey("workers.id"),
        nullable=True,
    )

    first_name: Mapped[PersonName] = mapped_column(nullable=False)

    last_name: Mapped[PersonName] = mapped_column(nullable=False, default="")

    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)

    def __repr__(self) -> str:
        return f"<Handler {self.id} company={self.company_id}>"


class SalesOrder(TrackedBase):
    """Originating customer order that triggers a picking work order."""

    __tablename__ = "sales_orders"

    customer_name: Mapped[PersonName] = mapped_column(nullable=False)

    delivery_address: Mapped[LongText | None] = mapped_column(nullable=True)

    ordered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[StateCode] = mapped_column(nullable=False, default="PENDING")

    def __repr__(self) -> str:
        return f"<SalesOrder {self.id}>"

    def display_number(self, prefix: str) -> str:
        """Human-facing order number, e.g. ``PV-000042``."""
        return f"{prefix}-{self.id:06d}"
