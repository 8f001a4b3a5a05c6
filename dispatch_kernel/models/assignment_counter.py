"""
Module: dispatch_kernel.models.assignment_counter
Responsibility: ORM persistence for rotation counters, one row per
    (subject, category).  Counters only order candidates for the next
    assignment; they carry no business meaning.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - value >= 0 (ck_counter_non_negative).
    - One row per (subject_id, category) (uq_counter_subject_category).
    - A row exists iff the subject was assigned at least once in the category.

Failure modes:
    - IntegrityError on concurrent first insert of the same key; the counter
      service recovers via savepoint and re-reads the winner's row.
"""

from sqlalchemy import CheckConstraint, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_kernel.db.base import TrackedBase
from dispatch_kernel.db.types import RoleCode


class AssignmentCounter(TrackedBase):
    """Rotation counter for one subject in one category."""

    __tablename__ = "assignment_counters"

    __table_args__ = (
        UniqueConstraint("subject_id", "category", name="uq_counter_subject_category"),
        CheckConstraint("value >= 0", name="ck_counter_non_negative"),
        Index("idx_counter_category", "category"),
    )

    # Worker id (WORKER_LOGISTICS, COURIER) or handler id (HANDLER)
    subject_id: Mapped[int] = mapped_column(nullable=False)

    category: Mapped[RoleCode] = mapped_column(nullable=False)

    value: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<AssignmentCounter {self.category}:{self.subject_id}={self.value}>"
