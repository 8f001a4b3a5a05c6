"""
CounterService -- rotation counter bookkeeping via locked counter rows.

Responsibility:
    Increments, decrements and moves the per-(subject, category) rotation
    counters that order candidates for the next assignment.  Uses row-level
    locking (``SELECT ... FOR UPDATE``) and a savepoint-guarded upsert so
    that concurrent assignments never lose an update.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by AssignmentService, WorkOrderService and DispatchGuideService.

Invariants enforced:
    - Counter values never drop below zero; a decrement with no row is a
      no-op.
    - Adjustments are only visible after the caller's transaction commits.
    - Counters are advisory: a database failure while adjusting one is
      logged and the savepoint rolled back, and the caller's operation
      continues.

Failure modes:
    - IntegrityError: concurrent first insert of the same counter (handled
      via savepoint rollback and re-read under lock).
    - Any other SQLAlchemyError: logged as ``counter_adjustment_failed``
      and swallowed; the adjustment is lost.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dispatch_kernel.domain.actor import CounterCategory
from dispatch_kernel.logging_config import get_logger
from dispatch_kernel.models.assignment_counter import AssignmentCounter
from dispatch_kernel.services.base import BaseService

logger = get_logger("services.counter")


class CounterService(BaseService[AssignmentCounter]):
    """
    Service for rotation counter adjustments.

    Contract:
        Every public method runs inside a savepoint of the caller's
        transaction and returns the new value, or None when nothing was
        stored (missing row on decrement, or a swallowed failure).

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide who gets assigned (see AssignmentService).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def increment(
        self, category: CounterCategory | str, subject_id: int
    ) -> int | None:
        """Add one to the subject's counter, creating it at 1 on first use."""
        return self._adjust(CounterCategory(category), subject_id, +1)

    def decrement(
        self, category: CounterCategory | str, subject_id: int
    ) -> int | None:
        """Subtract one from the subject's counter, flooring at zero."""
        return self._adjust(CounterCategory(category), subject_id, -1)

    def reassign(
        self,
        category: CounterCategory | str,
        old_subject_id: int | None,
        new_subject_id: int | None,
    ) -> None:
        """Move one unit of load from ``old_subject_id`` to ``new_subject_id``.

        Either side may be None (first assignment, or unassignment).  Moving
        to the same subject is a no-op.
        """
        if old_subject_id == new_subject_id:
            return
        if old_subject_id is not None:
            self.decrement(category, old_subject_id)
        if new_subject_id is not None:
            self.increment(category, new_subject_id)

    def current_value(
        self, category: CounterCategory | str, subject_id: int
    ) -> int | None:
        """Counter value without locking, or None if the subject has no row."""
        return self.session.execute(
            select(AssignmentCounter.value).where(
                AssignmentCounter.subject_id == subject_id,
                AssignmentCounter.category == CounterCategory(category).value,
            )
        ).scalar_one_or_none()

    # -----------------------------------------------------------------
    # internals
    # -----------------------------------------------------------------

    def _adjust(
        self, category: CounterCategory, subject_id: int, delta: int
    ) -> int | None:
        savepoint = self.session.begin_nested()
        try:
            value = self._apply(category, subject_id, delta)
            savepoint.commit()
        except SQLAlchemyError:
            savepoint.rollback()
            logger.warning(
                "counter_adjustment_failed",
                extra={
                    "category": category.value,
                    "subject_id": subject_id,
                    "delta": delta,
                },
                exc_info=True,
            )
            return None

        if value is not None:
            logger.info(
                "counter_adjusted",
                extra={
                    "category": category.value,
                    "subject_id": subject_id,
                    "delta": delta,
                    "value": value,
                },
            )
        return value

    def _locked(self, category: CounterCategory, subject_id: int):
        return self.session.execute(
            select(AssignmentCounter)
            .where(
                AssignmentCounter.subject_id == subject_id,
                AssignmentCounter.category == category.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _apply(
        self, category: CounterCategory, subject_id: int, delta: int
    ) -> int | None:
        counter = self._locked(category, subject_id)

        if counter is None:
            if delta <= 0:
                return None
            # First assignment in this category; another transaction may be
            # inserting the same key, so guard the insert with its own savepoint
            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    AssignmentCounter(
                        subject_id=subject_id,
                        category=category.value,
                        value=delta,
                    )
                )
                self.session.flush()
                savepoint.commit()
                return delta
            except IntegrityError:
                logger.debug(
                    "counter_race_retry",
                    extra={"category": category.value, "subject_id": subject_id},
                )
                savepoint.rollback()
                counter = self._locked(category, subject_id)
                if counter is None:
                    raise

        counter.value = max(0, counter.value + delta)
        self.session.flush()
        return counter.value
