"""
Assignment selection -- pure least-loaded pick over a rotation pool.

Responsibility:
    Given the eligible pool of one counter category, deterministically choose
    the next assignee.  The ordering is:

        1. candidates that have never been assigned (no counter row),
        2. then the smallest counter value,
        3. ties broken by the smallest id.

    Repeated assignment through this rule keeps every counter in a pool with
    equal starting values within one of each other.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Counter bookkeeping
    lives in ``services/counter_service.py``; pool loading in
    ``services/assignment_service.py``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class Candidate:
    """One member of a rotation pool."""

    subject_id: int
    counter: int | None = None

    @property
    def sort_key(self) -> tuple[bool, int, int]:
        # False sorts first: never-assigned candidates lead the queue
        return (self.counter is not None, self.counter or 0, self.subject_id)


def select_candidate(candidates: Iterable[Candidate]) -> Candidate | None:
    """Pick the next assignee, or None for an empty pool."""
    return min(candidates, key=lambda c: c.sort_key, default=None)
